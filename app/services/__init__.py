"""Catalog synchronisation services."""
