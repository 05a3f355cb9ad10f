"""Exceptions raised by the catalog synchronisation pipeline."""

from __future__ import annotations


class CatalogSyncError(Exception):
    """Base class for synchronisation failures."""


class ProviderUnavailableError(CatalogSyncError):
    """An upstream provider could not be reached or answered with an error."""

    def __init__(
        self,
        provider: str,
        endpoint: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        self.provider = provider
        self.endpoint = endpoint
        self.status_code = status_code
        self.reason = reason
        detail = f"{provider} request to {endpoint} failed"
        if status_code is not None:
            detail = f"{detail} with status {status_code}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)


class ProviderPayloadError(ProviderUnavailableError):
    """An upstream provider answered with a payload we could not parse."""


class ImportValidationError(CatalogSyncError, ValueError):
    """An administrative trigger was rejected before any upstream call."""


class ConfirmationRequiredError(ImportValidationError):
    """A large import range was requested without explicit confirmation."""

    def __init__(self, year_count: int, threshold: int) -> None:
        self.year_count = year_count
        self.threshold = threshold
        super().__init__(
            f"Importing {year_count} years exceeds {threshold}; confirmation required"
        )
