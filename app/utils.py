"""Utility helpers for the ReelVault service."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping
from urllib.parse import urlencode


YEAR_RE = re.compile(r"(18|19|20|21)\d{2}")


def build_request_signature(
    provider: str, endpoint: str, params: Mapping[str, Any] | None = None
) -> str:
    """Return the canonical cache key for an upstream call.

    Parameters are sorted by name and ``None`` values dropped, so the same
    logical request always maps to the same key regardless of argument order.
    Credentials must not be passed in ``params``.
    """

    cleaned = sorted(
        (str(key), str(value))
        for key, value in (params or {}).items()
        if value is not None
    )
    path = "/" + endpoint.strip("/")
    signature = f"{provider}:{path}"
    if cleaned:
        signature = f"{signature}?{urlencode(cleaned)}"
    return signature


def extract_year(value: Any) -> int | None:
    """Return the four digit year contained in ``value``, if any."""

    if isinstance(value, int):
        return value if 1800 <= value <= 2199 else None
    if not value:
        return None
    match = YEAR_RE.search(str(value))
    if not match:
        return None
    return int(match.group(0))


def dedupe_strings(values: Iterable[str | None]) -> list[str]:
    """Strip, drop blanks and remove duplicates while preserving order."""

    seen: set[str] = set()
    cleaned: list[str] = []
    for value in values:
        if not value:
            continue
        text = value.strip()
        if not text or text.casefold() in seen:
            continue
        seen.add(text.casefold())
        cleaned.append(text)
    return cleaned


def split_names(value: str | None) -> list[str]:
    """Split a comma-delimited name list such as ``"Drama, Crime"``."""

    if not value:
        return []
    return dedupe_strings(value.split(","))


def build_image_url(path: str | None, base_url: str) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
