from __future__ import annotations

from collections.abc import Mapping

RETRY_AFTER_HEADER = "Retry-After"


def get_header(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Return one response header value using a case-insensitive name match."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def retry_after(headers: Mapping[str, str] | None) -> str | None:
    """Return the non-blank ``Retry-After`` hint from response headers."""
    value = get_header(headers, RETRY_AFTER_HEADER)
    if value is None or value.strip() == "":
        return None
    return value.strip()
