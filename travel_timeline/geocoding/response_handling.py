"""HTTP response helpers for geocoding service interactions."""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import requests

from ..errors import (
    GeocoderPermissionError,
    GeocoderRateLimitedError,
    GeocodingError,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    "classify_response_status",
    "extract_error",
    "safe_json",
]


def classify_response_status(
    response: requests.Response,
    context: str,
) -> Tuple[str, Optional[Exception]]:
    """Return action for a response: ok, missing, or raise.

    ``missing`` means the service answered but knows no address for the
    point, which is not an error.
    """

    status = response.status_code
    detail = extract_error(response)

    def with_detail(message: str) -> str:
        return f"{message} | {detail}" if detail else message

    if status == 429:
        message = with_detail(f"{context} rate limited (429)")
        LOGGER.warning(message)
        return "raise", GeocoderRateLimitedError(message)

    if status in (401, 403):
        message = with_detail(f"{context} forbidden (status {status})")
        LOGGER.warning(message)
        return "raise", GeocoderPermissionError(message)

    if status == 404:
        LOGGER.info("%s: no address found", context)
        return "missing", None

    if 400 <= status < 600:
        message = with_detail(f"{context} request failed (status {status})")
        LOGGER.error(message)
        return "raise", GeocodingError(message)

    return "ok", None


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Return a compact error string from a JSON or plain-text body."""

    if resp is None:
        return None
    data = safe_json(resp)
    if data is None:
        return _extract_error_text(resp)
    if isinstance(data, dict):
        message = data.get("error")
        if isinstance(message, dict):
            message = message.get("message")
        return str(message) if message else None
    return None


def safe_json(resp: requests.Response) -> Optional[Any]:
    """Safely parse JSON; return None if parsing fails."""

    try:
        return resp.json()
    except ValueError as exc:  # requests' JSONDecodeError subclasses ValueError
        LOGGER.debug(
            "Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc
        )
        return None


def _extract_error_text(resp: requests.Response) -> Optional[str]:
    """Best-effort plain-text extraction when JSON parsing fails."""

    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    return (trimmed[:297] + "...") if len(trimmed) > 300 else trimmed
