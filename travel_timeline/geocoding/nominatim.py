"""Reverse geocoder backed by the OpenStreetMap Nominatim API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import requests
from requests import Session

from ..config import (
    NOMINATIM_ACCEPT_LANGUAGE,
    NOMINATIM_BASE_URL,
    NOMINATIM_USER_AGENT,
    NOMINATIM_ZOOM,
    REQUEST_TIMEOUT,
)
from ..errors import GeocodingError
from ..models import GeocodedLocation
from .rate_limiter import RateLimiter
from .response_handling import classify_response_status, safe_json
from .session import create_geocoding_session

# Nominatim reports the locality under whichever key fits the place size.
_CITY_KEYS = ("city", "town", "village", "municipality", "hamlet", "suburb")


@dataclass(frozen=True, slots=True)
class NominatimConfig:
    """Request parameters for the Nominatim reverse endpoint."""

    base_url: str = NOMINATIM_BASE_URL
    accept_language: str = NOMINATIM_ACCEPT_LANGUAGE
    zoom: int = NOMINATIM_ZOOM
    timeout_seconds: float = REQUEST_TIMEOUT
    user_agent: str = NOMINATIM_USER_AGENT


class NominatimReverseGeocoder:
    """``ReverseGeocoder`` implementation for Nominatim.

    Returns ``None`` when the service knows no address for the point and
    raises :class:`GeocodingError` (or a subclass) for transport failures and
    error statuses.
    """

    def __init__(
        self,
        config: NominatimConfig | None = None,
        *,
        session: Session | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config or NominatimConfig()
        self._session = session or create_geocoding_session(self.config.user_agent)
        self._limiter = limiter or RateLimiter()
        self._log = logging.getLogger(self.__class__.__name__)

    def reverse_geocode(
        self, latitude: float, longitude: float
    ) -> Optional[GeocodedLocation]:
        params = {
            "format": "jsonv2",
            "lat": f"{latitude:.7f}",
            "lon": f"{longitude:.7f}",
            "zoom": str(self.config.zoom),
            "addressdetails": "1",
            "accept-language": self.config.accept_language,
        }
        context = f"Reverse geocode ({latitude:.5f}, {longitude:.5f})"
        self._limiter.before_request()
        response: requests.Response | None = None
        try:
            response = self._session.get(
                self.config.base_url,
                params=params,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise GeocodingError(f"{context} failed: {exc}") from exc
        finally:
            self._limiter.after_response(
                response.headers if response is not None else None,
                response.status_code if response is not None else None,
            )

        action, error = classify_response_status(response, context)
        if action == "raise" and error is not None:
            raise error
        if action == "missing":
            return None

        payload = safe_json(response)
        if not isinstance(payload, dict):
            raise GeocodingError(f"{context} returned a non-JSON payload")
        if payload.get("error"):
            self._log.debug("%s: %s", context, payload.get("error"))
            return None
        return parse_reverse_payload(latitude, longitude, payload)


def _first(address: Mapping[str, Any], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if value:
            return str(value)
    return None


def parse_reverse_payload(
    latitude: float, longitude: float, payload: Mapping[str, Any]
) -> GeocodedLocation:
    """Map a Nominatim ``jsonv2`` reverse response onto ``GeocodedLocation``.

    The query coordinate is kept so cache entries sit where they were asked
    for, not where the matched OSM object happens to be.
    """

    address = payload.get("address") or {}
    if not isinstance(address, Mapping):
        address = {}
    country_code = address.get("country_code")
    return GeocodedLocation(
        latitude=latitude,
        longitude=longitude,
        formatted_address=payload.get("display_name") or None,
        city=_first(address, _CITY_KEYS),
        state=_first(address, ("state", "region", "province")),
        country=address.get("country") or None,
        country_code=str(country_code).upper() if country_code else None,
        postal_code=address.get("postcode") or None,
        poi_name=payload.get("name") or None,
    )


__all__ = ["NominatimConfig", "NominatimReverseGeocoder", "parse_reverse_payload"]
