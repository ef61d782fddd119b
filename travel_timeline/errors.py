"""Central error types used across the application."""

from __future__ import annotations


class TravelTimelineError(RuntimeError):
    """Base error for the travel timeline package."""


class GeocodingError(TravelTimelineError):
    """Raised when a reverse geocoding request fails."""


class GeocoderRateLimitedError(GeocodingError):
    """Raised when the geocoding service throttles requests (HTTP 429)."""


class GeocoderPermissionError(GeocodingError):
    """Raised when the geocoding service rejects the client (HTTP 401/403)."""


class PersistenceError(TravelTimelineError):
    """Raised when writing pipeline results to the result store fails."""


class BatchProcessingError(TravelTimelineError):
    """Raised when a user's batch keeps failing after every retry."""


__all__ = [
    "TravelTimelineError",
    "GeocodingError",
    "GeocoderRateLimitedError",
    "GeocoderPermissionError",
    "PersistenceError",
    "BatchProcessingError",
]
