"""Reverse geocoding: cache service, stores and the Nominatim client."""

from .base import GeocodeOutcome, GeocodingCacheStore, ReverseGeocoder
from .cache import GeocodingCache, GeocodingCacheConfig
from .nominatim import NominatimConfig, NominatimReverseGeocoder
from .store import InMemoryGeocodingCacheStore, SqliteGeocodingCacheStore

__all__ = [
    "GeocodeOutcome",
    "GeocodingCacheStore",
    "ReverseGeocoder",
    "GeocodingCache",
    "GeocodingCacheConfig",
    "NominatimConfig",
    "NominatimReverseGeocoder",
    "InMemoryGeocodingCacheStore",
    "SqliteGeocodingCacheStore",
]
