"""Interfaces shared by reverse geocoders and the geocoding cache."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol

from ..geo import BoundingBox
from ..models import GeocodedLocation


class ReverseGeocoder(Protocol):
    """External address lookup. May raise ``GeocodingError`` on failure."""

    def reverse_geocode(
        self, latitude: float, longitude: float
    ) -> Optional[GeocodedLocation]:  # pragma: no cover - protocol
        ...


class GeocodingCacheStore(Protocol):
    """Persistence for cached geocoding results."""

    def query_bbox(
        self, box: BoundingBox, now: datetime
    ) -> List[GeocodedLocation]:  # pragma: no cover - protocol
        """Unexpired entries whose coordinates fall inside ``box``."""
        ...

    def put(self, location: GeocodedLocation) -> None:  # pragma: no cover
        ...

    def clear_expired(self, now: datetime) -> int:  # pragma: no cover
        ...

    def clear(self) -> None:  # pragma: no cover
        ...

    def count(self, now: datetime) -> int:  # pragma: no cover
        ...


@dataclass(frozen=True, slots=True)
class GeocodeOutcome:
    """Result-or-error of one lookup."""

    location: Optional[GeocodedLocation] = None
    error: Optional[BaseException] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = ["ReverseGeocoder", "GeocodingCacheStore", "GeocodeOutcome"]
