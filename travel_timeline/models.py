"""Dataclasses describing samples, visits, routes, trips and timelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import FrozenSet, List, Literal, Optional, Tuple, Union

import polyline


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_tuple(self) -> Tuple[float, float]:
        return self.latitude, self.longitude


class SampleSource(str, Enum):
    """Where a location fix came from."""

    SATELLITE = "satellite"
    NETWORK = "network"
    VISIT = "visit"


class TransportType(str, Enum):
    WALK = "walk"
    BIKE = "bike"
    CAR = "car"
    TRAIN = "train"
    FLIGHT = "flight"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single persisted location fix.

    Attributes:
        accuracy_m: Reported horizontal accuracy in metres.
        speed_mps: Device-reported speed. ``None`` when the fix has no speed.
        trip_id: Optional trip association made by the tracking layer.
    """

    id: str
    timestamp: datetime
    latitude: float
    longitude: float
    accuracy_m: float
    user_id: str
    device_id: str
    source: SampleSource = SampleSource.SATELLITE
    speed_mps: Optional[float] = None
    bearing: Optional[float] = None
    altitude_m: Optional[float] = None
    trip_id: Optional[str] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass(slots=True)
class Cluster:
    """Transient group of samples produced by the clusterer."""

    samples: List[LocationSample]
    centroid: Coordinate
    start_time: datetime
    end_time: datetime

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True, slots=True)
class GeocodedLocation:
    """Reverse geocoding result, optionally stamped for caching."""

    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    postal_code: Optional[str] = None
    poi_name: Optional[str] = None
    cached_at: Optional[datetime] = None
    ttl: Optional[timedelta] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.cached_at is None or self.ttl is None:
            return None
        return self.cached_at + self.ttl

    def is_expired(self, now: datetime) -> bool:
        expires = self.expires_at
        return expires is not None and now >= expires


@dataclass(frozen=True, slots=True)
class PlaceVisit:
    id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    center: Coordinate
    radius_m: float
    confidence: float
    source_sample_ids: Tuple[str, ...] = ()
    trip_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    poi_name: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True, slots=True)
class RouteSegment:
    id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    start: Coordinate
    end: Coordinate
    transport_type: TransportType
    distance_m: float
    simplified_path: Tuple[Coordinate, ...]
    from_visit_id: Optional[str] = None
    to_visit_id: Optional[str] = None
    sample_ids: Tuple[str, ...] = ()
    average_speed_mps: Optional[float] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def encoded_path(self) -> str:
        """Simplified path as a Google encoded polyline string."""

        return polyline.encode([c.as_tuple() for c in self.simplified_path])


@dataclass(slots=True)
class Trip:
    id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime]
    visit_ids: List[str] = field(default_factory=list)
    countries: FrozenSet[str] = frozenset()
    cities: FrozenSet[str] = frozenset()
    primary_country: Optional[str] = None
    main_destination: Optional[str] = None
    total_distance_m: float = 0.0

    @property
    def is_ongoing(self) -> bool:
        return self.end_time is None


# Timeline items form a closed union: each variant carries only its own data.


@dataclass(frozen=True, slots=True)
class DayStart:
    timestamp: datetime
    kind: Literal["day_start"] = "day_start"


@dataclass(frozen=True, slots=True)
class VisitItem:
    timestamp: datetime
    visit: PlaceVisit
    kind: Literal["visit"] = "visit"


@dataclass(frozen=True, slots=True)
class RouteItem:
    timestamp: datetime
    route: RouteSegment
    kind: Literal["route"] = "route"


@dataclass(frozen=True, slots=True)
class DayEnd:
    timestamp: datetime
    kind: Literal["day_end"] = "day_end"


TimelineItem = Union[DayStart, VisitItem, RouteItem, DayEnd]


@dataclass(slots=True)
class TripDay:
    """Derived per-day timeline of a trip. Always recomputable."""

    id: str
    trip_id: str
    date: date
    items: List[TimelineItem] = field(default_factory=list)

    @property
    def visits(self) -> List[PlaceVisit]:
        return [item.visit for item in self.items if isinstance(item, VisitItem)]

    @property
    def routes(self) -> List[RouteSegment]:
        return [item.route for item in self.items if isinstance(item, RouteItem)]


@dataclass(slots=True)
class HomeCandidate:
    """Visit group scored as a potential home location."""

    location: Coordinate
    nights_spent: int
    total_hours: float
    last_visit_time: datetime
    visit_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ProcessingResult:
    visits: List[PlaceVisit] = field(default_factory=list)
    routes: List[RouteSegment] = field(default_factory=list)
    trips: List[Trip] = field(default_factory=list)
    trip_days: List[TripDay] = field(default_factory=list)
    home: Optional[HomeCandidate] = None

    @property
    def is_empty(self) -> bool:
        return not (self.visits or self.routes or self.trips or self.trip_days)
