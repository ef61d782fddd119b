"""Persistence interfaces consumed by the pipeline services."""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import List, Protocol, Sequence

from ..models import LocationSample, PlaceVisit, RouteSegment, Trip, TripDay


class SampleStore(Protocol):
    def get_samples(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[LocationSample]:  # pragma: no cover - protocol
        ...

    def insert_sample(self, sample: LocationSample) -> None:  # pragma: no cover
        ...


class ResultStore(Protocol):
    """Upsert/query access to pipeline output.

    Writes made inside ``transaction()`` are all applied or none are; a
    failed write raises ``PersistenceError``.
    """

    def transaction(self) -> AbstractContextManager[None]:  # pragma: no cover
        ...

    def upsert_visits(self, visits: Sequence[PlaceVisit]) -> None:  # pragma: no cover
        ...

    def upsert_routes(self, routes: Sequence[RouteSegment]) -> None:  # pragma: no cover
        ...

    def upsert_trips(self, trips: Sequence[Trip]) -> None:  # pragma: no cover
        ...

    def upsert_trip_days(self, days: Sequence[TripDay]) -> None:  # pragma: no cover
        ...

    def get_visits(self, user_id: str) -> List[PlaceVisit]:  # pragma: no cover
        ...

    def get_trips(self, user_id: str) -> List[Trip]:  # pragma: no cover
        ...

    def get_routes(self, user_id: str) -> List[RouteSegment]:  # pragma: no cover
        ...

    def get_trip_days(self, trip_id: str) -> List[TripDay]:  # pragma: no cover
        ...

    def soft_delete_visit(self, visit_id: str, at: datetime) -> None:  # pragma: no cover
        ...

    def delete_routes(self, route_ids: Sequence[str]) -> None:  # pragma: no cover
        ...

    def delete_trips(self, trip_ids: Sequence[str]) -> None:  # pragma: no cover
        """Remove trips together with their trip days."""
        ...

    def delete_trip_days(self, day_ids: Sequence[str]) -> None:  # pragma: no cover
        ...


__all__ = ["SampleStore", "ResultStore"]
