"""In-memory stores used for tests and single-process runs."""

from __future__ import annotations

import bisect
import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterator, List, Sequence

from ..errors import PersistenceError
from ..models import LocationSample, PlaceVisit, RouteSegment, Trip, TripDay

LOGGER = logging.getLogger(__name__)


class InMemorySampleStore:
    """Samples per user kept sorted by timestamp."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: Dict[str, List[LocationSample]] = {}
        self._ids: set[str] = set()

    def insert_sample(self, sample: LocationSample) -> None:
        with self._lock:
            if sample.id in self._ids:
                LOGGER.debug("Ignoring duplicate sample id=%s", sample.id)
                return
            self._ids.add(sample.id)
            rows = self._samples.setdefault(sample.user_id, [])
            keys = [(s.timestamp, s.id) for s in rows]
            rows.insert(bisect.bisect_right(keys, (sample.timestamp, sample.id)), sample)

    def insert_many(self, samples: Sequence[LocationSample]) -> None:
        for sample in samples:
            self.insert_sample(sample)

    def get_samples(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[LocationSample]:
        """Samples with ``start <= timestamp <= end``."""

        with self._lock:
            return [
                s for s in self._samples.get(user_id, []) if start <= s.timestamp <= end
            ]

    def user_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._samples)


class InMemoryResultStore:
    """Keyed-by-id result tables with snapshot rollback.

    ``fail_next_writes`` makes the next N upsert calls raise
    ``PersistenceError``, which lets callers exercise retry paths.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._visits: Dict[str, PlaceVisit] = {}
        self._routes: Dict[str, RouteSegment] = {}
        self._trips: Dict[str, Trip] = {}
        self._trip_days: Dict[str, TripDay] = {}
        self.fail_next_writes = 0
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = (
                dict(self._visits),
                dict(self._routes),
                copy.deepcopy(self._trips),
                copy.deepcopy(self._trip_days),
            )
            try:
                yield
            except BaseException:
                self._visits, self._routes, self._trips, self._trip_days = snapshot
                self.rollbacks += 1
                raise
            self.commits += 1

    def _check_write(self, table: str) -> None:
        if self.fail_next_writes > 0:
            self.fail_next_writes -= 1
            raise PersistenceError(f"Simulated write failure on {table}")

    def upsert_visits(self, visits: Sequence[PlaceVisit]) -> None:
        with self._lock:
            self._check_write("visits")
            for visit in visits:
                existing = self._visits.get(visit.id)
                if existing is not None and existing.is_deleted and not visit.is_deleted:
                    visit = replace(visit, deleted_at=existing.deleted_at)
                self._visits[visit.id] = visit

    def upsert_routes(self, routes: Sequence[RouteSegment]) -> None:
        with self._lock:
            self._check_write("routes")
            for route in routes:
                self._routes[route.id] = route

    def upsert_trips(self, trips: Sequence[Trip]) -> None:
        with self._lock:
            self._check_write("trips")
            for trip in trips:
                self._trips[trip.id] = copy.deepcopy(trip)

    def upsert_trip_days(self, days: Sequence[TripDay]) -> None:
        with self._lock:
            self._check_write("trip_days")
            for day in days:
                self._trip_days[day.id] = copy.deepcopy(day)

    def get_visits(self, user_id: str) -> List[PlaceVisit]:
        with self._lock:
            return sorted(
                (v for v in self._visits.values() if v.user_id == user_id),
                key=lambda v: (v.start_time, v.id),
            )

    def get_routes(self, user_id: str) -> List[RouteSegment]:
        with self._lock:
            return sorted(
                (r for r in self._routes.values() if r.user_id == user_id),
                key=lambda r: (r.start_time, r.id),
            )

    def get_trips(self, user_id: str) -> List[Trip]:
        with self._lock:
            return sorted(
                (copy.deepcopy(t) for t in self._trips.values() if t.user_id == user_id),
                key=lambda t: (t.start_time, t.id),
            )

    def get_trip_days(self, trip_id: str) -> List[TripDay]:
        with self._lock:
            return sorted(
                (copy.deepcopy(d) for d in self._trip_days.values() if d.trip_id == trip_id),
                key=lambda d: d.date,
            )

    def soft_delete_visit(self, visit_id: str, at: datetime) -> None:
        with self._lock:
            visit = self._visits.get(visit_id)
            if visit is None:
                raise KeyError(visit_id)
            if visit.deleted_at is None:
                self._visits[visit_id] = replace(visit, deleted_at=at)

    def delete_routes(self, route_ids: Sequence[str]) -> None:
        with self._lock:
            self._check_write("routes")
            for route_id in route_ids:
                self._routes.pop(route_id, None)

    def delete_trips(self, trip_ids: Sequence[str]) -> None:
        with self._lock:
            self._check_write("trips")
            doomed = set(trip_ids)
            for trip_id in doomed:
                self._trips.pop(trip_id, None)
            self._trip_days = {
                k: d for k, d in self._trip_days.items() if d.trip_id not in doomed
            }

    def delete_trip_days(self, day_ids: Sequence[str]) -> None:
        with self._lock:
            self._check_write("trip_days")
            for day_id in day_ids:
                self._trip_days.pop(day_id, None)


__all__ = ["InMemorySampleStore", "InMemoryResultStore"]
