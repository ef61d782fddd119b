"""Split a user's visit sequence into trips."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from ..clock import DEFAULT_CLOCK, Clock
from ..config import (
    TRIP_DISTANCE_THRESHOLD_M,
    TRIP_GAP_HOURS,
    TRIP_MAX_SAME_CITY_SPAN_DAYS,
    TRIP_MIN_DURATION_HOURS,
    TRIP_RETURN_RADIUS_M,
)
from ..geo import distance_between
from ..models import Coordinate, PlaceVisit, RouteSegment, Trip
from ..pipeline_config import TripSegmentationStrategy
from ..utils import stable_id

VisitRun = List[PlaceVisit]


def trip_id(user_id: str, first_visit_id: str) -> str:
    # Keyed on the first visit so an ongoing trip keeps its id as it grows.
    return stable_id("trip", {"user": user_id, "first_visit": first_visit_id})


def _country_key(visit: PlaceVisit) -> Optional[str]:
    return visit.country_code or visit.country


def route_in_trip(route: RouteSegment, start: datetime, end: Optional[datetime]) -> bool:
    if route.start_time < start:
        return False
    return end is None or route.start_time <= end


class TripBoundaryDetector:
    """Segment visits into trips with the configured strategy.

    ``HOME_DISTANCE`` keeps maximal runs of visits far from home that last
    long enough. Without a known home every visit forms one trip.

    ``GAP_RETURN`` ignores home and cuts the sequence on long time gaps,
    on returning near the run's first visit, and on a repeated city once
    the run is already longer than ``max_same_city_span``.

    The last trip is left open (``end_time=None``) while its final visit
    ended less than ``trip_gap`` ago.
    """

    def __init__(
        self,
        *,
        strategy: TripSegmentationStrategy = TripSegmentationStrategy.HOME_DISTANCE,
        trip_distance_threshold_m: float = TRIP_DISTANCE_THRESHOLD_M,
        min_trip_duration_hours: float = TRIP_MIN_DURATION_HOURS,
        trip_gap: timedelta = timedelta(hours=TRIP_GAP_HOURS),
        return_radius_m: float = TRIP_RETURN_RADIUS_M,
        max_same_city_span: timedelta = timedelta(days=TRIP_MAX_SAME_CITY_SPAN_DAYS),
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.strategy = TripSegmentationStrategy(strategy)
        self.trip_distance_threshold_m = trip_distance_threshold_m
        self.min_trip_duration_hours = min_trip_duration_hours
        self.trip_gap = trip_gap
        self.return_radius_m = return_radius_m
        self.max_same_city_span = max_same_city_span
        self._clock = clock
        self._log = logging.getLogger(self.__class__.__name__)

    def detect(
        self,
        visits: Sequence[PlaceVisit],
        home: Optional[Coordinate],
        routes: Sequence[RouteSegment] = (),
    ) -> List[Trip]:
        ordered = sorted(
            (v for v in visits if not v.is_deleted), key=lambda v: (v.start_time, v.id)
        )
        if not ordered:
            self._log.debug("No visits to analyse for trip detection")
            return []

        if self.strategy is TripSegmentationStrategy.GAP_RETURN:
            runs, trailing_open = self._split_gap_return(ordered), True
        else:
            runs, trailing_open = self._split_home_distance(ordered, home)

        trips = [
            self._build_trip(run, routes, may_be_ongoing=trailing_open and i == len(runs) - 1)
            for i, run in enumerate(runs)
        ]
        self._log.info(
            "Detected %d trips from %d visits (strategy=%s)",
            len(trips),
            len(ordered),
            self.strategy.value,
        )
        return trips

    def assign(
        self, visits: Sequence[PlaceVisit], trips: Sequence[Trip]
    ) -> List[PlaceVisit]:
        """Copies of ``visits`` with ``trip_id`` set from ``trips``."""

        owner: Dict[str, str] = {}
        for trip in trips:
            for vid in trip.visit_ids:
                owner[vid] = trip.id
        assigned: List[PlaceVisit] = []
        for visit in visits:
            tid = owner.get(visit.id)
            assigned.append(visit if visit.trip_id == tid else replace(visit, trip_id=tid))
        return assigned

    # ------------------------------------------------------------------
    # Segmentation strategies
    # ------------------------------------------------------------------
    def _split_home_distance(
        self, visits: VisitRun, home: Optional[Coordinate]
    ) -> tuple[List[VisitRun], bool]:
        if home is None:
            self._log.warning(
                "Home location unknown; treating all %d visits as one trip", len(visits)
            )
            return [list(visits)], True

        runs: List[VisitRun] = []
        current: VisitRun = []
        for visit in visits:
            away = distance_between(home, visit.center) > self.trip_distance_threshold_m
            if away:
                current.append(visit)
                continue
            if current:
                self._flush_if_long_enough(current, runs)
                current = []
        trailing_open = False
        if current:
            self._flush_if_long_enough(current, runs)
            trailing_open = bool(runs) and runs[-1] is current
        return runs, trailing_open

    def _flush_if_long_enough(self, run: VisitRun, runs: List[VisitRun]) -> None:
        hours = (run[-1].end_time - run[0].start_time).total_seconds() / 3600.0
        if hours >= self.min_trip_duration_hours:
            runs.append(run)
        else:
            self._log.debug(
                "Discarding short away run (%.1fh < %.1fh, %d visits)",
                hours,
                self.min_trip_duration_hours,
                len(run),
            )

    def _split_gap_return(self, visits: VisitRun) -> List[VisitRun]:
        runs: List[VisitRun] = []
        current: VisitRun = [visits[0]]
        for visit in visits[1:]:
            if self._is_boundary(current, visit):
                runs.append(current)
                current = [visit]
            else:
                current.append(visit)
        runs.append(current)
        return runs

    def _is_boundary(self, run: VisitRun, visit: PlaceVisit) -> bool:
        previous = run[-1]
        first = run[0]
        if visit.start_time - previous.end_time > self.trip_gap:
            return True
        if distance_between(first.center, visit.center) <= self.return_radius_m:
            return True
        return (
            visit.city is not None
            and visit.city == previous.city
            and visit.start_time - first.start_time > self.max_same_city_span
        )

    # ------------------------------------------------------------------
    # Trip assembly
    # ------------------------------------------------------------------
    def _build_trip(
        self,
        run: VisitRun,
        routes: Sequence[RouteSegment],
        *,
        may_be_ongoing: bool,
    ) -> Trip:
        first, last = run[0], run[-1]
        end_time: Optional[datetime] = max(v.end_time for v in run)
        if may_be_ongoing and end_time is not None:
            since = self._clock.now() - end_time
            if timedelta(0) <= since <= self.trip_gap:
                end_time = None

        countries = Counter(k for k in (_country_key(v) for v in run) if k)
        distance = sum(
            r.distance_m for r in routes if route_in_trip(r, first.start_time, end_time)
        )
        trip = Trip(
            id=trip_id(first.user_id, first.id),
            user_id=first.user_id,
            start_time=first.start_time,
            end_time=end_time,
            visit_ids=[v.id for v in run],
            countries=frozenset(countries),
            cities=frozenset(v.city for v in run if v.city),
            primary_country=countries.most_common(1)[0][0] if countries else None,
            main_destination=_main_destination(run),
            total_distance_m=distance,
        )
        self._log.debug(
            "Trip %s: %d visits, %s -> %s, ends at %s",
            trip.id,
            len(run),
            trip.start_time,
            trip.end_time or "ongoing",
            last.city or "unknown",
        )
        return trip


def _main_destination(run: VisitRun) -> Optional[str]:
    """City (or POI when the city is unknown) with the most dwell time."""

    dwell: Dict[str, float] = defaultdict(float)
    for visit in run:
        label = visit.city or visit.poi_name
        if label:
            dwell[label] += visit.duration.total_seconds()
    if not dwell:
        return None
    return max(dwell.items(), key=lambda item: item[1])[0]


__all__ = ["TripBoundaryDetector", "route_in_trip", "trip_id"]
