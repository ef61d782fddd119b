"""Home location detection from repeated long stays."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from ..config import HOME_MIN_NIGHTS, HOME_NIGHT_MIN_HOURS, HOME_RADIUS_M
from ..geo import distance_between, mean_coordinate
from ..models import Coordinate, HomeCandidate, PlaceVisit


class HomeLocationDetector:
    """Find the place where most nights are spent.

    Visits are grouped greedily: each not-yet-grouped visit seeds a group
    and pulls in every other ungrouped visit within ``home_radius_m`` of it.
    A visit lasting at least ``night_min_duration`` counts as one night.
    """

    def __init__(
        self,
        *,
        home_radius_m: float = HOME_RADIUS_M,
        min_nights_for_home: int = HOME_MIN_NIGHTS,
        night_min_duration: timedelta = timedelta(hours=HOME_NIGHT_MIN_HOURS),
    ) -> None:
        self.home_radius_m = home_radius_m
        self.min_nights_for_home = min_nights_for_home
        self.night_min_duration = night_min_duration
        self._log = logging.getLogger(self.__class__.__name__)

    def detect(self, visits: Sequence[PlaceVisit]) -> Optional[HomeCandidate]:
        active = sorted(
            (v for v in visits if not v.is_deleted), key=lambda v: (v.start_time, v.id)
        )
        if not active:
            self._log.debug("No visits to analyse for home detection")
            return None

        candidates = [self._score(group) for group in self._group(active)]
        qualified = [c for c in candidates if c.nights_spent >= self.min_nights_for_home]
        if not qualified:
            self._log.info(
                "No home detected: no place with >= %d nights among %d groups",
                self.min_nights_for_home,
                len(candidates),
            )
            return None

        best = max(qualified, key=lambda c: (c.nights_spent, c.total_hours))
        self._log.info(
            "Detected home at (%.5f, %.5f): %d nights, %.1f hours",
            best.location.latitude,
            best.location.longitude,
            best.nights_spent,
            best.total_hours,
        )
        return best

    def detect_location(self, visits: Sequence[PlaceVisit]) -> Optional[Coordinate]:
        candidate = self.detect(visits)
        return candidate.location if candidate is not None else None

    def _group(self, visits: List[PlaceVisit]) -> List[List[PlaceVisit]]:
        grouped: set[str] = set()
        groups: List[List[PlaceVisit]] = []
        for seed in visits:
            if seed.id in grouped:
                continue
            grouped.add(seed.id)
            group = [seed]
            for other in visits:
                if other.id in grouped:
                    continue
                if distance_between(seed.center, other.center) <= self.home_radius_m:
                    grouped.add(other.id)
                    group.append(other)
            groups.append(group)
        return groups

    def _score(self, group: List[PlaceVisit]) -> HomeCandidate:
        nights = sum(1 for v in group if v.duration >= self.night_min_duration)
        hours = sum(v.duration.total_seconds() for v in group) / 3600.0
        return HomeCandidate(
            location=mean_coordinate(v.center for v in group),
            nights_spent=nights,
            total_hours=hours,
            last_visit_time=max(v.end_time for v in group),
            visit_ids=[v.id for v in group],
        )


__all__ = ["HomeLocationDetector"]
