"""Build route segments for the movement between consecutive visits."""

from __future__ import annotations

import bisect
import logging
from typing import List, Sequence

from ..geo import path_length_m
from ..models import LocationSample, PlaceVisit, RouteSegment
from ..utils import dedupe_samples, stable_id
from .simplify import PathSimplifier
from .transport import TransportClassifier


def route_id(user_id: str, from_visit_id: str, to_visit_id: str) -> str:
    return stable_id("route", {"user": user_id, "from": from_visit_id, "to": to_visit_id})


class RouteSegmentBuilder:
    """Connect each pair of consecutive visits with a ``RouteSegment``.

    The path runs from the first visit's centre through every sample
    recorded strictly between the two visits to the second visit's centre.
    Transport is classified from those in-between samples only.
    """

    def __init__(
        self,
        simplifier: PathSimplifier | None = None,
        classifier: TransportClassifier | None = None,
    ) -> None:
        self.simplifier = simplifier or PathSimplifier()
        self.classifier = classifier or TransportClassifier()
        self._log = logging.getLogger(self.__class__.__name__)

    def build(
        self,
        visits: Sequence[PlaceVisit],
        samples: Sequence[LocationSample],
    ) -> List[RouteSegment]:
        ordered_visits = sorted(
            (v for v in visits if not v.is_deleted), key=lambda v: (v.start_time, v.id)
        )
        if len(ordered_visits) < 2:
            return []

        ordered_samples = dedupe_samples(samples)
        timestamps = [s.timestamp for s in ordered_samples]
        routes: List[RouteSegment] = []
        for prev, nxt in zip(ordered_visits, ordered_visits[1:]):
            if nxt.start_time < prev.end_time:
                self._log.debug(
                    "Skipping overlapping visits %s -> %s", prev.id, nxt.id
                )
                continue
            lo = bisect.bisect_right(timestamps, prev.end_time)
            hi = bisect.bisect_left(timestamps, nxt.start_time)
            owned = set(prev.source_sample_ids) | set(nxt.source_sample_ids)
            gap = [s for s in ordered_samples[lo:hi] if s.id not in owned]
            routes.append(self._build_segment(prev, nxt, gap))

        self._log.debug(
            "Built %d routes between %d visits", len(routes), len(ordered_visits)
        )
        return routes

    def _build_segment(
        self,
        prev: PlaceVisit,
        nxt: PlaceVisit,
        gap: Sequence[LocationSample],
    ) -> RouteSegment:
        path = [prev.center, *(s.coordinate for s in gap), nxt.center]
        distance = path_length_m([c.as_tuple() for c in path])
        duration_s = (nxt.start_time - prev.end_time).total_seconds()
        return RouteSegment(
            id=route_id(prev.user_id, prev.id, nxt.id),
            user_id=prev.user_id,
            start_time=prev.end_time,
            end_time=nxt.start_time,
            start=prev.center,
            end=nxt.center,
            transport_type=self.classifier.classify(gap),
            distance_m=distance,
            simplified_path=tuple(self.simplifier.simplify(path)),
            from_visit_id=prev.id,
            to_visit_id=nxt.id,
            sample_ids=tuple(s.id for s in gap),
            average_speed_mps=distance / duration_s if duration_s > 0 else None,
        )


__all__ = ["RouteSegmentBuilder", "route_id"]
