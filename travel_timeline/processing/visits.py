"""Turn stay clusters into place visits."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import replace
from typing import List, Optional, Sequence

from ..config import GEOCODE_TIMEOUT_SECONDS, VISIT_MIN_ACCURACY_M
from ..geo import haversine_m
from ..geocoding.base import GeocodeOutcome
from ..geocoding.cache import GeocodingCache
from ..models import Cluster, Coordinate, GeocodedLocation, LocationSample, PlaceVisit
from ..utils import stable_id


def weighted_center(
    samples: Sequence[LocationSample], min_accuracy_m: float = VISIT_MIN_ACCURACY_M
) -> Coordinate:
    """Accuracy-weighted mean position; precise fixes pull harder."""

    if not samples:
        raise ValueError("Cannot compute the centre of an empty cluster")
    total_weight = 0.0
    lat_sum = 0.0
    lon_sum = 0.0
    for sample in samples:
        weight = 1.0 / max(sample.accuracy_m, min_accuracy_m)
        total_weight += weight
        lat_sum += sample.latitude * weight
        lon_sum += sample.longitude * weight
    return Coordinate(lat_sum / total_weight, lon_sum / total_weight)


def visit_confidence(sample_count: int, average_accuracy_m: float, radius_m: float) -> float:
    """Score in [0, 1] rewarding many samples, good accuracy and a tight radius."""

    count_score = min(sample_count / 10.0, 1.0)
    accuracy_score = max(0.0, 1.0 - average_accuracy_m / 100.0)
    radius_score = max(0.0, 1.0 - radius_m / 200.0)
    score = 0.4 * count_score + 0.3 * accuracy_score + 0.3 * radius_score
    return min(1.0, max(0.0, score))


def visit_id(user_id: str, sample_ids: Sequence[str]) -> str:
    return stable_id("visit", {"user": user_id, "samples": sorted(sample_ids)})


class VisitBuilder:
    """Build ``PlaceVisit`` records from clusters, with optional addresses.

    Geocoding is best effort: a failed or slow lookup leaves the address
    fields empty and the visit is still returned.
    """

    def __init__(
        self,
        geocoding_cache: GeocodingCache | None = None,
        *,
        geocode_timeout_s: float = GEOCODE_TIMEOUT_SECONDS,
        min_accuracy_m: float = VISIT_MIN_ACCURACY_M,
    ) -> None:
        self._geocoding = geocoding_cache
        self.geocode_timeout_s = geocode_timeout_s
        self.min_accuracy_m = min_accuracy_m
        self._log = logging.getLogger(self.__class__.__name__)

    def build(self, cluster: Cluster, user_id: str) -> PlaceVisit:
        """Build a single visit, blocking on its geocode if a cache is set."""

        return self.build_all([cluster], user_id)[0]

    def build_all(self, clusters: Sequence[Cluster], user_id: str) -> List[PlaceVisit]:
        """Build visits for every cluster.

        All geocodes are started before any is awaited so lookups overlap.
        """

        bare = [self._build_geometry(cluster, user_id) for cluster in clusters]
        if self._geocoding is None or not bare:
            return bare

        pending: List[Optional[Future[GeocodeOutcome]]] = []
        for visit in bare:
            try:
                pending.append(
                    self._geocoding.lookup_async(
                        visit.center.latitude, visit.center.longitude
                    )
                )
            except RuntimeError as exc:
                self._log.warning("Geocoding unavailable for visit %s: %s", visit.id, exc)
                pending.append(None)

        visits: List[PlaceVisit] = []
        resolved = 0
        for visit, future in zip(bare, pending):
            location = None
            if future is not None:
                location = self._geocoding.await_outcome(
                    future,
                    visit.center.latitude,
                    visit.center.longitude,
                    self.geocode_timeout_s,
                )
            if location is None:
                visits.append(visit)
                continue
            resolved += 1
            visits.append(_with_address(visit, location))
        self._log.debug("Geocoded %d of %d visits", resolved, len(bare))
        return visits

    def _build_geometry(self, cluster: Cluster, user_id: str) -> PlaceVisit:
        samples = cluster.samples
        center = weighted_center(samples, self.min_accuracy_m)
        radius = max(
            haversine_m(center.latitude, center.longitude, s.latitude, s.longitude)
            for s in samples
        )
        avg_accuracy = sum(s.accuracy_m for s in samples) / len(samples)
        sample_ids = tuple(s.id for s in samples)
        return PlaceVisit(
            id=visit_id(user_id, sample_ids),
            user_id=user_id,
            start_time=cluster.start_time,
            end_time=cluster.end_time,
            center=center,
            radius_m=radius,
            confidence=visit_confidence(len(samples), avg_accuracy, radius),
            source_sample_ids=sample_ids,
        )


def _with_address(visit: PlaceVisit, location: GeocodedLocation) -> PlaceVisit:
    return replace(
        visit,
        address=location.formatted_address,
        city=location.city,
        country=location.country,
        country_code=location.country_code,
        poi_name=location.poi_name,
    )


__all__ = ["VisitBuilder", "weighted_center", "visit_confidence", "visit_id"]
