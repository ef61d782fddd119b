"""End-to-end processing of one user's location samples.

``LocationPipeline.process`` wires the pure stages together:

    samples -> clusters -> visits (+ addresses) -> routes -> home -> trips -> days

Every stage gets its parameters from the ``PipelineConfig`` passed to the call,
so two runs with the same samples and config produce identical output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Sequence

from ..clock import DEFAULT_CLOCK, Clock
from ..geocoding.cache import GeocodingCache
from ..models import LocationSample, PlaceVisit, ProcessingResult
from ..pipeline_config import PipelineConfig
from ..processing import (
    DayAggregator,
    HomeLocationDetector,
    PathSimplifier,
    RouteSegmentBuilder,
    SpatiotemporalClusterer,
    TransportClassifier,
    TripBoundaryDetector,
    VisitBuilder,
)
from ..utils import dedupe_samples


def setup_logging(level: int = logging.INFO) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=level,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _single_user(
    samples: Sequence[LocationSample], visits: Iterable[PlaceVisit]
) -> str | None:
    users = {s.user_id for s in samples} | {v.user_id for v in visits}
    if len(users) > 1:
        raise ValueError(
            f"process() handles one user at a time; got {len(users)} users"
        )
    return next(iter(users), None)


def merge_visits(
    existing: Sequence[PlaceVisit], fresh: Sequence[PlaceVisit]
) -> List[PlaceVisit]:
    """Combine persisted visits with freshly built ones.

    A fresh visit replaces the persisted visit with the same id but keeps its
    soft-delete marker. Persisted visits that share samples with a fresh
    visit of a different id are superseded and dropped.
    """

    fresh_ids = {v.id for v in fresh}
    fresh_samples = {sid for v in fresh for sid in v.source_sample_ids}
    merged: Dict[str, PlaceVisit] = {}
    for visit in existing:
        if visit.id not in fresh_ids and fresh_samples.intersection(
            visit.source_sample_ids
        ):
            continue
        merged[visit.id] = visit
    for visit in fresh:
        previous = merged.get(visit.id)
        if previous is not None and previous.is_deleted:
            visit = replace(visit, deleted_at=previous.deleted_at)
        merged[visit.id] = visit
    return sorted(merged.values(), key=lambda v: (v.start_time, v.id))


@dataclass(slots=True)
class LocationPipelineConfig:
    geocoding_cache: GeocodingCache | None = None
    clock: Clock = DEFAULT_CLOCK
    logger: logging.Logger | None = None


class LocationPipeline:
    def __init__(self, config: LocationPipelineConfig | None = None):
        self.config = config or LocationPipelineConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def process(
        self,
        samples: Sequence[LocationSample],
        config: PipelineConfig | None = None,
        existing_visits: Sequence[PlaceVisit] = (),
    ) -> ProcessingResult:
        """Run every stage for one user's samples.

        ``existing_visits`` are previously persisted visits for the same user
        (for example from an earlier batch over an overlapping time range);
        they take part in routing, home and trip detection.

        Raises:
            ValueError: When samples or visits belong to more than one user.
        """

        cfg = config or PipelineConfig()
        user_id = _single_user(samples, existing_visits)
        if user_id is None:
            return ProcessingResult()

        ordered = dedupe_samples(samples)
        clusters = SpatiotemporalClusterer(
            epsilon_m=cfg.epsilon_m,
            min_points=cfg.min_points,
            time_window=cfg.time_window,
            min_stay_duration=cfg.min_stay_duration,
            accuracy_inflation_cap_m=cfg.accuracy_inflation_cap_m,
        ).cluster(ordered)

        fresh = VisitBuilder(
            self.config.geocoding_cache, geocode_timeout_s=cfg.geocode_timeout_s
        ).build_all(clusters, user_id)
        visits = [v for v in merge_visits(existing_visits, fresh) if not v.is_deleted]

        routes = RouteSegmentBuilder(
            PathSimplifier(cfg.path_simplification_epsilon_m),
            TransportClassifier(cfg.transport),
        ).build(visits, ordered)

        home = HomeLocationDetector(
            home_radius_m=cfg.home_radius_m,
            min_nights_for_home=cfg.min_nights_for_home,
            night_min_duration=cfg.night_min_duration,
        ).detect(visits)

        detector = TripBoundaryDetector(
            strategy=cfg.trip_strategy,
            trip_distance_threshold_m=cfg.trip_distance_threshold_m,
            min_trip_duration_hours=cfg.min_trip_duration_hours,
            trip_gap=cfg.trip_gap,
            return_radius_m=cfg.return_radius_m,
            max_same_city_span=cfg.max_same_city_span,
            clock=self.config.clock,
        )
        trips = detector.detect(visits, home.location if home else None, routes)
        visits = detector.assign(visits, trips)

        trip_days = DayAggregator(cfg.timezone).aggregate_all(trips, visits, routes)

        self._log.info(
            "user=%s samples=%d clusters=%d visits=%d routes=%d trips=%d days=%d",
            user_id,
            len(ordered),
            len(clusters),
            len(visits),
            len(routes),
            len(trips),
            len(trip_days),
        )
        return ProcessingResult(
            visits=visits,
            routes=routes,
            trips=trips,
            trip_days=trip_days,
            home=home,
        )


__all__ = [
    "LocationPipeline",
    "LocationPipelineConfig",
    "merge_visits",
    "setup_logging",
]
