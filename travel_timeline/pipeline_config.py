"""Explicit configuration objects passed into the processing pipeline.

Defaults come from :mod:`travel_timeline.config`; callers override fields per
run instead of relying on module-level state inside the stages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import config

LOGGER = logging.getLogger(__name__)


class TripSegmentationStrategy(str, Enum):
    """Which heuristic turns a visit sequence into trips."""

    # Runs of visits far from the detected home location.
    HOME_DISTANCE = "home_distance"
    # Time gaps, returns to the run's first place, and long same-city stays.
    GAP_RETURN = "gap_return"


@dataclass(frozen=True, slots=True)
class TransportThresholds:
    """Speed (km/h) and distance (km) cut-offs for transport classification."""

    walk_max_kmh: float = config.TRANSPORT_WALK_MAX_KMH
    bike_max_kmh: float = config.TRANSPORT_BIKE_MAX_KMH
    car_max_speed_kmh: float = config.TRANSPORT_CAR_MAX_SPEED_KMH
    car_max_distance_km: float = config.TRANSPORT_CAR_MAX_DISTANCE_KM
    train_min_avg_kmh: float = config.TRANSPORT_TRAIN_MIN_AVG_KMH
    train_min_distance_km: float = config.TRANSPORT_TRAIN_MIN_DISTANCE_KM
    train_max_speed_cv: float = config.TRANSPORT_TRAIN_MAX_SPEED_CV
    flight_min_speed_kmh: float = config.TRANSPORT_FLIGHT_MIN_SPEED_KMH
    flight_min_distance_km: float = config.TRANSPORT_FLIGHT_MIN_DISTANCE_KM

    def __post_init__(self) -> None:
        if not 0 < self.walk_max_kmh <= self.bike_max_kmh:
            raise ValueError("walk_max_kmh must be > 0 and <= bike_max_kmh")
        if self.train_max_speed_cv <= 0:
            raise ValueError("train_max_speed_cv must be > 0")


def _default_strategy() -> TripSegmentationStrategy:
    try:
        return TripSegmentationStrategy(config.TRIP_STRATEGY.lower())
    except ValueError:
        LOGGER.warning(
            "Unknown TRIP_STRATEGY %r; falling back to %s",
            config.TRIP_STRATEGY,
            TripSegmentationStrategy.HOME_DISTANCE.value,
        )
        return TripSegmentationStrategy.HOME_DISTANCE


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Every tunable of one pipeline run."""

    # Clustering
    epsilon_m: float = config.CLUSTER_EPSILON_M
    min_points: int = config.CLUSTER_MIN_POINTS
    time_window: timedelta = timedelta(minutes=config.CLUSTER_TIME_WINDOW_MINUTES)
    min_stay_duration: timedelta = timedelta(minutes=config.CLUSTER_MIN_STAY_MINUTES)
    accuracy_inflation_cap_m: float = config.CLUSTER_ACCURACY_INFLATION_CAP_M

    # Home detection
    home_radius_m: float = config.HOME_RADIUS_M
    min_nights_for_home: int = config.HOME_MIN_NIGHTS
    night_min_duration: timedelta = timedelta(hours=config.HOME_NIGHT_MIN_HOURS)

    # Trip segmentation
    trip_strategy: TripSegmentationStrategy = field(default_factory=_default_strategy)
    trip_distance_threshold_m: float = config.TRIP_DISTANCE_THRESHOLD_M
    min_trip_duration_hours: float = config.TRIP_MIN_DURATION_HOURS
    trip_gap: timedelta = timedelta(hours=config.TRIP_GAP_HOURS)
    return_radius_m: float = config.TRIP_RETURN_RADIUS_M
    max_same_city_span: timedelta = timedelta(days=config.TRIP_MAX_SAME_CITY_SPAN_DAYS)

    # Routes
    transport: TransportThresholds = field(default_factory=TransportThresholds)
    path_simplification_epsilon_m: float = config.PATH_SIMPLIFICATION_EPSILON_M

    # Day aggregation
    timezone: str = config.TIMELINE_TIMEZONE

    # Geocoding
    geocode_timeout_s: float = config.GEOCODE_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.epsilon_m <= 0:
            raise ValueError("epsilon_m must be > 0")
        if self.min_points < 1:
            raise ValueError("min_points must be >= 1")
        if self.time_window <= timedelta(0):
            raise ValueError("time_window must be positive")
        if self.min_stay_duration < timedelta(0):
            raise ValueError("min_stay_duration must not be negative")
        if self.accuracy_inflation_cap_m < 0:
            raise ValueError("accuracy_inflation_cap_m must not be negative")
        if self.home_radius_m <= 0:
            raise ValueError("home_radius_m must be > 0")
        if self.min_nights_for_home < 1:
            raise ValueError("min_nights_for_home must be >= 1")
        if self.trip_distance_threshold_m <= 0:
            raise ValueError("trip_distance_threshold_m must be > 0")
        if self.min_trip_duration_hours < 0:
            raise ValueError("min_trip_duration_hours must not be negative")
        if self.trip_gap <= timedelta(0):
            raise ValueError("trip_gap must be positive")
        if self.path_simplification_epsilon_m < 0:
            raise ValueError("path_simplification_epsilon_m must not be negative")
        if self.geocode_timeout_s <= 0:
            raise ValueError("geocode_timeout_s must be > 0")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {self.timezone!r}") from exc

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


__all__ = ["PipelineConfig", "TransportThresholds", "TripSegmentationStrategy"]
