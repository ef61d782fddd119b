"""Rule-based transport mode classification from speed and distance."""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from typing import Optional, Sequence

from ..geo import path_length_m
from ..models import LocationSample, TransportType
from ..pipeline_config import TransportThresholds

MPS_TO_KMH = 3.6


@dataclass(frozen=True, slots=True)
class MovementStats:
    """Speed summary (km/h) and travelled distance (km) of one movement."""

    average_kmh: float
    max_kmh: float
    speed_cv: float
    distance_km: float
    speed_count: int


def movement_stats(samples: Sequence[LocationSample]) -> Optional[MovementStats]:
    """Summarise a run of samples; ``None`` when no sample reports a speed."""

    speeds = [
        s.speed_mps * MPS_TO_KMH
        for s in samples
        if s.speed_mps is not None and s.speed_mps >= 0
    ]
    if not speeds:
        return None
    average = statistics.fmean(speeds)
    # Population deviation: every reported speed belongs to the movement.
    deviation = statistics.pstdev(speeds) if len(speeds) > 1 else 0.0
    cv = deviation / average if average > 0 else 0.0
    ordered = sorted(samples, key=lambda s: s.timestamp)
    distance = path_length_m([s.coordinate.as_tuple() for s in ordered])
    return MovementStats(
        average_kmh=average,
        max_kmh=max(speeds),
        speed_cv=cv,
        distance_km=distance / 1000.0,
        speed_count=len(speeds),
    )


class TransportClassifier:
    """Pick a ``TransportType`` with an ordered list of threshold rules.

    Rules, first match wins:

    1. average below walking speed -> WALK
    2. average below cycling speed -> BIKE
    3. top speed and distance within car limits -> CAR
    4. fast and long -> TRAIN when the speed is steady, otherwise CAR
    5. very fast or very long -> FLIGHT
    6. anything else -> CAR
    """

    def __init__(self, thresholds: TransportThresholds | None = None) -> None:
        self.thresholds = thresholds or TransportThresholds()
        self._log = logging.getLogger(self.__class__.__name__)

    def classify(self, samples: Sequence[LocationSample]) -> TransportType:
        stats = movement_stats(samples)
        if stats is None:
            return TransportType.UNKNOWN
        mode = self.classify_stats(stats)
        self._log.debug(
            "Transport %s (avg=%.1f km/h max=%.1f km/h cv=%.2f dist=%.1f km)",
            mode.value,
            stats.average_kmh,
            stats.max_kmh,
            stats.speed_cv,
            stats.distance_km,
        )
        return mode

    def classify_stats(self, stats: MovementStats) -> TransportType:
        t = self.thresholds
        if stats.average_kmh < t.walk_max_kmh:
            return TransportType.WALK
        if stats.average_kmh < t.bike_max_kmh:
            return TransportType.BIKE
        if stats.max_kmh < t.car_max_speed_kmh and stats.distance_km < t.car_max_distance_km:
            return TransportType.CAR
        if (
            stats.average_kmh > t.train_min_avg_kmh
            and stats.distance_km > t.train_min_distance_km
        ):
            if stats.speed_cv < t.train_max_speed_cv:
                return TransportType.TRAIN
            return TransportType.CAR
        if stats.max_kmh > t.flight_min_speed_kmh or stats.distance_km > t.flight_min_distance_km:
            return TransportType.FLIGHT
        return TransportType.CAR


__all__ = ["MovementStats", "TransportClassifier", "movement_stats", "MPS_TO_KMH"]
