"""Spatio-temporal DBSCAN over raw location samples."""

from __future__ import annotations

import logging
from collections import deque
from datetime import timedelta
from typing import Deque, List, Sequence

import numpy as np
from numpy.typing import NDArray
from sklearn.neighbors import BallTree

from ..config import (
    CLUSTER_ACCURACY_INFLATION_CAP_M,
    CLUSTER_EPSILON_M,
    CLUSTER_MIN_POINTS,
    CLUSTER_MIN_STAY_MINUTES,
    CLUSTER_TIME_WINDOW_MINUTES,
)
from ..geo import EARTH_RADIUS_M, haversine_many
from ..models import Cluster, Coordinate, LocationSample
from ..utils import dedupe_samples

IndexArray = NDArray[np.intp]

_UNVISITED = 0
_VISITED = 1


class SpatiotemporalClusterer:
    """Group samples into stationary clusters.

    Two samples are neighbours when they are within ``epsilon_m`` of each
    other (widened by the mean of their capped accuracies) and their
    timestamps are at most ``time_window`` apart. Clusters are grown
    breadth-first from core points; samples that never join a cluster are
    noise.
    """

    def __init__(
        self,
        *,
        epsilon_m: float = CLUSTER_EPSILON_M,
        min_points: int = CLUSTER_MIN_POINTS,
        time_window: timedelta = timedelta(minutes=CLUSTER_TIME_WINDOW_MINUTES),
        min_stay_duration: timedelta = timedelta(minutes=CLUSTER_MIN_STAY_MINUTES),
        accuracy_inflation_cap_m: float = CLUSTER_ACCURACY_INFLATION_CAP_M,
    ) -> None:
        if epsilon_m <= 0:
            raise ValueError("epsilon_m must be > 0")
        if min_points < 1:
            raise ValueError("min_points must be >= 1")
        self.epsilon_m = epsilon_m
        self.min_points = min_points
        self.time_window = time_window
        self.min_stay_duration = min_stay_duration
        self.accuracy_inflation_cap_m = max(0.0, accuracy_inflation_cap_m)
        self._log = logging.getLogger(self.__class__.__name__)

    def cluster(self, samples: Sequence[LocationSample]) -> List[Cluster]:
        """Return stay clusters ordered by start time."""

        ordered = dedupe_samples(samples)
        if len(ordered) < self.min_points:
            self._log.debug(
                "Only %d samples (< min_points=%d); nothing to cluster",
                len(ordered),
                self.min_points,
            )
            return []

        neighbours = self._neighbourhoods(ordered)
        state = np.full(len(ordered), _UNVISITED, dtype=np.int8)
        assigned = np.zeros(len(ordered), dtype=bool)
        clusters: List[Cluster] = []
        dropped = 0

        for seed in range(len(ordered)):
            if state[seed] != _UNVISITED:
                continue
            state[seed] = _VISITED
            if len(neighbours[seed]) < self.min_points:
                # Noise for now; may still be claimed later as a border point.
                continue
            members = self._expand(seed, neighbours, state, assigned)
            candidate = self._build_cluster([ordered[i] for i in sorted(members)])
            if self._accept(candidate):
                clusters.append(candidate)
            else:
                dropped += 1

        clusters.sort(key=lambda c: c.start_time)
        self._log.debug(
            "Clustered %d samples into %d stays (%d dropped by size/duration)",
            len(ordered),
            len(clusters),
            dropped,
        )
        return clusters

    def _expand(
        self,
        seed: int,
        neighbours: List[IndexArray],
        state: NDArray[np.int8],
        assigned: NDArray[np.bool_],
    ) -> List[int]:
        members = [seed]
        assigned[seed] = True
        queue: Deque[int] = deque(int(i) for i in neighbours[seed])
        while queue:
            idx = queue.popleft()
            if assigned[idx]:
                continue
            assigned[idx] = True
            members.append(idx)
            if state[idx] == _VISITED:
                # Previously labelled noise: joins as a border point only.
                continue
            state[idx] = _VISITED
            if len(neighbours[idx]) >= self.min_points:
                queue.extend(int(i) for i in neighbours[idx] if not assigned[i])
        return members

    def _neighbourhoods(self, samples: Sequence[LocationSample]) -> List[IndexArray]:
        """Neighbour indices (excluding self) for every sample."""

        lats = np.fromiter((s.latitude for s in samples), dtype=float)
        lons = np.fromiter((s.longitude for s in samples), dtype=float)
        times = np.fromiter((s.timestamp.timestamp() for s in samples), dtype=float)
        inflation = np.minimum(
            np.fromiter((max(s.accuracy_m, 0.0) for s in samples), dtype=float),
            self.accuracy_inflation_cap_m,
        )
        window_s = self.time_window.total_seconds()

        tree = BallTree(np.radians(np.column_stack((lats, lons))), metric="haversine")
        # Widest possible radius for each point; exact thresholds applied below.
        radii_m = self.epsilon_m + (inflation + float(inflation.max())) / 2.0
        candidates = tree.query_radius(
            np.radians(np.column_stack((lats, lons))), r=radii_m / EARTH_RADIUS_M
        )

        result: List[IndexArray] = []
        for i, cand in enumerate(candidates):
            cand = cand[cand != i]
            if cand.size:
                in_window = np.abs(times[cand] - times[i]) <= window_s
                cand = cand[in_window]
            if cand.size:
                dist = haversine_many(lats[i], lons[i], lats[cand], lons[cand])
                limit = self.epsilon_m + (inflation[i] + inflation[cand]) / 2.0
                cand = cand[dist <= limit]
            result.append(np.sort(cand))
        return result

    def _build_cluster(self, members: List[LocationSample]) -> Cluster:
        lat = sum(s.latitude for s in members) / len(members)
        lon = sum(s.longitude for s in members) / len(members)
        return Cluster(
            samples=members,
            centroid=Coordinate(lat, lon),
            start_time=members[0].timestamp,
            end_time=members[-1].timestamp,
        )

    def _accept(self, cluster: Cluster) -> bool:
        if len(cluster.samples) < self.min_points:
            return False
        if cluster.duration < self.min_stay_duration:
            self._log.debug(
                "Dropping cluster at (%.5f, %.5f): stay %s < %s",
                cluster.centroid.latitude,
                cluster.centroid.longitude,
                cluster.duration,
                self.min_stay_duration,
            )
            return False
        return True


__all__ = ["SpatiotemporalClusterer"]
