"""Douglas-Peucker path simplification in a local metric projection."""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from ..config import PATH_SIMPLIFICATION_EPSILON_M
from ..geo import MetricArray, reproject_to_local_crs
from ..models import Coordinate, LocationSample


def _perpendicular_distances(
    xy: MetricArray, start: int, end: int
) -> np.ndarray:
    """Distances of points ``start+1 .. end-1`` to the line through the ends."""

    a = xy[start]
    b = xy[end]
    inner = xy[start + 1 : end]
    chord = b - a
    length = float(np.hypot(chord[0], chord[1]))
    if length == 0.0:
        return np.hypot(inner[:, 0] - a[0], inner[:, 1] - a[1])
    cross = chord[0] * (inner[:, 1] - a[1]) - chord[1] * (inner[:, 0] - a[0])
    return np.abs(cross) / length


class PathSimplifier:
    """Reduce a polyline to the points needed to stay within ``epsilon_m``.

    The first and last points always survive and the result is a subset of
    the input in the original order, so simplifying twice changes nothing.
    """

    def __init__(self, epsilon_m: float = PATH_SIMPLIFICATION_EPSILON_M) -> None:
        if epsilon_m < 0:
            raise ValueError("epsilon_m must not be negative")
        self.epsilon_m = epsilon_m
        self._log = logging.getLogger(self.__class__.__name__)

    def simplify(self, points: Sequence[Coordinate]) -> List[Coordinate]:
        if len(points) <= 2:
            return list(points)

        xy, _ = reproject_to_local_crs([p.as_tuple() for p in points])
        keep = np.zeros(len(points), dtype=bool)
        keep[0] = keep[-1] = True
        self._mark(xy, 0, len(points) - 1, keep)

        simplified = [p for p, kept in zip(points, keep) if kept]
        self._log.debug(
            "Simplified path from %d to %d points", len(points), len(simplified)
        )
        return simplified

    def simplify_samples(self, samples: Sequence[LocationSample]) -> List[Coordinate]:
        return self.simplify([s.coordinate for s in samples])

    def _mark(self, xy: MetricArray, first: int, last: int, keep: np.ndarray) -> None:
        # Explicit stack instead of recursion so long tracks cannot overflow.
        stack = [(first, last)]
        while stack:
            start, end = stack.pop()
            if end - start < 2:
                continue
            distances = _perpendicular_distances(xy, start, end)
            offset = int(np.argmax(distances))
            if float(distances[offset]) > self.epsilon_m:
                split = start + 1 + offset
                keep[split] = True
                stack.append((start, split))
                stack.append((split, end))


__all__ = ["PathSimplifier"]
