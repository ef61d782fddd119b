"""Geodesic helpers shared by every processing stage."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray
from pyproj import CRS, Transformer

from .models import Coordinate

EARTH_RADIUS_M = 6_371_000.0

LatLon = Tuple[float, float]
MetricArray = NDArray[np.float64]


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Lat/lon box; longitudes may run past +/-180 near the antimeridian."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def lon_ranges(self) -> List[LatLon]:
        """Longitude intervals inside [-180, 180] that the box covers."""

        if self.max_lon - self.min_lon >= 360.0:
            return [(-180.0, 180.0)]
        if self.min_lon < -180.0:
            return [(self.min_lon + 360.0, 180.0), (-180.0, self.max_lon)]
        if self.max_lon > 180.0:
            return [(self.min_lon, 180.0), (-180.0, self.max_lon - 360.0)]
        return [(self.min_lon, self.max_lon)]

    def contains(self, lat: float, lon: float) -> bool:
        if not self.min_lat <= lat <= self.max_lat:
            return False
        return any(low <= lon <= high for low, high in self.lon_ranges())


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in metres between two lat/lon points."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1.0 - a)))
    return EARTH_RADIUS_M * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def haversine_many(
    lat: float, lon: float, lats: ArrayLike, lons: ArrayLike
) -> NDArray[np.float64]:
    """Vectorised Haversine distance from one point to many points."""

    lat_arr = np.radians(np.asarray(lats, dtype=float))
    lon_arr = np.radians(np.asarray(lons, dtype=float))
    phi1 = math.radians(lat)
    d_phi = lat_arr - phi1
    d_lambda = lon_arr - math.radians(lon)
    a = (
        np.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * np.cos(lat_arr) * np.sin(d_lambda / 2.0) ** 2
    )
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_M * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))


def path_length_m(points: Sequence[LatLon]) -> float:
    """Cumulative Haversine length of an ordered coordinate sequence."""

    if len(points) < 2:
        return 0.0
    array = np.asarray(points, dtype=float)
    lat1 = np.radians(array[:-1, 0])
    lat2 = np.radians(array[1:, 0])
    d_phi = lat2 - lat1
    d_lambda = np.radians(array[1:, 1] - array[:-1, 1])
    a = np.sin(d_phi / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(
        d_lambda / 2.0
    ) ** 2
    a = np.clip(a, 0.0, 1.0)
    legs = EARTH_RADIUS_M * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))
    return float(np.sum(legs))


def bounding_box(lat: float, lon: float, radius_m: float) -> BoundingBox:
    """Degree box enclosing a circle of ``radius_m`` around a point.

    The longitude half-width is widened by ``1 / cos(latitude)``; near the
    poles the box spans every longitude. Bounds are not wrapped at +/-180;
    stores query :meth:`BoundingBox.lon_ranges` instead.
    """

    lat_delta = math.degrees(radius_m / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat <= 1e-12:
        lon_delta = 180.0
    else:
        lon_delta = min(180.0, lat_delta / cos_lat)
    return BoundingBox(
        min_lat=lat - lat_delta,
        max_lat=lat + lat_delta,
        min_lon=lon - lon_delta,
        max_lon=lon + lon_delta,
    )


def mean_coordinate(points: Iterable[Coordinate]) -> Coordinate:
    """Unweighted arithmetic mean of coordinates."""

    pts = list(points)
    if not pts:
        raise ValueError("Cannot average an empty coordinate collection")
    lat = sum(p.latitude for p in pts) / len(pts)
    lon = sum(p.longitude for p in pts) / len(pts)
    return Coordinate(lat, lon)


def build_local_transformer(points: Sequence[LatLon]) -> Transformer:
    """Build a local UTM transformer centred on the provided coordinates."""

    lats = [pt[0] for pt in points]
    lons = [pt[1] for pt in points]
    mean_lat = float(np.mean(lats))
    mean_lon = float(np.mean(lons))
    zone = int((mean_lon + 180.0) // 6.0) + 1
    zone = max(1, min(zone, 60))
    if mean_lat >= 0:
        epsg = 32600 + zone
    else:
        epsg = 32700 + zone
    try:
        target_crs = CRS.from_epsg(epsg)
    except Exception:
        target_crs = CRS.from_epsg(3857)
    return Transformer.from_crs(CRS.from_epsg(4326), target_crs, always_xy=True)


def project_points(points: Sequence[LatLon], transformer: Transformer) -> MetricArray:
    """Project lat/lon pairs through an existing transformer."""

    if not points:
        return np.empty((0, 2), dtype=float)
    lats = np.asarray([pt[0] for pt in points], dtype=float)
    lons = np.asarray([pt[1] for pt in points], dtype=float)
    xs, ys = transformer.transform(lons, lats)
    return np.column_stack((xs, ys)).astype(float, copy=False)


def reproject_to_local_crs(points: Sequence[LatLon]) -> Tuple[MetricArray, Transformer]:
    """Project lat/lon points into a local metric coordinate system."""

    if not points:
        raise ValueError("Cannot reproject an empty point collection")
    transformer = build_local_transformer(points)
    return project_points(points, transformer), transformer


__all__ = [
    "EARTH_RADIUS_M",
    "BoundingBox",
    "LatLon",
    "MetricArray",
    "haversine_m",
    "distance_between",
    "haversine_many",
    "path_length_m",
    "bounding_box",
    "mean_coordinate",
    "build_local_transformer",
    "project_points",
    "reproject_to_local_crs",
]
