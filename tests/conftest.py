"""Global pytest fixtures & helpers.

Adds project root to path and provides sample/visit factories plus a fake
reverse geocoder shared across the pipeline tests.
"""
from __future__ import annotations

import math
import os
import sys
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from travel_timeline.clock import ManualClock
from travel_timeline.errors import GeocodingError
from travel_timeline.models import Coordinate, GeocodedLocation, LocationSample, PlaceVisit

BASE_TIME = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
USER = "user-1"

# Reference places (lat, lon).
BERLIN = (52.5200, 13.4050)
MUNICH = (48.1372, 11.5756)
HAMBURG = (53.5511, 9.9937)


# --- Factory helpers -------------------------------------------------
def offset(lat: float, lon: float, north_m: float = 0.0, east_m: float = 0.0):
    """Shift a coordinate by metres (small-distance approximation)."""
    dlat = north_m / 111_320.0
    dlon = east_m / (111_320.0 * math.cos(math.radians(lat)))
    return lat + dlat, lon + dlon


def make_sample(
    sample_id: str,
    lat: float,
    lon: float,
    ts: datetime,
    *,
    accuracy: float = 10.0,
    speed: Optional[float] = None,
    user: str = USER,
) -> LocationSample:
    return LocationSample(
        id=sample_id,
        timestamp=ts,
        latitude=lat,
        longitude=lon,
        accuracy_m=accuracy,
        user_id=user,
        device_id="device-1",
        speed_mps=speed,
    )


def stay_samples(
    prefix: str,
    center: tuple,
    start: datetime,
    count: int = 10,
    spacing: timedelta = timedelta(minutes=1),
    *,
    spread_m: float = 15.0,
    accuracy: float = 10.0,
    user: str = USER,
) -> List[LocationSample]:
    """Samples scattered deterministically within ``spread_m`` of ``center``."""
    samples = []
    for i in range(count):
        angle = (i * 137.5) % 360.0
        north = spread_m * math.sin(math.radians(angle))
        east = spread_m * math.cos(math.radians(angle))
        lat, lon = offset(center[0], center[1], north, east)
        samples.append(
            make_sample(
                f"{prefix}-{i}", lat, lon, start + i * spacing, accuracy=accuracy, user=user
            )
        )
    return samples


def make_visit(
    visit_id: str,
    center: tuple,
    start: datetime,
    end: datetime,
    *,
    city: Optional[str] = None,
    country_code: Optional[str] = None,
    user: str = USER,
    sample_ids: tuple = (),
) -> PlaceVisit:
    return PlaceVisit(
        id=visit_id,
        user_id=user,
        start_time=start,
        end_time=end,
        center=Coordinate(*center),
        radius_m=20.0,
        confidence=0.8,
        source_sample_ids=sample_ids,
        city=city,
        country_code=country_code,
        country="Germany" if country_code == "DE" else None,
    )


class FakeGeocoder:
    """Records calls; can fail, return nothing, or block until released."""

    def __init__(self, city: str = "Berlin", country_code: str = "DE") -> None:
        self.city = city
        self.country_code = country_code
        self.calls: List[tuple] = []
        self.fail = False
        self.return_none = False
        self.gate: Optional[threading.Event] = None
        self._lock = threading.Lock()

    def reverse_geocode(self, latitude: float, longitude: float):
        with self._lock:
            self.calls.append((latitude, longitude))
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail:
            raise GeocodingError("service unavailable")
        if self.return_none:
            return None
        return GeocodedLocation(
            latitude=latitude + 0.001,
            longitude=longitude + 0.001,
            formatted_address=f"1 Main St, {self.city}",
            city=self.city,
            country="Germany",
            country_code=self.country_code,
            poi_name="Cafe",
        )


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 6, 1, tzinfo=timezone.utc))


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder()


DAY0 = datetime(2024, 3, 1, tzinfo=timezone.utc)
MUNICH_EAST = offset(*MUNICH, east_m=2_000.0)


def trip_scenario(user: str = USER) -> List[LocationSample]:
    """Three nights in Berlin, a drive to Munich, two stays there, back home.

    Every stay is sampled every 10 minutes so each forms exactly one visit.
    """

    ten = timedelta(minutes=10)
    samples: List[LocationSample] = []
    for night in range(3):
        start = DAY0 + timedelta(days=night, hours=22)
        samples += stay_samples(f"{user}-n{night}", BERLIN, start, 55, ten, user=user)
    # Northern Germany to Bavaria at 90 km/h, one fix per hour.
    for k in range(1, 8):
        frac = k / 8.0
        lat = BERLIN[0] + (MUNICH[0] - BERLIN[0]) * frac
        lon = BERLIN[1] + (MUNICH[1] - BERLIN[1]) * frac
        ts = DAY0 + timedelta(days=3, hours=7 + k)
        samples.append(make_sample(f"{user}-drive{k}", lat, lon, ts, speed=25.0, user=user))
    samples += stay_samples(
        f"{user}-m1", MUNICH, DAY0 + timedelta(days=3, hours=15), 55, ten, user=user
    )
    samples += stay_samples(
        f"{user}-m2", MUNICH_EAST, DAY0 + timedelta(days=4, hours=10), 25, ten, user=user
    )
    samples += stay_samples(
        f"{user}-n5", BERLIN, DAY0 + timedelta(days=5, hours=22), 55, ten, user=user
    )
    return samples
