"""Home detection and both trip segmentation strategies."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from conftest import BERLIN, HAMBURG, MUNICH, make_visit, offset
from travel_timeline.clock import ManualClock
from travel_timeline.models import Coordinate
from travel_timeline.pipeline_config import TripSegmentationStrategy
from travel_timeline.processing.home import HomeLocationDetector
from travel_timeline.processing.trips import TripBoundaryDetector

DAY0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _night(idx: int, center=BERLIN, day: int = 0, city: str = "Berlin"):
    start = DAY0 + timedelta(days=day, hours=22)
    return make_visit(
        f"night-{idx}", center, start, start + timedelta(hours=9), city=city, country_code="DE"
    )


def _stay(vid: str, center, start: datetime, hours: float, city: str, cc: str = "DE"):
    return make_visit(vid, center, start, start + timedelta(hours=hours), city=city, country_code=cc)


# --- Home -------------------------------------------------------------
def test_home_is_place_with_most_nights() -> None:
    visits = [_night(i, offset(*BERLIN, north_m=20.0 * i), day=i) for i in range(4)]
    visits.append(_stay("office", offset(*BERLIN, north_m=4_000.0), DAY0 + timedelta(hours=9), 8, "Berlin"))

    home = HomeLocationDetector().detect(visits)

    assert home is not None
    assert home.nights_spent == 4
    assert set(home.visit_ids) == {f"night-{i}" for i in range(4)}
    assert abs(home.location.latitude - BERLIN[0]) < 0.001


def test_too_few_nights_means_unknown_home() -> None:
    visits = [_night(i, day=i) for i in range(2)]
    assert HomeLocationDetector().detect(visits) is None
    assert HomeLocationDetector().detect([]) is None


def test_ties_on_nights_break_on_hours() -> None:
    berlin = [_night(i, day=i) for i in range(3)]
    munich = [
        make_visit(f"m{i}", MUNICH, DAY0 + timedelta(days=10 + i), DAY0 + timedelta(days=10 + i, hours=12))
        for i in range(3)
    ]
    home = HomeLocationDetector().detect(berlin + munich)
    assert home is not None
    assert home.visit_ids[0].startswith("m")


# --- Trips: home distance ---------------------------------------------
def _trip_sequence():
    return [
        _night(0, day=0),
        _stay("mu1", MUNICH, DAY0 + timedelta(days=1, hours=12), 5, "Munich"),
        _stay("mu2", offset(*MUNICH, east_m=800.0), DAY0 + timedelta(days=1, hours=18), 14, "Munich"),
        _stay("hh1", HAMBURG, DAY0 + timedelta(days=3, hours=10), 3, "Hamburg"),
        _night(1, day=4),
        _stay("short", MUNICH, DAY0 + timedelta(days=5, hours=10), 1, "Munich"),
        _night(2, day=5),
    ]


def test_home_distance_trips(clock) -> None:
    detector = TripBoundaryDetector(clock=clock)
    trips = detector.detect(_trip_sequence(), Coordinate(*BERLIN))

    assert len(trips) == 1
    trip = trips[0]
    assert trip.visit_ids == ["mu1", "mu2", "hh1"]
    assert trip.start_time == DAY0 + timedelta(days=1, hours=12)
    assert trip.end_time == DAY0 + timedelta(days=3, hours=13)
    assert trip.primary_country == "DE"
    assert trip.cities == frozenset({"Munich", "Hamburg"})
    assert trip.main_destination == "Munich"


def test_trip_ids_are_deterministic(clock) -> None:
    first = TripBoundaryDetector(clock=clock).detect(_trip_sequence(), Coordinate(*BERLIN))
    second = TripBoundaryDetector(clock=clock).detect(_trip_sequence(), Coordinate(*BERLIN))
    assert [t.id for t in first] == [t.id for t in second]


def test_unknown_home_gives_single_trip(clock, caplog) -> None:
    visits = _trip_sequence()
    with caplog.at_level(logging.WARNING, logger="TripBoundaryDetector"):
        trips = TripBoundaryDetector(clock=clock).detect(visits, None)

    assert len(trips) == 1
    assert trips[0].visit_ids == [v.id for v in sorted(visits, key=lambda v: v.start_time)]
    assert "Home location unknown" in caplog.text


def test_trailing_trip_is_ongoing_when_recent() -> None:
    visits = _trip_sequence()[:4]
    last_end = max(v.end_time for v in visits)
    clock = ManualClock(last_end + timedelta(hours=2))

    trips = TripBoundaryDetector(clock=clock).detect(visits, Coordinate(*BERLIN))

    assert len(trips) == 1
    assert trips[0].is_ongoing


def test_trailing_trip_closed_when_old() -> None:
    visits = _trip_sequence()[:4]
    clock = ManualClock(DAY0 + timedelta(days=30))
    trips = TripBoundaryDetector(clock=clock).detect(visits, Coordinate(*BERLIN))
    assert not trips[0].is_ongoing


def test_assign_sets_trip_ids_on_copies(clock) -> None:
    visits = _trip_sequence()
    detector = TripBoundaryDetector(clock=clock)
    trips = detector.detect(visits, Coordinate(*BERLIN))

    assigned = {v.id: v for v in detector.assign(visits, trips)}

    assert assigned["mu1"].trip_id == trips[0].id
    assert assigned["night-0"].trip_id is None
    assert visits[1].trip_id is None


# --- Trips: gap/return ------------------------------------------------
def test_gap_return_splits_on_long_gap(clock) -> None:
    visits = [
        _stay("a", MUNICH, DAY0, 5, "Munich"),
        _stay("b", HAMBURG, DAY0 + timedelta(hours=8), 5, "Hamburg"),
        _stay("c", BERLIN, DAY0 + timedelta(days=3), 5, "Berlin"),
    ]
    detector = TripBoundaryDetector(strategy=TripSegmentationStrategy.GAP_RETURN, clock=clock)

    trips = detector.detect(visits, None)

    assert [t.visit_ids for t in trips] == [["a", "b"], ["c"]]


def test_gap_return_splits_on_return_to_start(clock) -> None:
    visits = [
        _stay("home1", BERLIN, DAY0, 10, "Berlin"),
        _stay("away", HAMBURG, DAY0 + timedelta(hours=14), 6, "Hamburg"),
        _stay("home2", offset(*BERLIN, north_m=1_000.0), DAY0 + timedelta(hours=24), 10, "Berlin"),
    ]
    detector = TripBoundaryDetector(strategy="gap_return", clock=clock)

    trips = detector.detect(visits, Coordinate(*BERLIN))

    assert [t.visit_ids for t in trips] == [["home1", "away"], ["home2"]]


def test_gap_return_splits_long_same_city_runs(clock) -> None:
    visits = [_stay("start", MUNICH, DAY0, 6, "Munich")]
    for day in range(1, 9):
        center = HAMBURG if day % 2 else offset(*HAMBURG, north_m=800.0)
        visits.append(_stay(f"d{day}", center, DAY0 + timedelta(days=day), 10, "Hamburg"))
    detector = TripBoundaryDetector(strategy=TripSegmentationStrategy.GAP_RETURN, clock=clock)

    trips = detector.detect(visits, None)

    assert len(trips) == 2
    assert trips[1].visit_ids[0] == "d8"
    assert trips[0].total_distance_m == 0.0
