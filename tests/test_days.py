"""DayAggregator timelines."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from conftest import BERLIN, MUNICH, make_visit
from travel_timeline.models import (
    Coordinate,
    DayEnd,
    DayStart,
    RouteItem,
    RouteSegment,
    TransportType,
    Trip,
    VisitItem,
)
from travel_timeline.processing.days import DayAggregator, trip_day_id

DAY0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _route(rid: str, start: datetime, minutes: int = 30) -> RouteSegment:
    return RouteSegment(
        id=rid,
        user_id="user-1",
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        start=Coordinate(*BERLIN),
        end=Coordinate(*MUNICH),
        transport_type=TransportType.CAR,
        distance_m=1000.0,
        simplified_path=(Coordinate(*BERLIN), Coordinate(*MUNICH)),
    )


def _fixture():
    visits = [
        make_visit("a", MUNICH, DAY0 + timedelta(hours=10), DAY0 + timedelta(hours=12)),
        make_visit("b", MUNICH, DAY0 + timedelta(hours=13), DAY0 + timedelta(hours=20)),
        # Nothing happens on day 1.
        make_visit("c", MUNICH, DAY0 + timedelta(days=2, hours=9), DAY0 + timedelta(days=2, hours=11)),
        make_visit("outside", MUNICH, DAY0 + timedelta(days=2, hours=12), DAY0 + timedelta(days=2, hours=13)),
    ]
    routes = [
        _route("r1", DAY0 + timedelta(hours=12)),
        _route("r2", DAY0 + timedelta(days=2, hours=11)),
        _route("before", DAY0 - timedelta(hours=3)),
    ]
    trip = Trip(
        id="trip-1",
        user_id="user-1",
        start_time=visits[0].start_time,
        end_time=visits[2].end_time,
        visit_ids=["a", "b", "c"],
    )
    return trip, visits, routes


def test_one_day_per_calendar_date_including_empty_days() -> None:
    trip, visits, routes = _fixture()

    days = DayAggregator("UTC").aggregate(trip, visits, routes)

    assert [d.date for d in days] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
    assert [d.id for d in days] == [trip_day_id("trip-1", d.date) for d in days]
    assert days[0].id == "trip-1:2024-03-01"
    empty = days[1]
    assert len(empty.items) == 2
    assert isinstance(empty.items[0], DayStart) and isinstance(empty.items[1], DayEnd)


def test_items_are_framed_ordered_and_unique() -> None:
    trip, visits, routes = _fixture()

    days = DayAggregator("UTC").aggregate(trip, visits, routes)

    seen = []
    for day in days:
        assert isinstance(day.items[0], DayStart)
        assert isinstance(day.items[-1], DayEnd)
        assert day.items[0].timestamp == datetime.combine(day.date, datetime.min.time(), timezone.utc)
        assert day.items[-1].timestamp == day.items[0].timestamp + timedelta(days=1)
        stamps = [item.timestamp for item in day.items]
        assert stamps == sorted(stamps)
        for item in day.items[1:-1]:
            seen.append(item.visit.id if isinstance(item, VisitItem) else item.route.id)
    assert sorted(seen) == ["a", "b", "c", "r1", "r2"]
    assert [v.id for v in days[0].visits] == ["a", "b"]
    assert [r.id for r in days[2].routes] == ["r2"]


def test_visit_sorts_before_route_at_same_instant() -> None:
    trip, visits, routes = _fixture()
    routes.append(_route("r-tie", visits[1].start_time))

    first_day = DayAggregator("UTC").aggregate(trip, visits, routes)[0]

    kinds = [(type(i).__name__, getattr(i, "timestamp")) for i in first_day.items[1:-1]]
    tie = [k for k, ts in kinds if ts == visits[1].start_time]
    assert tie == ["VisitItem", "RouteItem"]


def test_ongoing_trip_runs_until_last_item() -> None:
    trip, visits, routes = _fixture()
    trip.end_time = None

    days = DayAggregator("UTC").aggregate(trip, visits, routes)

    # The route after visit "c" belongs to the open trip; "outside" does not.
    assert days[-1].date == date(2024, 3, 3)
    assert [r.id for r in days[-1].routes] == ["r2"]
    assert all(v.id != "outside" for d in days for v in d.visits)


def test_local_timezone_shifts_day_boundaries() -> None:
    start = datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)  # 00:30 in Berlin
    visit = make_visit("late", MUNICH, start, start + timedelta(hours=2))
    trip = Trip(
        id="t",
        user_id="user-1",
        start_time=start,
        end_time=visit.end_time,
        visit_ids=["late"],
    )

    days = DayAggregator("Europe/Berlin").aggregate(trip, [visit], [])

    assert [d.date for d in days] == [date(2024, 3, 2)]
    assert days[0].items[0].timestamp == datetime(2024, 3, 1, 23, 0, tzinfo=timezone.utc)
    assert isinstance(days[0].items[1], VisitItem)


def test_aggregate_all_concatenates_trips() -> None:
    trip, visits, routes = _fixture()
    other = Trip(
        id="trip-2",
        user_id="user-1",
        start_time=DAY0 + timedelta(days=10),
        end_time=DAY0 + timedelta(days=10, hours=5),
    )

    days = DayAggregator("UTC").aggregate_all([trip, other], visits, routes)

    assert [d.trip_id for d in days] == ["trip-1"] * 3 + ["trip-2"]
    assert not any(isinstance(i, RouteItem) for i in days[-1].items)
