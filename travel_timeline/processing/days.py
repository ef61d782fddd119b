"""Cut trips into per-day timelines."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Sequence, Union
from zoneinfo import ZoneInfo

from ..config import TIMELINE_TIMEZONE
from ..models import (
    DayEnd,
    DayStart,
    PlaceVisit,
    RouteItem,
    RouteSegment,
    TimelineItem,
    Trip,
    TripDay,
    VisitItem,
)
from .trips import route_in_trip


def trip_day_id(trip_id: str, day: date) -> str:
    return f"{trip_id}:{day.isoformat()}"


def _item_sort_key(item: Union[VisitItem, RouteItem]) -> tuple:
    # Visits come before routes that start at the same instant.
    if isinstance(item, VisitItem):
        return (item.timestamp, 0, item.visit.id)
    return (item.timestamp, 1, item.route.id)


class DayAggregator:
    """Build one ``TripDay`` per local calendar date a trip touches.

    Each day holds the trip's visits and routes that *start* in
    ``[midnight, next midnight)`` in timestamp order, framed by
    ``DayStart``/``DayEnd`` markers. Days without activity are still emitted
    with just the two markers.
    """

    def __init__(self, timezone_name: str = TIMELINE_TIMEZONE) -> None:
        self.tz = ZoneInfo(timezone_name)
        self._log = logging.getLogger(self.__class__.__name__)

    def aggregate(
        self,
        trip: Trip,
        visits: Sequence[PlaceVisit],
        routes: Sequence[RouteSegment],
    ) -> List[TripDay]:
        members = set(trip.visit_ids)
        items: List[Union[VisitItem, RouteItem]] = [
            VisitItem(timestamp=v.start_time, visit=v)
            for v in visits
            if v.id in members and not v.is_deleted
        ]
        items.extend(
            RouteItem(timestamp=r.start_time, route=r)
            for r in routes
            if route_in_trip(r, trip.start_time, trip.end_time)
        )
        items.sort(key=_item_sort_key)

        last_instant = trip.end_time
        if last_instant is None:
            last_instant = max([trip.start_time, *(item.timestamp for item in items)])
        first_day = self._local_date(trip.start_time)
        last_day = self._local_date(last_instant)

        days: List[TripDay] = []
        cursor = 0
        current = first_day
        while current <= last_day:
            day_start = self._midnight(current)
            day_end = self._midnight(current + timedelta(days=1))
            timeline: List[TimelineItem] = [DayStart(timestamp=day_start)]
            while cursor < len(items) and items[cursor].timestamp < day_end:
                timeline.append(items[cursor])
                cursor += 1
            timeline.append(DayEnd(timestamp=day_end))
            days.append(
                TripDay(
                    id=trip_day_id(trip.id, current),
                    trip_id=trip.id,
                    date=current,
                    items=timeline,
                )
            )
            current += timedelta(days=1)

        self._log.debug(
            "Trip %s: %d days, %d timeline items", trip.id, len(days), len(items)
        )
        return days

    def aggregate_all(
        self,
        trips: Sequence[Trip],
        visits: Sequence[PlaceVisit],
        routes: Sequence[RouteSegment],
    ) -> List[TripDay]:
        days: List[TripDay] = []
        for trip in trips:
            days.extend(self.aggregate(trip, visits, routes))
        return days

    def _local_date(self, instant: datetime) -> date:
        return instant.astimezone(self.tz).date()

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz).astimezone(timezone.utc)


__all__ = ["DayAggregator", "trip_day_id"]
