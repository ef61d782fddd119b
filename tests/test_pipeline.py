"""End-to-end LocationPipeline runs."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, timedelta

import pytest

from conftest import BERLIN, DAY0, MUNICH, USER, make_sample, trip_scenario
from travel_timeline.geo import haversine_m
from travel_timeline.geocoding import GeocodingCache, InMemoryGeocodingCacheStore
from travel_timeline.models import TransportType, VisitItem
from travel_timeline.pipeline_config import PipelineConfig, TripSegmentationStrategy
from travel_timeline.services.pipeline import (
    LocationPipeline,
    LocationPipelineConfig,
    merge_visits,
)


@pytest.fixture
def pipeline(clock):
    return LocationPipeline(LocationPipelineConfig(clock=clock))


def test_full_run_produces_visits_routes_trip_and_days(pipeline) -> None:
    result = pipeline.process(trip_scenario())

    assert len(result.visits) == 6
    assert len(result.routes) == 5
    assert result.home is not None
    assert haversine_m(*BERLIN, *result.home.location.as_tuple()) < 100
    assert result.home.nights_spent == 4

    assert len(result.trips) == 1
    trip = result.trips[0]
    munich_visits = [
        v for v in result.visits if haversine_m(*MUNICH, *v.center.as_tuple()) < 5_000
    ]
    assert trip.visit_ids == [v.id for v in munich_visits]
    assert not trip.is_ongoing
    assert trip.start_time == DAY0 + timedelta(days=3, hours=15)
    for visit in result.visits:
        expected = trip.id if visit in munich_visits else None
        assert visit.trip_id == expected

    drive = next(r for r in result.routes if len(r.sample_ids) == 7)
    assert drive.transport_type is not TransportType.UNKNOWN
    assert drive.distance_m > 450_000

    assert [d.date for d in result.trip_days] == [date(2024, 3, 4), date(2024, 3, 5)]
    placed = [
        item.visit.id
        for day in result.trip_days
        for item in day.items
        if isinstance(item, VisitItem)
    ]
    assert sorted(placed) == sorted(trip.visit_ids)


def test_runs_are_deterministic(pipeline) -> None:
    first = pipeline.process(trip_scenario())
    second = pipeline.process(list(reversed(trip_scenario())))

    assert [v.id for v in first.visits] == [v.id for v in second.visits]
    assert [r.id for r in first.routes] == [r.id for r in second.routes]
    assert [t.id for t in first.trips] == [t.id for t in second.trips]
    assert [d.id for d in first.trip_days] == [d.id for d in second.trip_days]


def test_empty_input_gives_empty_result(pipeline) -> None:
    result = pipeline.process([])
    assert result.is_empty
    assert result.home is None


def test_mixed_users_rejected(pipeline) -> None:
    samples = trip_scenario()
    samples.append(make_sample("other", *BERLIN, DAY0, user="someone-else"))
    with pytest.raises(ValueError):
        pipeline.process(samples)


def test_gap_return_strategy_from_config(pipeline) -> None:
    cfg = PipelineConfig(trip_strategy=TripSegmentationStrategy.GAP_RETURN)
    result = pipeline.process(trip_scenario(), cfg)

    # Long nightly gaps in Berlin split the sequence; every visit gets a trip.
    assert len(result.trips) >= 2
    assert all(v.trip_id is not None for v in result.visits)


def test_geocoding_fills_addresses(clock, fake_geocoder) -> None:
    cache = GeocodingCache(fake_geocoder, InMemoryGeocodingCacheStore(), clock=clock)
    try:
        pipeline = LocationPipeline(LocationPipelineConfig(geocoding_cache=cache, clock=clock))
        result = pipeline.process(trip_scenario())
    finally:
        cache.close()

    assert all(v.city == "Berlin" for v in result.visits)
    assert all(v.country_code == "DE" for v in result.visits)
    # The four Berlin nights share one cache entry.
    assert len(fake_geocoder.calls) < len(result.visits)
    assert result.trips[0].countries == frozenset({"DE"})


def test_geocoder_failure_is_not_fatal(clock, fake_geocoder, caplog) -> None:
    fake_geocoder.fail = True
    cache = GeocodingCache(fake_geocoder, clock=clock)
    try:
        pipeline = LocationPipeline(LocationPipelineConfig(geocoding_cache=cache, clock=clock))
        with caplog.at_level(logging.WARNING):
            result = pipeline.process(trip_scenario())
    finally:
        cache.close()

    assert len(result.visits) == 6
    assert all(v.city is None for v in result.visits)
    assert len(result.trips) == 1
    assert ") failed: service unavailable" in caplog.text


def test_existing_visits_carry_earlier_history(pipeline) -> None:
    full = pipeline.process(trip_scenario())
    cutoff = DAY0 + timedelta(days=3, hours=8)
    later = [s for s in trip_scenario() if s.timestamp >= cutoff]

    partial = pipeline.process(later, existing_visits=full.visits)

    assert [v.id for v in partial.visits] == [v.id for v in full.visits]
    assert partial.home is not None
    assert [t.id for t in partial.trips] == [t.id for t in full.trips]


def test_soft_deleted_visits_are_excluded(pipeline) -> None:
    full = pipeline.process(trip_scenario())
    deleted = replace(full.visits[-1], deleted_at=DAY0)

    rerun = pipeline.process(trip_scenario(), existing_visits=[deleted])

    assert deleted.id not in {v.id for v in rerun.visits}
    assert len(rerun.visits) == 5


def test_merge_visits_supersedes_overlapping_and_keeps_deletion() -> None:
    full = LocationPipeline().process(trip_scenario())
    night = full.visits[0]
    stale = replace(night, id="stale", source_sample_ids=night.source_sample_ids[:3])
    deleted = replace(night, deleted_at=DAY0)

    merged = merge_visits([stale, deleted], [night])

    assert [v.id for v in merged] == [night.id]
    assert merged[0].deleted_at == DAY0
    assert merged[0].user_id == USER
