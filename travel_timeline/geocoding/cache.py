"""Proximity cache in front of a reverse geocoder."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import List, Optional, Tuple

from cachetools import TTLCache

from ..clock import DEFAULT_CLOCK, Clock
from ..config import (
    GEOCODE_CACHE_RADIUS_M,
    GEOCODE_CACHE_TTL_DAYS,
    GEOCODE_FAILURE_CACHE_SIZE,
    GEOCODE_FAILURE_COOLDOWN_SECONDS,
    GEOCODE_MAX_WORKERS,
    GEOCODE_TIMEOUT_SECONDS,
)
from ..errors import GeocodingError
from ..geo import bounding_box, haversine_m
from ..models import GeocodedLocation
from ..utils import coord_key
from .base import GeocodeOutcome, GeocodingCacheStore, ReverseGeocoder
from .store import InMemoryGeocodingCacheStore

# ~11 m at the equator; failures are remembered per rounded coordinate.
_FAILURE_KEY_PRECISION = 4

_InFlight = Tuple[float, float, "Future[GeocodeOutcome]"]


@dataclass(slots=True)
class GeocodingCacheConfig:
    radius_m: float = GEOCODE_CACHE_RADIUS_M
    ttl: timedelta = timedelta(days=GEOCODE_CACHE_TTL_DAYS)
    timeout_s: float = GEOCODE_TIMEOUT_SECONDS
    max_workers: int = GEOCODE_MAX_WORKERS
    failure_cooldown_s: float = GEOCODE_FAILURE_COOLDOWN_SECONDS
    failure_cache_size: int = GEOCODE_FAILURE_CACHE_SIZE
    logger: logging.Logger | None = None


def _completed(outcome: GeocodeOutcome) -> "Future[GeocodeOutcome]":
    future: Future[GeocodeOutcome] = Future()
    future.set_result(outcome)
    return future


class GeocodingCache:
    """Reuse addresses for nearby points and call the geocoder on a miss.

    A stored entry answers every query within ``radius_m`` of it until its TTL
    runs out; the nearest unexpired entry wins. Misses are resolved on a small
    worker pool. Concurrent lookups close to one another share one request.
    Failures are never stored, but a failing coordinate is skipped for a
    short cool-down.
    """

    def __init__(
        self,
        geocoder: ReverseGeocoder,
        store: GeocodingCacheStore | None = None,
        *,
        clock: Clock = DEFAULT_CLOCK,
        config: GeocodingCacheConfig | None = None,
    ) -> None:
        self.config = config or GeocodingCacheConfig()
        if self.config.radius_m <= 0:
            raise ValueError("radius_m must be > 0")
        if self.config.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._geocoder = geocoder
        self._store = store if store is not None else InMemoryGeocodingCacheStore()
        self._clock = clock
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="geocode"
        )
        self._lock = threading.RLock()
        self._in_flight: List[_InFlight] = []
        self._failures: TTLCache[str, str] = TTLCache(
            maxsize=max(1, self.config.failure_cache_size),
            ttl=self.config.failure_cooldown_s,
            timer=lambda: self._clock.now().timestamp(),
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find_cached(self, latitude: float, longitude: float) -> Optional[GeocodedLocation]:
        """Nearest unexpired stored entry within the radius, without any I/O."""

        now = self._clock.now()
        box = bounding_box(latitude, longitude, self.config.radius_m)
        best: Optional[GeocodedLocation] = None
        best_distance = float("inf")
        for entry in self._store.query_bbox(box, now):
            if entry.is_expired(now):
                continue
            distance = haversine_m(latitude, longitude, entry.latitude, entry.longitude)
            if distance <= self.config.radius_m and distance < best_distance:
                best, best_distance = entry, distance
        return best

    def lookup_async(self, latitude: float, longitude: float) -> "Future[GeocodeOutcome]":
        """Start (or join) a lookup and return a future for its outcome."""

        cached = self.find_cached(latitude, longitude)
        if cached is not None:
            self._log.debug("Geocode cache hit for (%.5f, %.5f)", latitude, longitude)
            return _completed(GeocodeOutcome(location=cached, from_cache=True))

        key = coord_key(latitude, longitude, _FAILURE_KEY_PRECISION)
        with self._lock:
            if self._closed:
                raise RuntimeError("GeocodingCache is closed")
            reason = self._failures.get(key)
            if reason is not None:
                return _completed(
                    GeocodeOutcome(
                        error=GeocodingError(f"Recently failed for {key}: {reason}")
                    )
                )
            for lat, lon, pending in self._in_flight:
                if haversine_m(latitude, longitude, lat, lon) <= self.config.radius_m:
                    self._log.debug(
                        "Joining in-flight geocode near (%.5f, %.5f)", latitude, longitude
                    )
                    return pending
            # A lookup may have finished between the first check and taking the lock.
            cached = self.find_cached(latitude, longitude)
            if cached is not None:
                return _completed(GeocodeOutcome(location=cached, from_cache=True))
            future = self._executor.submit(self._resolve, latitude, longitude, key)
            entry: _InFlight = (latitude, longitude, future)
            self._in_flight.append(entry)
        future.add_done_callback(lambda _f: self._forget(entry))
        return future

    def lookup(
        self,
        latitude: float,
        longitude: float,
        timeout: float | None = None,
    ) -> Optional[GeocodedLocation]:
        """Blocking lookup. Returns None on miss, failure or timeout."""

        return self.await_outcome(
            self.lookup_async(latitude, longitude), latitude, longitude, timeout
        )

    def await_outcome(
        self,
        future: "Future[GeocodeOutcome]",
        latitude: float,
        longitude: float,
        timeout: float | None = None,
    ) -> Optional[GeocodedLocation]:
        """Wait for a future from :meth:`lookup_async`, degrading errors to None."""

        wait_s = self.config.timeout_s if timeout is None else timeout
        try:
            outcome = future.result(timeout=wait_s)
        except FutureTimeoutError:
            self._log.warning(
                "Geocoding (%.5f, %.5f) timed out after %.1fs",
                latitude,
                longitude,
                wait_s,
            )
            return None
        if not outcome.ok:
            self._log.warning(
                "Geocoding (%.5f, %.5f) failed: %s", latitude, longitude, outcome.error
            )
            return None
        return outcome.location

    def _resolve(self, latitude: float, longitude: float, key: str) -> GeocodeOutcome:
        try:
            result = self._geocoder.reverse_geocode(latitude, longitude)
        except Exception as exc:
            with self._lock:
                self._failures[key] = str(exc) or exc.__class__.__name__
            return GeocodeOutcome(error=exc)
        if result is None:
            self._log.debug("No address for (%.5f, %.5f)", latitude, longitude)
            return GeocodeOutcome()

        stamped = replace(
            result,
            latitude=latitude,
            longitude=longitude,
            cached_at=self._clock.now(),
            ttl=self.config.ttl,
        )
        try:
            self._store.put(stamped)
        except Exception as exc:  # pragma: no cover - store failure is non-fatal
            self._log.warning(
                "Could not cache geocode for (%.5f, %.5f): %s", latitude, longitude, exc
            )
        return GeocodeOutcome(location=stamped)

    def _forget(self, entry: _InFlight) -> None:
        with self._lock:
            try:
                self._in_flight.remove(entry)
            except ValueError:
                pass

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._failures.clear()
        self._log.info("Geocoding cache cleared")

    def clear_expired(self) -> int:
        removed = self._store.clear_expired(self._clock.now())
        self._log.debug("Expired %d geocoding cache entries", removed)
        return removed

    def count(self) -> int:
        """Number of unexpired entries."""

        return self._store.count(self._clock.now())

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "GeocodingCache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["GeocodingCache", "GeocodingCacheConfig"]
