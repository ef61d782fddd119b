"""Rate limiting for calls to public geocoding services."""

from __future__ import annotations

import logging
import threading
import time
from typing import Mapping

from ..config import (
    NOMINATIM_MIN_INTERVAL_SECONDS,
    RATE_LIMIT_MAX_CONCURRENT,
    RATE_LIMIT_THROTTLE_SECONDS,
)

__all__ = ["RateLimiter"]

LOGGER = logging.getLogger(__name__)


def _retry_after_seconds(headers: Mapping[str, object] | None) -> float | None:
    """Numeric ``Retry-After`` value; HTTP-date forms are ignored."""

    if not headers:
        return None
    raw = headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(str(raw)))
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring unparsable Retry-After=%s", raw)
        return None


class RateLimiter:
    """Concurrency cap plus a minimum spacing between request starts.

    A 429 response (or an explicit ``Retry-After`` header) pauses every caller
    for the throttle window.
    """

    def __init__(
        self,
        max_concurrent: int = RATE_LIMIT_MAX_CONCURRENT,
        min_interval: float = NOMINATIM_MIN_INTERVAL_SECONDS,
        throttle_seconds: float = RATE_LIMIT_THROTTLE_SECONDS,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._max_allowed = max_concurrent
        self._min_interval = min_interval
        self._throttle_seconds = throttle_seconds
        self._in_flight = 0
        self._throttle_until: float = 0.0
        self._next_slot: float = 0.0

    def resize(self, new_max: int) -> None:
        """Adjust maximum concurrent requests (soft limit) at runtime."""

        if new_max < 1:
            raise ValueError("new_max must be >= 1")
        with self._cond:
            old = self._max_allowed
            self._max_allowed = new_max
            self._cond.notify_all()
        LOGGER.info("RateLimiter resized from %s to %s", old, new_max)

    def before_request(self) -> None:
        with self._cond:
            while self._in_flight >= self._max_allowed:
                self._cond.wait()
            self._in_flight += 1
            now = time.monotonic()
            start_at = max(now, self._next_slot, self._throttle_until)
            self._next_slot = start_at + self._min_interval
        wait_for = start_at - now
        if wait_for > 0:
            time.sleep(wait_for)

    def after_response(
        self, headers: Mapping[str, object] | None, status_code: int | None
    ) -> None:
        pause = 0.0
        if status_code == 429:
            pause = max(self._throttle_seconds, _retry_after_seconds(headers) or 0.0)
            LOGGER.warning("Geocoder rate limit: 429. Throttling %ss.", pause)
        with self._cond:
            if pause > 0:
                self._throttle_until = time.monotonic() + pause
            self._in_flight = max(0, self._in_flight - 1)
            if self._in_flight < self._max_allowed:
                self._cond.notify()

    def snapshot(self) -> dict[str, float | int]:
        """Return current limiter stats (used by tests and diagnostics)."""

        with self._lock:
            return {
                "max_allowed": self._max_allowed,
                "in_flight": self._in_flight,
                "throttle_until": self._throttle_until,
                "min_interval": self._min_interval,
            }
