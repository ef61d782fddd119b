"""Batch runner: load samples, run the pipeline, persist results.

One batch covers one user and a time window. A batch is retried from the raw
samples when persisting fails; because every id is derived from content, a
retry upserts the same rows instead of creating duplicates. Batches for the
same user never overlap; different users run in parallel.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..clock import DEFAULT_CLOCK, Clock
from ..config import BATCH_BACKOFF_MAX_SECONDS, BATCH_MAX_ATTEMPTS, BATCH_MAX_WORKERS
from ..errors import BatchProcessingError, PersistenceError
from ..models import PlaceVisit, ProcessingResult
from ..pipeline_config import PipelineConfig
from ..storage.base import ResultStore, SampleStore
from .pipeline import LocationPipeline

_BACKOFF_BASE_SECONDS = 0.5


@dataclass(slots=True)
class BatchServiceConfig:
    pipeline: LocationPipeline | None = None
    pipeline_config: PipelineConfig = field(default_factory=PipelineConfig)
    max_workers: int = BATCH_MAX_WORKERS
    max_attempts: int = BATCH_MAX_ATTEMPTS
    backoff_max_seconds: float = BATCH_BACKOFF_MAX_SECONDS
    sleep: Callable[[float], None] = time.sleep
    clock: Clock = DEFAULT_CLOCK
    logger: logging.Logger | None = None


@dataclass(slots=True)
class BatchOutcome:
    user_id: str
    result: Optional[ProcessingResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _overlaps(visit: PlaceVisit, start: datetime, end: datetime) -> bool:
    return visit.start_time <= end and visit.end_time >= start


class BatchProcessingService:
    def __init__(
        self,
        sample_store: SampleStore,
        result_store: ResultStore,
        config: BatchServiceConfig | None = None,
    ):
        self.config = config or BatchServiceConfig()
        if self.config.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._samples = sample_store
        self._results = result_store
        self._pipeline = self.config.pipeline or LocationPipeline()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._user_locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_lock:
            if user_id not in self._user_locks:
                self._user_locks[user_id] = threading.Lock()
            return self._user_locks[user_id]

    def process_user(
        self, user_id: str, start: datetime, end: datetime
    ) -> ProcessingResult:
        """Process and persist one user's window, retrying on write failures.

        Raises:
            BatchProcessingError: When every attempt failed to persist.
        """

        with self._user_lock(user_id):
            last_error: PersistenceError | None = None
            for attempt in range(1, self.config.max_attempts + 1):
                result, existing = self._run_once(user_id, start, end)
                try:
                    self._persist(user_id, result, existing)
                except PersistenceError as exc:
                    last_error = exc
                    if attempt < self.config.max_attempts:
                        delay = min(
                            self.config.backoff_max_seconds,
                            _BACKOFF_BASE_SECONDS * (2 ** (attempt - 1)),
                        )
                        self._log.warning(
                            "Persisting batch for user=%s failed (attempt %d/%d): %s; "
                            "retrying in %.1fs",
                            user_id,
                            attempt,
                            self.config.max_attempts,
                            exc,
                            delay,
                        )
                        self.config.sleep(delay)
                    continue
                self._log.info(
                    "Persisted batch for user=%s (attempt %d): %d visits, %d routes, %d trips",
                    user_id,
                    attempt,
                    len(result.visits),
                    len(result.routes),
                    len(result.trips),
                )
                return result
            raise BatchProcessingError(
                f"Batch for user {user_id} failed after "
                f"{self.config.max_attempts} attempts: {last_error}"
            ) from last_error

    def process_users(
        self, user_ids: Sequence[str], start: datetime, end: datetime
    ) -> List[BatchOutcome]:
        """Process many users in parallel; failures are reported, not raised."""

        unique = list(dict.fromkeys(user_ids))
        if not unique:
            return []
        outcomes: Dict[str, BatchOutcome] = {}
        failed_users: set[str] = set()
        failure_lock = threading.Lock()

        def _record_failure(user_id: str) -> None:
            with failure_lock:
                failed_users.add(user_id)

        workers = max(1, min(self.config.max_workers, len(unique)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch") as executor:
            future_map = {
                executor.submit(self.process_user, user_id, start, end): user_id
                for user_id in unique
            }
            for future in as_completed(future_map):
                user_id = future_map[future]
                try:
                    outcomes[user_id] = BatchOutcome(user_id, result=future.result())
                except BatchProcessingError as exc:
                    _record_failure(user_id)
                    self._log.error("User %s batch abandoned: %s", user_id, exc)
                    outcomes[user_id] = BatchOutcome(user_id, error=exc)
                except Exception as exc:
                    _record_failure(user_id)
                    self._log.error(
                        "User %s batch failed due to unexpected error: %s",
                        user_id,
                        exc,
                        exc_info=True,
                    )
                    outcomes[user_id] = BatchOutcome(user_id, error=exc)

        if failed_users:
            self._log.warning(
                "%d of %d user batches failed (users: %s)",
                len(failed_users),
                len(unique),
                ", ".join(sorted(failed_users)),
            )
        return [outcomes[user_id] for user_id in unique]

    def _run_once(
        self, user_id: str, start: datetime, end: datetime
    ) -> Tuple[ProcessingResult, List[PlaceVisit]]:
        samples = self._samples.get_samples(user_id, start, end)
        existing = [
            v for v in self._results.get_visits(user_id) if _overlaps(v, start, end)
        ]
        self._log.debug(
            "user=%s window %s -> %s: %d samples, %d existing visits",
            user_id,
            start,
            end,
            len(samples),
            len(existing),
        )
        result = self._pipeline.process(samples, self.config.pipeline_config, existing)
        return result, existing

    def _persist(
        self, user_id: str, result: ProcessingResult, existing: Sequence[PlaceVisit]
    ) -> None:
        """Write ``result`` and drop what it replaced, in one transaction.

        A visit that grew since the last run gets a new id, and so do the
        routes and trip that hang off it. Persisted visits the result no longer
        contains are soft-deleted; routes and trips that touched the window's
        visits but were not regenerated are removed, with their trip days.
        """

        visit_ids = {v.id for v in result.visits}
        superseded = [v.id for v in existing if not v.is_deleted and v.id not in visit_ids]
        touched = visit_ids.union(superseded)
        route_ids = {r.id for r in result.routes}
        trip_ids = {t.id for t in result.trips}
        day_ids = {d.id for d in result.trip_days}

        with self._results.transaction():
            self._results.upsert_visits(result.visits)
            self._results.upsert_routes(result.routes)
            self._results.upsert_trips(result.trips)
            self._results.upsert_trip_days(result.trip_days)

            deleted_at = self.config.clock.now()
            for visit_id in superseded:
                self._results.soft_delete_visit(visit_id, deleted_at)
            stale_routes = [
                r.id
                for r in self._results.get_routes(user_id)
                if r.id not in route_ids
                and (
                    r.from_visit_id in superseded
                    or r.to_visit_id in superseded
                    or (r.from_visit_id in visit_ids and r.to_visit_id in visit_ids)
                )
            ]
            stale_trips = [
                t.id
                for t in self._results.get_trips(user_id)
                if t.id not in trip_ids and touched.intersection(t.visit_ids)
            ]
            stale_days = [
                d.id
                for trip_id in trip_ids
                for d in self._results.get_trip_days(trip_id)
                if d.id not in day_ids
            ]
            if stale_routes:
                self._results.delete_routes(stale_routes)
            if stale_trips:
                self._results.delete_trips(stale_trips)
            if stale_days:
                self._results.delete_trip_days(stale_days)

        if superseded or stale_routes or stale_trips:
            self._log.info(
                "user=%s replaced %d visits, %d routes, %d trips from earlier runs",
                user_id,
                len(superseded),
                len(stale_routes),
                len(stale_trips),
            )


__all__ = ["BatchProcessingService", "BatchServiceConfig", "BatchOutcome"]
