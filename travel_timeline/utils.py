"""General utility helpers shared across modules."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List

from .models import LocationSample

LOGGER = logging.getLogger(__name__)


def _normalise_value(value: Any) -> Any:
    """Convert objects to JSON-friendly representations."""

    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    if isinstance(value, (set, frozenset)):
        return sorted(_normalise_value(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def json_dumps_sorted(value: Any) -> str:
    """Return canonical JSON for hashing / comparisons."""

    normalised = _normalise_value(value)
    return json.dumps(normalised, sort_keys=True, separators=(",", ":"))


def stable_id(prefix: str, payload: Any, *, length: int = 24) -> str:
    """Content-derived identifier: identical inputs always give the same id.

    Re-running a batch on the same samples therefore upserts the same rows
    instead of inserting duplicates.
    """

    digest = hashlib.sha256(json_dumps_sorted(payload).encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:length]}"


def dedupe_samples(samples: Iterable[LocationSample]) -> List[LocationSample]:
    """Drop repeated sample ids (first occurrence wins) and sort by time."""

    seen: set[str] = set()
    unique: List[LocationSample] = []
    duplicates = 0
    for sample in samples:
        if sample.id in seen:
            duplicates += 1
            continue
        seen.add(sample.id)
        unique.append(sample)
    if duplicates:
        LOGGER.debug("Dropped %d duplicate samples", duplicates)
    unique.sort(key=lambda s: (s.timestamp, s.id))
    return unique


def coord_key(lat: float, lon: float, precision: int) -> str:
    """Build a stable cache key by rounding coordinates."""

    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"
