"""Geocoding cache stores: in-memory and SQLite backed."""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from ..geo import BoundingBox
from ..models import GeocodedLocation

LOGGER = logging.getLogger(__name__)


def _entry_key(location: GeocodedLocation) -> str:
    return f"{location.latitude:.7f},{location.longitude:.7f}"


class InMemoryGeocodingCacheStore:
    """Thread-safe store keeping entries in a dict keyed by coordinate."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, GeocodedLocation] = {}

    def query_bbox(self, box: BoundingBox, now: datetime) -> List[GeocodedLocation]:
        with self._lock:
            return [
                entry
                for entry in self._entries.values()
                if box.contains(entry.latitude, entry.longitude)
                and not entry.is_expired(now)
            ]

    def put(self, location: GeocodedLocation) -> None:
        with self._lock:
            self._entries[_entry_key(location)] = location

    def clear_expired(self, now: datetime) -> int:
        with self._lock:
            stale = [k for k, v in self._entries.items() if v.is_expired(now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def count(self, now: datetime) -> int:
        with self._lock:
            return sum(1 for v in self._entries.values() if not v.is_expired(now))


_SCHEMA = """
CREATE TABLE IF NOT EXISTS geocoding_cache (
    id TEXT PRIMARY KEY,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    formatted_address TEXT,
    city TEXT,
    state TEXT,
    country TEXT,
    country_code TEXT,
    postal_code TEXT,
    poi_name TEXT,
    cached_at REAL NOT NULL,
    expires_at REAL
);
CREATE INDEX IF NOT EXISTS idx_geocoding_cache_lat_lon
    ON geocoding_cache (latitude, longitude);
CREATE INDEX IF NOT EXISTS idx_geocoding_cache_expires
    ON geocoding_cache (expires_at);
"""

_COLUMNS = (
    "latitude, longitude, formatted_address, city, state, country, "
    "country_code, postal_code, poi_name, cached_at, expires_at"
)


class SqliteGeocodingCacheStore:
    """Persistent store backed by a single SQLite file.

    Bounding-box candidates are selected in SQL using the latitude/longitude
    index; exact distance filtering is left to the cache.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def query_bbox(self, box: BoundingBox, now: datetime) -> List[GeocodedLocation]:
        ranges = box.lon_ranges()
        lon_clause = " OR ".join("longitude BETWEEN ? AND ?" for _ in ranges)
        sql = (
            f"SELECT {_COLUMNS} FROM geocoding_cache "
            f"WHERE latitude BETWEEN ? AND ? AND ({lon_clause}) "
            "AND (expires_at IS NULL OR expires_at > ?)"
        )
        params: List[float] = [box.min_lat, box.max_lat]
        for low, high in ranges:
            params.extend((low, high))
        params.append(now.timestamp())
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_location(row) for row in rows]

    def put(self, location: GeocodedLocation) -> None:
        cached_at = location.cached_at or datetime.now(timezone.utc)
        expires = location.expires_at
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT OR REPLACE INTO geocoding_cache (id, {_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    _entry_key(location),
                    location.latitude,
                    location.longitude,
                    location.formatted_address,
                    location.city,
                    location.state,
                    location.country,
                    location.country_code,
                    location.postal_code,
                    location.poi_name,
                    cached_at.timestamp(),
                    expires.timestamp() if expires is not None else None,
                ),
            )

    def clear_expired(self, now: datetime) -> int:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM geocoding_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now.timestamp(),),
            )
        removed = cursor.rowcount or 0
        if removed:
            LOGGER.info("Removed %d expired geocoding cache entries", removed)
        return removed

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM geocoding_cache")

    def count(self, now: datetime) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM geocoding_cache "
                "WHERE expires_at IS NULL OR expires_at > ?",
                (now.timestamp(),),
            ).fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _row_to_location(row: tuple) -> GeocodedLocation:
        cached_at = datetime.fromtimestamp(row[9], tz=timezone.utc)
        ttl: Optional[timedelta] = None
        if row[10] is not None:
            ttl = datetime.fromtimestamp(row[10], tz=timezone.utc) - cached_at
        location = GeocodedLocation(
            latitude=row[0],
            longitude=row[1],
            formatted_address=row[2],
            city=row[3],
            state=row[4],
            country=row[5],
            country_code=row[6],
            postal_code=row[7],
            poi_name=row[8],
        )
        return replace(location, cached_at=cached_at, ttl=ttl)


__all__ = ["InMemoryGeocodingCacheStore", "SqliteGeocodingCacheStore"]
