"""Central configuration for the travel timeline pipeline.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Every value can be overridden through an environment
variable (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_str(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Clustering (stationary stay detection)
# ---------------------------------------------------------------------------
# Neighbourhood radius in metres before accuracy inflation.
CLUSTER_EPSILON_M = _env_float("CLUSTER_EPSILON_M", 100.0)

# Minimum number of *other* samples in a neighbourhood for a core point.
CLUSTER_MIN_POINTS = _env_int("CLUSTER_MIN_POINTS", 3)

# Two samples are only neighbours when their timestamps are this close.
CLUSTER_TIME_WINDOW_MINUTES = _env_float("CLUSTER_TIME_WINDOW_MINUTES", 30.0)

# Clusters shorter than this are not considered a stay.
CLUSTER_MIN_STAY_MINUTES = _env_float("CLUSTER_MIN_STAY_MINUTES", 10.0)

# Upper bound on how much a single sample's reported accuracy may widen the
# neighbourhood radius. Stops very poor network fixes from merging places.
CLUSTER_ACCURACY_INFLATION_CAP_M = _env_float(
    "CLUSTER_ACCURACY_INFLATION_CAP_M", 50.0
)


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------
# Accuracy floor used when weighting samples (avoids division by zero).
VISIT_MIN_ACCURACY_M = _env_float("VISIT_MIN_ACCURACY_M", 1.0)


# ---------------------------------------------------------------------------
# Geocoding
# ---------------------------------------------------------------------------
# A cached address is reused for queries within this distance.
GEOCODE_CACHE_RADIUS_M = _env_float("GEOCODE_CACHE_RADIUS_M", 100.0)

# Cached addresses expire after this many days.
GEOCODE_CACHE_TTL_DAYS = _env_int("GEOCODE_CACHE_TTL_DAYS", 30)

# Seconds a failed coordinate is skipped before the geocoder is asked again.
GEOCODE_FAILURE_COOLDOWN_SECONDS = _env_float(
    "GEOCODE_FAILURE_COOLDOWN_SECONDS", 300.0
)

# Maximum failed coordinates remembered for the cool-down.
GEOCODE_FAILURE_CACHE_SIZE = _env_int("GEOCODE_FAILURE_CACHE_SIZE", 512)

# Seconds the pipeline waits for one reverse geocode before giving up.
GEOCODE_TIMEOUT_SECONDS = _env_float("GEOCODE_TIMEOUT_SECONDS", 30.0)

# Threads used for background geocoding lookups.
GEOCODE_MAX_WORKERS = _env_int("GEOCODE_MAX_WORKERS", 2)

# SQLite file used by the persistent geocoding cache store.
GEOCODE_CACHE_DB_PATH = _env_str("GEOCODE_CACHE_DB_PATH", "geocoding_cache.sqlite3")

# Nominatim (OpenStreetMap) reverse geocoding endpoint. Please respect the
# public usage policy: one request per second and a descriptive User-Agent.
NOMINATIM_BASE_URL = _env_str(
    "NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org/reverse"
)
NOMINATIM_USER_AGENT = _env_str(
    "NOMINATIM_USER_AGENT", "travel-timeline/0.1.0 (reverse-geocode)"
)
NOMINATIM_ACCEPT_LANGUAGE = _env_str("NOMINATIM_ACCEPT_LANGUAGE", "en")
NOMINATIM_ZOOM = _env_int("NOMINATIM_ZOOM", 18)
NOMINATIM_MIN_INTERVAL_SECONDS = _env_float("NOMINATIM_MIN_INTERVAL_SECONDS", 1.0)

# HTTP session pool sizes for concurrent requests.
HTTP_POOL_CONNECTIONS = _env_int("HTTP_POOL_CONNECTIONS", 4)
HTTP_POOL_MAXSIZE = _env_int("HTTP_POOL_MAXSIZE", 4)

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_float("REQUEST_TIMEOUT", 15.0)

# Rate limiter settings.
# RATE_LIMIT_MAX_CONCURRENT caps total in-flight geocoder requests.
RATE_LIMIT_MAX_CONCURRENT = _env_int("RATE_LIMIT_MAX_CONCURRENT", 1)
# RATE_LIMIT_THROTTLE_SECONDS is the pause applied on 429 responses.
RATE_LIMIT_THROTTLE_SECONDS = _env_float("RATE_LIMIT_THROTTLE_SECONDS", 30.0)


# ---------------------------------------------------------------------------
# Routes & transport
# ---------------------------------------------------------------------------
# Maximum deviation (metres) allowed when simplifying route geometry.
PATH_SIMPLIFICATION_EPSILON_M = _env_float("PATH_SIMPLIFICATION_EPSILON_M", 50.0)

# Speed / distance thresholds for transport classification.
TRANSPORT_WALK_MAX_KMH = _env_float("TRANSPORT_WALK_MAX_KMH", 7.0)
TRANSPORT_BIKE_MAX_KMH = _env_float("TRANSPORT_BIKE_MAX_KMH", 25.0)
TRANSPORT_CAR_MAX_SPEED_KMH = _env_float("TRANSPORT_CAR_MAX_SPEED_KMH", 120.0)
TRANSPORT_CAR_MAX_DISTANCE_KM = _env_float("TRANSPORT_CAR_MAX_DISTANCE_KM", 500.0)
TRANSPORT_TRAIN_MIN_AVG_KMH = _env_float("TRANSPORT_TRAIN_MIN_AVG_KMH", 60.0)
TRANSPORT_TRAIN_MIN_DISTANCE_KM = _env_float("TRANSPORT_TRAIN_MIN_DISTANCE_KM", 50.0)
TRANSPORT_TRAIN_MAX_SPEED_CV = _env_float("TRANSPORT_TRAIN_MAX_SPEED_CV", 0.5)
TRANSPORT_FLIGHT_MIN_SPEED_KMH = _env_float("TRANSPORT_FLIGHT_MIN_SPEED_KMH", 200.0)
TRANSPORT_FLIGHT_MIN_DISTANCE_KM = _env_float(
    "TRANSPORT_FLIGHT_MIN_DISTANCE_KM", 500.0
)


# ---------------------------------------------------------------------------
# Home & trips
# ---------------------------------------------------------------------------
HOME_RADIUS_M = _env_float("HOME_RADIUS_M", 500.0)
HOME_MIN_NIGHTS = _env_int("HOME_MIN_NIGHTS", 3)
# A visit at least this long counts as a night spent at the place.
HOME_NIGHT_MIN_HOURS = _env_float("HOME_NIGHT_MIN_HOURS", 6.0)

# "home_distance" (default) or "gap_return"; see TripSegmentationStrategy.
TRIP_STRATEGY = _env_str("TRIP_STRATEGY", "home_distance")
TRIP_DISTANCE_THRESHOLD_M = _env_float("TRIP_DISTANCE_THRESHOLD_M", 100_000.0)
TRIP_MIN_DURATION_HOURS = _env_float("TRIP_MIN_DURATION_HOURS", 4.0)
TRIP_GAP_HOURS = _env_float("TRIP_GAP_HOURS", 24.0)
TRIP_RETURN_RADIUS_M = _env_float("TRIP_RETURN_RADIUS_M", 5_000.0)
TRIP_MAX_SAME_CITY_SPAN_DAYS = _env_float("TRIP_MAX_SAME_CITY_SPAN_DAYS", 7.0)

# IANA timezone used to cut trips into calendar days.
TIMELINE_TIMEZONE = _env_str("TIMELINE_TIMEZONE", "UTC")


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------
# Users processed in parallel by the batch service.
BATCH_MAX_WORKERS = _env_int("BATCH_MAX_WORKERS", 4)

# Whole-batch attempts before a user's batch is reported as failed.
BATCH_MAX_ATTEMPTS = _env_int("BATCH_MAX_ATTEMPTS", 3)

# Exponential backoff between batch attempts is capped at this many seconds.
BATCH_BACKOFF_MAX_SECONDS = _env_float("BATCH_BACKOFF_MAX_SECONDS", 4.0)
