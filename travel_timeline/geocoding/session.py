"""HTTP session factory for reverse geocoding calls."""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
    NOMINATIM_ACCEPT_LANGUAGE,
    NOMINATIM_USER_AGENT,
)

__all__ = ["create_geocoding_session"]


def _build_retry() -> Retry:
    # 429 is left to the rate limiter so the throttle window is honoured.
    return Retry(
        total=3,
        backoff_factor=1.0,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )


def create_geocoding_session(user_agent: str = NOMINATIM_USER_AGENT) -> Session:
    """Pooled session with retries and the headers Nominatim expects."""

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/json",
            "Accept-Language": NOMINATIM_ACCEPT_LANGUAGE,
            "User-Agent": user_agent,
        }
    )
    return session
