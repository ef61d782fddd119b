import threading
import time

from travel_timeline.geocoding.rate_limiter import RateLimiter


def worker(limiter: RateLimiter, started_evt: threading.Event, release_evt: threading.Event):
    """Acquire a slot, signal start, wait until release, then free slot."""
    limiter.before_request()
    started_evt.set()
    release_evt.wait()
    limiter.after_response(None, 200)


def test_rate_limiter_resize_behavior():
    """Validate dynamic resize semantics (grow then shrink)."""
    limiter = RateLimiter(max_concurrent=2, min_interval=0.0)

    workers = []
    for _ in range(2):
        started = threading.Event()
        release = threading.Event()
        t = threading.Thread(target=worker, args=(limiter, started, release))
        workers.append((started, release, t))
        t.start()

    for started, _, _ in workers:
        assert started.wait(0.3), "Initial worker failed to start in time"

    # Third worker should block (limit=2)
    c_started, c_release = threading.Event(), threading.Event()
    c_thread = threading.Thread(target=worker, args=(limiter, c_started, c_release))
    c_thread.start()
    assert not c_started.wait(0.07), "Third worker should have been blocked before resize"

    limiter.resize(3)
    assert c_started.wait(0.3), "Blocked worker did not start after resize increase"

    for _, release, t in workers:
        release.set()
        t.join(timeout=0.6)
    c_release.set()
    c_thread.join(timeout=0.6)

    snap = limiter.snapshot()
    assert snap["in_flight"] == 0
    assert snap["max_allowed"] == 3


def test_min_interval_spaces_request_starts():
    limiter = RateLimiter(max_concurrent=4, min_interval=0.05)
    starts = []
    for _ in range(3):
        limiter.before_request()
        starts.append(time.monotonic())
        limiter.after_response(None, 200)

    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.04 for gap in gaps)


def test_429_applies_retry_after_throttle():
    limiter = RateLimiter(max_concurrent=1, min_interval=0.0, throttle_seconds=0.0)
    limiter.before_request()
    before = time.monotonic()
    limiter.after_response({"Retry-After": "0.1"}, 429)

    assert limiter.snapshot()["throttle_until"] >= before + 0.09
    limiter.before_request()
    assert time.monotonic() - before >= 0.09
    limiter.after_response(None, 200)
