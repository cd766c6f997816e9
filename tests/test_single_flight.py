"""Tests for eval/single_flight.py - SingleFlight dedup and failure caching."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from evalgate.eval.errors import CacheAccessError, FanOutTimeoutError
from evalgate.eval.single_flight import SingleFlight


class CountingRun:
    """Callable that counts invocations and returns a fresh object each time."""

    def __init__(self, delay: float = 0.05, fail: bool = False):
        self.delay = delay
        self.fail = fail
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("suite exploded")
        return {"passed": 1, "total": 1}


def test_concurrent_callers_run_once():
    """Test N concurrent first callers trigger exactly one run and share its result."""
    cache = SingleFlight()
    run = CountingRun()
    n = 16
    barrier = threading.Barrier(n)

    def call():
        barrier.wait()
        return cache.get_or_run("math", run)

    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(pool.map(lambda _: call(), range(n)))

    assert run.calls == 1
    assert all(r is results[0] for r in results)
    assert cache.runs == {"math": 1}


def test_distinct_keys_run_independently():
    """Test concurrent callers for distinct keys each run once per key."""
    cache = SingleFlight()
    runs = {k: CountingRun(delay=0.02) for k in ("a", "b", "c")}
    barrier = threading.Barrier(9)

    def call(key):
        barrier.wait()
        return cache.get_or_run(key, runs[key])

    keys = ["a", "b", "c"] * 3
    with ThreadPoolExecutor(max_workers=9) as pool:
        list(pool.map(call, keys))

    assert {k: r.calls for k, r in runs.items()} == {"a": 1, "b": 1, "c": 1}
    assert len(cache) == 3


def test_settled_entry_is_reused():
    """Test later callers get the settled value without running again."""
    cache = SingleFlight()
    first = cache.get_or_run("k", lambda: ["value"])
    second = cache.get_or_run("k", lambda: ["other"])
    assert second is first
    assert cache.is_settled("k")


def test_failure_is_cached_and_replayed():
    """Test a failed run poisons the entry for current and later callers."""
    cache = SingleFlight()
    run = CountingRun(fail=True)
    n = 8
    barrier = threading.Barrier(n)

    def call():
        barrier.wait()
        try:
            cache.get_or_run("bad", run)
        except RuntimeError as e:
            return e
        return None

    with ThreadPoolExecutor(max_workers=n) as pool:
        errors = list(pool.map(lambda _: call(), range(n)))

    assert run.calls == 1
    assert all(isinstance(e, RuntimeError) for e in errors)

    retry = CountingRun()
    with pytest.raises(RuntimeError, match="suite exploded"):
        cache.get_or_run("bad", retry)
    assert retry.calls == 0
    with pytest.raises(RuntimeError, match="suite exploded"):
        cache.get("bad")


def test_get_unknown_key_raises_cache_access_error():
    """Test requesting a key that was never run raises CacheAccessError."""
    cache = SingleFlight()
    with pytest.raises(CacheAccessError, match="has not been run"):
        cache.get("never")
    assert "never" not in cache


def test_get_waits_for_in_flight_run():
    """Test get() on a pending key waits for the settled value."""
    cache = SingleFlight()
    started = threading.Event()
    release = threading.Event()

    def run():
        started.set()
        release.wait(5)
        return "done"

    worker = threading.Thread(target=cache.get_or_run, args=("slow", run))
    worker.start()
    started.wait(5)
    assert not cache.is_settled("slow")
    release.set()
    assert cache.get("slow", timeout=5) == "done"
    worker.join(5)


def test_poison_fails_pending_and_unrequested_keys():
    """Test poisoning releases waiters and blocks later runs of those keys."""
    cache = SingleFlight()
    started = threading.Event()
    release = threading.Event()

    def slow():
        started.set()
        release.wait(5)
        return "late"

    def owner():
        with pytest.raises(FanOutTimeoutError):
            cache.get_or_run("slow", slow)

    cache.get_or_run("done", lambda: "ok")
    worker = threading.Thread(target=owner)
    worker.start()
    started.wait(5)

    err = FanOutTimeoutError(1.0, pending=["slow", "queued"])
    poisoned = cache.poison(err, ["done", "slow", "queued"])
    assert poisoned == ["slow", "queued"]

    with pytest.raises(FanOutTimeoutError):
        cache.get("slow")
    run = CountingRun()
    with pytest.raises(FanOutTimeoutError):
        cache.get_or_run("queued", run)
    assert run.calls == 0
    assert cache.get("done") == "ok"

    # The owner finishing later does not overwrite the poisoned entry.
    release.set()
    worker.join(5)
    with pytest.raises(FanOutTimeoutError):
        cache.get("slow")


def test_clear_discards_entries():
    """Test clear() tears down the cache so keys read as never run."""
    cache = SingleFlight()
    cache.get_or_run("k", lambda: 1)
    cache.clear()
    assert len(cache) == 0
    with pytest.raises(CacheAccessError):
        cache.get("k")


class Abort(BaseException):
    """Interrupt-style exception that does not derive from Exception."""


def test_interrupted_run_still_settles():
    """Test an interrupt in the owner settles the entry so later callers do not hang."""
    cache = SingleFlight()

    def run():
        raise Abort("stop")

    with pytest.raises(Abort):
        cache.get_or_run("k", run)
    assert cache.is_settled("k")
    with pytest.raises(Abort):
        cache.get("k", timeout=1)

    retry = CountingRun()
    with pytest.raises(Abort):
        cache.get_or_run("k", retry, timeout=1)
    assert retry.calls == 0
    assert cache.runs["k"] == 1
