"""Eval session: runs suites at most once each and fans them out in parallel."""

from __future__ import annotations

import functools
import threading
import time
from concurrent.futures import ALL_COMPLETED, FIRST_EXCEPTION, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional

from .errors import EvalGateError, FanOutTimeoutError, SuiteRunError
from .runner import PRINT_MODES, SuiteExecutor, SuiteResult, run_in_daemon
from .single_flight import SingleFlight
from .tasks import SuiteDefinition, load_suite

from evalgate.trace import Trace

SETTLE_ALL = "settle_all"
FIRST_FAILURE = "first_failure"
POLICIES = (SETTLE_ALL, FIRST_FAILURE)

SuiteId = Hashable


@dataclass
class FanOutConfig:
  """Configuration for running many suites.

    Attributes:
        max_workers: Cap on suites in flight at once (None = one per suite).
        deadline_s: Soft deadline for a whole fan-out (None = no deadline).
        policy: "settle_all" waits for every suite and then raises the first
            failure; "first_failure" raises as soon as any suite fails.
        print_mode: Output verbosity ("quiet", "standard", "verbose").
    """

  max_workers: Optional[int] = None
  deadline_s: Optional[float] = None
  policy: str = SETTLE_ALL
  print_mode: str = "standard"

  def __post_init__(self):
    if self.max_workers is not None and self.max_workers < 1:
      raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
    if self.deadline_s is not None and self.deadline_s <= 0:
      raise ValueError(f"deadline_s must be positive, got {self.deadline_s}")
    if self.policy not in POLICIES:
      raise ValueError(f"Invalid policy: {self.policy!r}. Use one of {POLICIES}.")
    if self.print_mode not in PRINT_MODES:
      raise ValueError(f"Invalid print_mode: {self.print_mode!r}. Use one of {PRINT_MODES}.")


class EvalSession:
  """Owns the suite result cache for one test run.

    Every suite identifier is loaded and executed at most once for the life of
    the session; every caller sees the same SuiteResult instance (or the same
    failure). Create one per run and close it at teardown.
    """

  def __init__(
      self,
      executor: SuiteExecutor,
      loader: Callable[[Any], SuiteDefinition] = load_suite,
      cfg: Optional[FanOutConfig] = None,
      trace: Optional[Trace] = None,
  ):
    self.executor = executor
    self.loader = loader
    self.cfg = cfg or FanOutConfig()
    self.trace = trace
    self.cache: SingleFlight[SuiteId, SuiteResult] = SingleFlight()
    self._started_at: Optional[float] = None
    self._finished_at: Optional[float] = None
    self._closed = False

  def __enter__(self) -> "EvalSession":
    return self

  def __exit__(self, *exc_info) -> None:
    self.close()

  def close(self) -> None:
    """Tear down the session; cached results are discarded."""
    self.cache.clear()
    self._closed = True

  def _check_open(self) -> None:
    if self._closed:
      raise EvalGateError("EvalSession is closed")

  def _log(self, kind: str, payload: Dict[str, Any]) -> None:
    if self.trace is not None:
      self.trace.log(kind, payload)

  def _run_suite(self, suite_id: SuiteId) -> SuiteResult:
    try:
      suite = self.loader(suite_id)
      return self.executor.execute(suite)
    except Exception as e:
      self._log("suite_error", {"suite_id": str(suite_id), "error": f"{type(e).__name__}: {e}"})
      if self.cfg.print_mode != "quiet":
        print(f"[eval] Suite {suite_id!s} failed: {type(e).__name__}: {e}")
      raise

  def get_or_run(self, suite_id: SuiteId) -> SuiteResult:
    """Return the suite's result, executing it only on the first request."""
    self._check_open()
    return self.cache.get_or_run(suite_id, lambda: self._run_suite(suite_id))

  def get_cached(self, suite_id: SuiteId, timeout: Optional[float] = None) -> SuiteResult:
    """Return the result of a suite that was already requested.

    Raises CacheAccessError if the suite was never run in this session, or the
    cached failure if its run failed.
    """
    self._check_open()
    return self.cache.get(suite_id, timeout=timeout)

  def run_all(self, ids: Iterable[SuiteId], policy: Optional[str] = None) -> Dict[SuiteId, SuiteResult]:
    """Run every suite concurrently (deduplicated) and map ids to results.

    Raises SuiteRunError when a suite fails and FanOutTimeoutError when the
    deadline passes first.
    """
    self._check_open()
    policy = policy or self.cfg.policy
    if policy not in POLICIES:
      raise ValueError(f"Invalid policy: {policy!r}. Use one of {POLICIES}.")
    suite_ids: List[SuiteId] = list(dict.fromkeys(ids))
    if not suite_ids:
      return {}

    if self._started_at is None:
      self._started_at = time.time()
    workers = min(self.cfg.max_workers or len(suite_ids), len(suite_ids))
    self._log("fanout_start", {"suites": [str(s) for s in suite_ids], "workers": workers, "policy": policy})
    if self.cfg.print_mode == "verbose":
      print(f"[eval] Running {len(suite_ids)} suites with {workers} workers")

    # Suites queued behind the worker cap that find a poisoned entry never run.
    slots = threading.BoundedSemaphore(workers)

    def run_slot(sid: SuiteId) -> SuiteResult:
      with slots:
        return self.get_or_run(sid)

    futures = {sid: run_in_daemon(functools.partial(run_slot, sid), name="evalgate-suite") for sid in suite_ids}
    return_when = FIRST_EXCEPTION if policy == FIRST_FAILURE else ALL_COMPLETED
    try:
      _, not_done = wait(futures.values(), timeout=self.cfg.deadline_s, return_when=return_when)

      results: Dict[SuiteId, SuiteResult] = {}
      errors: Dict[SuiteId, BaseException] = {}
      for sid in suite_ids:
        future = futures[sid]
        if not future.done():
          continue
        exc = future.exception()
        if exc is not None:
          errors[sid] = exc
        else:
          results[sid] = future.result()

      if not_done and (policy == SETTLE_ALL or not errors):
        pending = [sid for sid in suite_ids if sid not in results and sid not in errors]
        err = FanOutTimeoutError(self.cfg.deadline_s, pending=pending, results=results)
        self.cache.poison(err, pending)
        self._log("fanout_end", {"status": "timeout", "pending": [str(s) for s in pending]})
        raise err
    finally:
      self._finished_at = time.time()

    self._log("fanout_end", {
        "status": "failed" if errors else "ok",
        "settled": [str(s) for s in results],
        "failed": {str(s): f"{type(e).__name__}: {e}" for s, e in errors.items()},
    })
    if errors:
      first = next(sid for sid in suite_ids if sid in errors)
      raise SuiteRunError(first, errors[first], results=results, errors=errors)
    return results

  def run_all_once(self, ids: Iterable[SuiteId]) -> Dict[SuiteId, SuiteResult]:
    """Idempotent entry point for test modules: repeated calls reuse the cache."""
    return self.run_all(ids)

  def meta(self) -> Dict[str, Any]:
    run_time_s = None
    if self._started_at is not None and self._finished_at is not None:
      run_time_s = self._finished_at - self._started_at
    return {
        "started_at": self._started_at,
        "run_time_s": run_time_s,
        "suites": len(self.cache),
    }
