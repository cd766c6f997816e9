"""Keyed single-flight execution: each key runs at most once per instance."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Dict, Generic, Hashable, Iterable, List, Optional, Tuple, TypeVar

from .errors import CacheAccessError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class SingleFlight(Generic[K, V]):
  """Process-lifetime cache that deduplicates concurrent runs per key.

    The first caller for a key registers a pending Future and runs the work in
    its own thread; every other caller, concurrent or later, waits on that same
    Future. Settled entries (success or failure) are never evicted or retried.
    """

  def __init__(self):
    self._lock = threading.Lock()
    self._entries: Dict[K, Future] = {}
    self.runs: Dict[K, int] = {}

  def _register(self, key: K) -> Tuple[Future, bool]:
    with self._lock:
      future = self._entries.get(key)
      if future is not None:
        return future, False
      future = Future()
      self._entries[key] = future
      self.runs[key] = self.runs.get(key, 0) + 1
      return future, True

  def _settle(self, future: Future, value: Optional[V] = None, exc: Optional[BaseException] = None) -> None:
    # An entry may already have been poisoned by a deadline.
    with self._lock:
      if future.done():
        return
      if exc is not None:
        future.set_exception(exc)
      else:
        future.set_result(value)

  def get_or_run(self, key: K, run: Callable[[], V], timeout: Optional[float] = None) -> V:
    """Return the settled value for key, running `run` only if key is new.

    A failure raised by `run` is cached and re-raised to every caller,
    including interrupts, which the owner re-raises directly.
    """
    future, owner = self._register(key)
    if owner:
      try:
        value = run()
      except BaseException as e:
        self._settle(future, exc=e)
        if not isinstance(e, Exception):
          raise
      else:
        self._settle(future, value=value)
    return future.result(timeout=timeout)

  def get(self, key: K, timeout: Optional[float] = None) -> V:
    """Return the settled value for a key that was already requested.

    Waits if the run is still in flight. Raises CacheAccessError if the key
    was never requested.
    """
    with self._lock:
      future = self._entries.get(key)
    if future is None:
      raise CacheAccessError(f"No result for {key!s}: it has not been run in this session")
    return future.result(timeout=timeout)

  def future(self, key: K) -> Optional[Future]:
    with self._lock:
      return self._entries.get(key)

  def is_settled(self, key: K) -> bool:
    future = self.future(key)
    return future is not None and future.done()

  def poison(self, exc: BaseException, keys: Optional[Iterable[K]] = None) -> List[K]:
    """Fail unsettled entries with exc so waiters stop waiting.

    With keys=None every pending entry is failed. Keys that were never
    requested are registered as failed, so they will not run later either.
    Returns the keys that were poisoned.
    """
    poisoned = []
    with self._lock:
      targets = list(self._entries) if keys is None else list(keys)
      for key in targets:
        future = self._entries.get(key)
        if future is None:
          future = Future()
          self._entries[key] = future
        if not future.done():
          future.set_exception(exc)
          poisoned.append(key)
    return poisoned

  def clear(self) -> None:
    """Discard all entries (teardown). In-flight runs settle into orphaned futures."""
    with self._lock:
      self._entries.clear()
      self.runs.clear()

  def __contains__(self, key: object) -> bool:
    with self._lock:
      return key in self._entries

  def __len__(self) -> int:
    with self._lock:
      return len(self._entries)
