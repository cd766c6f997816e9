"""Error types raised by the evaluation core."""

from __future__ import annotations

from typing import Any, Dict, Hashable, Optional


class EvalGateError(Exception):
  pass


class SubjectInvocationError(EvalGateError):
  """The system under test could not produce a response (network, timeout)."""


class GraderError(EvalGateError):
  """A check could not be executed. Distinct from a check that ran and failed."""


class CacheAccessError(EvalGateError):
  """A suite result was requested before the suite was ever run."""


class ThresholdUndefinedError(EvalGateError):
  """A pass rate cannot be computed (no cases) or no threshold applies."""


class FanOutTimeoutError(EvalGateError):
  """The fan-out deadline elapsed before every suite settled.

    Attributes:
        pending: Identifiers that had not settled; their entries are poisoned.
        results: Results of the suites that did settle successfully.
    """

  def __init__(self, deadline_s: float, pending=(), results: Optional[Dict[Any, Any]] = None):
    self.deadline_s = deadline_s
    self.pending = list(pending)
    self.results = dict(results or {})
    names = ", ".join(str(p) for p in self.pending)
    super().__init__(f"Eval fan-out exceeded its {deadline_s:g}s deadline; unfinished suites: {names}")


class SuiteRunError(EvalGateError):
  """One or more suites failed during a fan-out.

    Attributes:
        suite_id: Identifier of the first failed suite (in request order).
        results: Results of the suites that did settle successfully.
        errors: Every failure, keyed by suite identifier.
    """

  def __init__(
      self,
      suite_id: Hashable,
      cause: BaseException,
      results: Optional[Dict[Any, Any]] = None,
      errors: Optional[Dict[Any, BaseException]] = None,
  ):
    self.suite_id = suite_id
    self.cause = cause
    self.results = dict(results or {})
    self.errors = dict(errors or {suite_id: cause})
    super().__init__(
        f"Eval suite {suite_id!s} is not available: {type(cause).__name__}: {cause} "
        f"({len(self.errors)} failed, {len(self.results)} settled)"
    )
