"""Suite executor: runs every case of a suite against the subject and grades it."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, TypeVar

from .checks import CaseGrader, Grade, GradeOutcome
from .errors import EvalGateError, GraderError, SubjectInvocationError
from .tasks import CaseSpec, SuiteDefinition

from evalgate.trace import Trace

T = TypeVar("T")

PRINT_MODES = ("quiet", "standard", "verbose")


class Subject(Protocol):

  def invoke(self, prompt: str, context: Dict[str, Any]) -> str:
    ...


@dataclass(frozen=True)
class CaseResult:
  """Graded outcome of one case.

    Attributes:
        input: The case prompt, verbatim.
        output: The subject's response ("" if it could not be obtained).
        grade: Pass or fail.
        failed_checks: Identifiers of the failed checks, empty on pass.
    """

  input: str
  output: str
  grade: Grade
  failed_checks: Tuple[str, ...] = ()

  @property
  def passed(self) -> bool:
    return self.grade is Grade.PASS

  def summary(self, width: int = 50) -> str:
    """Short, actionable description of a failing case."""
    fragment = self.input[:width]
    if len(self.input) > width:
      fragment += "..."
    reason = ", ".join(self.failed_checks) or "Unknown"
    return f"{fragment} [{reason}]"

  def to_dict(self) -> Dict[str, Any]:
    return {
        "input": self.input,
        "output": self.output,
        "grade": self.grade.value,
        "failed_checks": list(self.failed_checks),
    }


@dataclass(frozen=True)
class SuiteResult:
  """Ordered case results of one suite plus their pass/total counts."""

  passed: int
  total: int
  cases: Tuple[CaseResult, ...] = ()
  duration_s: float = field(default=0.0, compare=False)

  def __post_init__(self) -> None:
    if self.total != len(self.cases):
      raise ValueError(f"total={self.total} does not match {len(self.cases)} cases")
    actual = sum(1 for c in self.cases if c.grade is Grade.PASS)
    if self.passed != actual:
      raise ValueError(f"passed={self.passed} does not match {actual} passing cases")

  @classmethod
  def from_cases(cls, cases: Sequence[CaseResult], duration_s: float = 0.0) -> "SuiteResult":
    cases = tuple(cases)
    return cls(
        passed=sum(1 for c in cases if c.grade is Grade.PASS),
        total=len(cases),
        cases=cases,
        duration_s=duration_s,
    )

  def slice(self, start: Optional[int] = None, stop: Optional[int] = None) -> "SuiteResult":
    """Positional segment of the suite, e.g. the first 4 on-topic cases."""
    return SuiteResult.from_cases(self.cases[start:stop])

  def find(self, *fragments: str) -> Optional[CaseResult]:
    """First case whose input contains every fragment."""
    for case in self.cases:
      if all(f in case.input for f in fragments):
        return case
    return None

  def failures(self) -> Tuple[CaseResult, ...]:
    return tuple(c for c in self.cases if c.grade is Grade.FAIL)

  def aggregate(self) -> "AggregateResult":
    from .metrics import merge  # Import here to avoid circular import
    return merge([self])

  def pass_rate(self) -> float:
    return self.aggregate().pass_rate()


@dataclass
class EvalConfig:
  """Configuration for the suite executor.

    Attributes:
        case_workers: Cases run concurrently within a suite (0 or 1 = sequential).
        call_timeout_s: Bound on each subject and grader call (None = unbounded).
        print_mode: Output verbosity ("quiet", "standard", "verbose").
    """

  case_workers: int = 0
  call_timeout_s: Optional[float] = 60.0
  print_mode: str = "standard"

  def __post_init__(self):
    if self.case_workers < 0:
      raise ValueError(f"case_workers must be >= 0, got {self.case_workers}")
    if self.call_timeout_s is not None and self.call_timeout_s <= 0:
      raise ValueError(f"call_timeout_s must be positive, got {self.call_timeout_s}")
    if self.print_mode not in PRINT_MODES:
      raise ValueError(f"Invalid print_mode: {self.print_mode!r}. Use one of {PRINT_MODES}.")


def run_in_daemon(fn: Callable[[], T], name: str = "evalgate-call") -> "Future[T]":
  """Start fn on a daemon thread and return a Future for its outcome.

    Daemon threads are not joined at interpreter exit, so a call that is
    abandoned after a timeout cannot keep the process alive.
    """
  future: Future = Future()

  def target() -> None:
    if not future.set_running_or_notify_cancel():
      return
    try:
      result = fn()
    except BaseException as e:
      future.set_exception(e)
    else:
      future.set_result(result)

  threading.Thread(target=target, name=name, daemon=True).start()
  return future


def call_with_timeout(fn: Callable[[], T], timeout_s: Optional[float]) -> T:
  """Run fn, raising TimeoutError if it does not return within timeout_s.

    The call is abandoned on timeout; its eventual result is dropped.
    """
  if timeout_s is None:
    return fn()
  future = run_in_daemon(fn)
  try:
    return future.result(timeout=timeout_s)
  except FuturesTimeoutError:
    raise TimeoutError(f"timed out after {timeout_s:g}s") from None


def _error_check_id(exc: BaseException) -> str:
  return f"error:{type(exc).__name__}: {exc}"


class SuiteExecutor:
  """Runs the cases of a suite against a subject and grades each response."""

  def __init__(
      self,
      subject: Subject,
      grader: CaseGrader,
      cfg: Optional[EvalConfig] = None,
      trace: Optional[Trace] = None,
  ):
    self.subject = subject
    self.grader = grader
    self.cfg = cfg or EvalConfig()
    self.trace = trace

  def _log(self, kind: str, payload: Dict[str, Any]) -> None:
    if self.trace is not None:
      self.trace.log(kind, payload)

  def _invoke(self, case: CaseSpec, context: Dict[str, Any]) -> str:
    ctx = {**context, **case.context}
    try:
      response = call_with_timeout(lambda: self.subject.invoke(case.prompt, ctx), self.cfg.call_timeout_s)
    except SubjectInvocationError:
      raise
    except Exception as e:
      raise SubjectInvocationError(str(e) or type(e).__name__) from e
    if not isinstance(response, str):
      raise SubjectInvocationError(f"subject returned {type(response).__name__}, expected str")
    return response

  def _grade(self, case: CaseSpec, response: str) -> GradeOutcome:
    try:
      return call_with_timeout(lambda: self.grader.grade(response, case.checks), self.cfg.call_timeout_s)
    except GraderError:
      raise
    except Exception as e:
      raise GraderError(str(e) or type(e).__name__) from e

  def run_case(self, case: CaseSpec, context: Optional[Dict[str, Any]] = None) -> CaseResult:
    """Run and grade one case. Subject and grader failures become a Fail."""
    output = ""
    try:
      output = self._invoke(case, context or {})
      outcome = self._grade(case, output)
    except EvalGateError as e:
      return CaseResult(input=case.prompt, output=output, grade=Grade.FAIL, failed_checks=(_error_check_id(e),))

    return CaseResult(
        input=case.prompt,
        output=output,
        grade=outcome.grade,
        failed_checks=tuple(outcome.failed_checks) if outcome.grade is Grade.FAIL else (),
    )

  def _report_case(self, suite: SuiteDefinition, idx: int, result: CaseResult) -> None:
    self._log("case_result", {"suite": suite.name, "index": idx, **result.to_dict()})
    if self.cfg.print_mode == "verbose":
      status = "PASS" if result.passed else "FAIL"
      reason = f" {', '.join(result.failed_checks)}" if result.failed_checks else ""
      print(f"[eval] {suite.name} [{idx+1}/{len(suite.cases)}]: {status}{reason}")

  def execute(self, suite: SuiteDefinition) -> SuiteResult:
    """Run every case of the suite and return results in declaration order."""
    start_time = time.time()
    context = suite.context()
    self._log("suite_start", {"suite": suite.name, "cases": len(suite.cases)})
    if self.cfg.print_mode == "verbose":
      print(f"[eval] Running suite: {suite.name} ({len(suite.cases)} cases)")

    workers = self.cfg.case_workers
    if workers > 1 and len(suite.cases) > 1:
      results_by_idx: Dict[int, CaseResult] = {}
      with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="evalgate-case") as executor:
        futures = {
            executor.submit(self.run_case, case, context): idx
            for idx, case in enumerate(suite.cases)
        }
        for future in as_completed(futures):
          idx = futures[future]
          result = future.result()
          results_by_idx[idx] = result
          self._report_case(suite, idx, result)
      # Preserve declaration order regardless of completion order.
      cases: List[CaseResult] = [results_by_idx[i] for i in range(len(suite.cases))]
    else:
      cases = []
      for idx, case in enumerate(suite.cases):
        result = self.run_case(case, context)
        cases.append(result)
        self._report_case(suite, idx, result)

    result = SuiteResult.from_cases(cases, duration_s=time.time() - start_time)
    self._log("suite_end", {"suite": suite.name, "passed": result.passed, "total": result.total,
                            "duration_s": result.duration_s})
    if self.cfg.print_mode != "quiet":
      print(f"[eval] {suite.name}: {result.passed}/{result.total} passed ({result.duration_s:.1f}s)")
    return result
