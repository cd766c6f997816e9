"""Aggregation of suite results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Tuple

from .errors import ThresholdUndefinedError
from .runner import CaseResult, SuiteResult


@dataclass(frozen=True)
class AggregateResult:
  """Summed pass/total counts across one or more suites.

    Attributes:
        passed: Sum of passed counts.
        total: Sum of total counts.
        failures: Failing cases of the merged suites, kept for diagnostics only.
    """

  passed: int = 0
  total: int = 0
  failures: Tuple[CaseResult, ...] = field(default=(), compare=False, repr=False)

  def pass_rate(self) -> float:
    """Percentage of passed cases. Raises ThresholdUndefinedError when total is 0."""
    if self.total == 0:
      raise ThresholdUndefinedError("pass rate is undefined for an empty result (0/0 cases)")
    return 100.0 * self.passed / self.total

  def __add__(self, other: "AggregateResult") -> "AggregateResult":
    if not isinstance(other, AggregateResult):
      return NotImplemented
    return AggregateResult(
        passed=self.passed + other.passed,
        total=self.total + other.total,
        failures=self.failures + other.failures,
    )

  def to_dict(self) -> Dict[str, Any]:
    return {"passed": self.passed, "total": self.total}


def _as_aggregate(result: Any) -> AggregateResult:
  if isinstance(result, AggregateResult):
    return result
  if isinstance(result, SuiteResult):
    return AggregateResult(passed=result.passed, total=result.total, failures=result.failures())
  raise TypeError(f"Cannot aggregate {type(result).__name__}")


def merge(results: Iterable[Any]) -> AggregateResult:
  """Sum passed/total across suite (or aggregate) results.

    Counts are summed from each result's counts, never recounted from cases.
    An empty input yields AggregateResult(0, 0).
    """
  agg = AggregateResult()
  for r in results:
    agg = agg + _as_aggregate(r)
  return agg


def format_metrics_summary(results: Mapping[Any, SuiteResult], run_time_s: float = 0.0) -> str:
  """Format per-suite and overall counts as a human-readable summary."""
  lines = [
      "=" * 60,
      "EVALUATION SUMMARY",
      "=" * 60,
  ]
  for suite_id, r in results.items():
    rate = f"{r.pass_rate():.1f}%" if r.total else "n/a"
    lines.append(f"  {suite_id!s}: {r.passed}/{r.total} ({rate})")

  total = merge(results.values())
  lines.append("-" * 40)
  lines.append(f"Suites:          {len(results)}")
  lines.append(f"Passed:          {total.passed}/{total.total}")
  if total.total:
    lines.append(f"Pass rate:       {total.pass_rate():.1f}%")
  else:
    lines.append("Pass rate:       n/a")
  if run_time_s:
    minutes = int(run_time_s // 60)
    seconds = run_time_s % 60
    lines.append(f"Total duration:  {minutes}m {seconds:.1f}s")
  lines.append("=" * 60)
  return "\n".join(lines)
