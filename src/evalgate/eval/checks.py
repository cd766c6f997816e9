"""Per-case checks and the default CaseGrader."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from .errors import EvalGateError, GraderError


class Grade(str, Enum):
  PASS = "pass"
  FAIL = "fail"


CHECK_KINDS = ("match", "not_match", "min_tokens", "max_tokens", "llm_judge")


@dataclass(frozen=True)
class Check:
  """One check declared on a case.

    Attributes:
        kind: One of CHECK_KINDS.
        arg: Regex pattern, token bound, or judge criteria depending on kind.
        name: Optional explicit identifier reported when the check fails.
    """

  kind: str
  arg: Any = None
  name: Optional[str] = None

  @property
  def check_id(self) -> str:
    if self.name:
      return self.name
    if self.kind == "llm_judge":
      return "llm_judge"
    return f"{self.kind}:{self.arg}"

  @classmethod
  def from_dict(cls, d: Dict[str, Any]) -> "Check":
    """Parse `{kind: arg}`, e.g. `{"not_match": "x\\s*="}` or
    `{"llm_judge": {"criteria": "..."}}`. An optional `name` key may sit
    alongside the kind."""
    if not isinstance(d, dict):
      raise ValueError(f"Check must be a mapping, got {type(d).__name__}")
    d = dict(d)
    name = d.pop("name", None)
    if len(d) != 1:
      raise ValueError(f"Check must have exactly one kind, got {sorted(d)}")
    kind, arg = next(iter(d.items()))
    if kind not in CHECK_KINDS:
      raise ValueError(f"Unknown check kind: {kind!r}")
    if kind == "llm_judge" and isinstance(arg, dict):
      arg = arg.get("criteria", "")
    if kind in ("min_tokens", "max_tokens"):
      arg = int(arg)
    return cls(kind=kind, arg=arg, name=name)


def parse_checks(raw: Any) -> List[Check]:
  """Accept either a list of single-kind mappings or one mapping of kinds."""
  if raw is None:
    return []
  if isinstance(raw, dict):
    return [Check.from_dict({k: v}) for k, v in raw.items()]
  return [Check.from_dict(c) for c in raw]


@dataclass(frozen=True)
class GradeOutcome:
  grade: Grade
  failed_checks: Tuple[str, ...] = ()

  @property
  def passed(self) -> bool:
    return self.grade is Grade.PASS


@dataclass(frozen=True)
class JudgeVerdict:
  passed: bool
  reasoning: str = ""


class Judge(Protocol):

  def judge(self, criteria: str, response: str) -> JudgeVerdict:
    ...


class CaseGrader(Protocol):

  def grade(self, response: str, checks: Sequence[Check]) -> GradeOutcome:
    ...


def count_tokens(text: str) -> int:
  return len(text.split())


def _search(pattern: str, response: str) -> bool:
  try:
    return re.search(pattern, response, flags=re.IGNORECASE) is not None
  except re.error as e:
    raise GraderError(f"Invalid pattern {pattern!r}: {e}") from e


def run_single_check(check: Check, response: str, judge: Optional[Judge] = None) -> bool:
  """Evaluate one check against a response. True means the check passed.

    Raises GraderError when the check cannot be executed at all.
    """
  if check.kind == "match":
    return _search(str(check.arg), response)
  if check.kind == "not_match":
    return not _search(str(check.arg), response)
  if check.kind == "min_tokens":
    return count_tokens(response) >= check.arg
  if check.kind == "max_tokens":
    return count_tokens(response) <= check.arg
  if check.kind == "llm_judge":
    if judge is None:
      raise GraderError("llm_judge check requires a judge")
    try:
      verdict = judge.judge(str(check.arg), response)
    except EvalGateError:
      raise
    except Exception as e:
      raise GraderError(f"Judge call failed: {e}") from e
    return bool(verdict.passed)
  raise GraderError(f"Unknown check kind: {check.kind!r}")


@dataclass
class CheckGrader:
  """Grades a response by running every check; all must pass.

    Failed check identifiers are reported in declaration order.
    """

  judge: Optional[Judge] = None
  stop_on_first_failure: bool = False

  def grade(self, response: str, checks: Sequence[Check]) -> GradeOutcome:
    failed: List[str] = []
    for check in checks:
      if not run_single_check(check, response, self.judge):
        failed.append(check.check_id)
        if self.stop_on_first_failure:
          break
    if failed:
      return GradeOutcome(grade=Grade.FAIL, failed_checks=tuple(failed))
    return GradeOutcome(grade=Grade.PASS)


def validate_response(response: str, checks: Sequence[Check], grader: CaseGrader) -> GradeOutcome:
  """Grade a single ad hoc response outside of any suite."""
  return grader.grade(response, checks)
