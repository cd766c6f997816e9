"""Evaluation core for evalgate.

This module runs eval suites at most once per session, fans them out in
parallel, aggregates their pass/fail counts, and gates the pass rate against
named thresholds.
"""

from .checks import Check, CheckGrader, Grade, GradeOutcome, JudgeVerdict, run_single_check, validate_response
from .errors import (
    CacheAccessError,
    EvalGateError,
    FanOutTimeoutError,
    GraderError,
    SubjectInvocationError,
    SuiteRunError,
    ThresholdUndefinedError,
)
from .tasks import CaseSpec, SuiteDefinition, discover_suites, load_suite
from .runner import CaseResult, EvalConfig, SuiteExecutor, SuiteResult
from .metrics import AggregateResult, format_metrics_summary, merge
from .single_flight import SingleFlight
from .session import EvalSession, FanOutConfig
from .thresholds import Category, GateVerdict, Strictness, ThresholdTable, ThresholdTier, gate, threshold

__all__ = [
    "Check",
    "CheckGrader",
    "Grade",
    "GradeOutcome",
    "JudgeVerdict",
    "run_single_check",
    "validate_response",
    "CacheAccessError",
    "EvalGateError",
    "FanOutTimeoutError",
    "GraderError",
    "SubjectInvocationError",
    "SuiteRunError",
    "ThresholdUndefinedError",
    "CaseSpec",
    "SuiteDefinition",
    "discover_suites",
    "load_suite",
    "CaseResult",
    "EvalConfig",
    "SuiteExecutor",
    "SuiteResult",
    "AggregateResult",
    "format_metrics_summary",
    "merge",
    "SingleFlight",
    "EvalSession",
    "FanOutConfig",
    "Category",
    "GateVerdict",
    "Strictness",
    "ThresholdTable",
    "ThresholdTier",
    "gate",
    "threshold",
]
