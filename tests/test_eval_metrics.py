"""Tests for eval/metrics.py - AggregateResult, merge, format_metrics_summary."""

import itertools

import pytest

import evalgate.eval.metrics as eval_metrics
from evalgate.eval.checks import Grade
from evalgate.eval.errors import ThresholdUndefinedError
from evalgate.eval.runner import CaseResult, SuiteResult


def _make_suite(passed: int, total: int, prefix: str = "case") -> SuiteResult:
    """Helper to build a SuiteResult with the first `passed` cases passing."""
    cases = []
    for i in range(total):
        if i < passed:
            cases.append(CaseResult(input=f"{prefix} {i}", output="ok", grade=Grade.PASS))
        else:
            cases.append(CaseResult(input=f"{prefix} {i}", output="bad", grade=Grade.FAIL, failed_checks=("llm_judge",)))
    return SuiteResult.from_cases(cases)


def test_merge_two_suites():
    """Test {5/5} + {3/5} aggregates to {8/10} at 80%."""
    agg = eval_metrics.merge([_make_suite(5, 5), _make_suite(3, 5)])
    assert (agg.passed, agg.total) == (8, 10)
    assert agg.pass_rate() == 80.0
    assert len(agg.failures) == 2


def test_merge_is_commutative_and_associative():
    """Test every ordering and grouping of the same suites merges equal."""
    a, b, c = _make_suite(1, 2, "a"), _make_suite(4, 4, "b"), _make_suite(0, 3, "c")
    expected = eval_metrics.merge([a, b, c])
    for perm in itertools.permutations([a, b, c]):
        assert eval_metrics.merge(perm) == expected
    grouped = eval_metrics.merge([eval_metrics.merge([a, b]), c])
    assert grouped == expected
    assert expected == eval_metrics.AggregateResult(passed=5, total=9)


def test_merge_empty_is_zero():
    """Test merging nothing yields {0/0} whose pass rate is undefined."""
    agg = eval_metrics.merge([])
    assert agg == eval_metrics.AggregateResult(0, 0)
    with pytest.raises(ThresholdUndefinedError):
        agg.pass_rate()


def test_merge_uses_counts_not_cases():
    """Test aggregation reads suite counts directly."""
    agg = eval_metrics.merge([eval_metrics.AggregateResult(passed=7, total=9)])
    assert (agg.passed, agg.total) == (7, 9)


def test_merge_rejects_unknown_types():
    """Test merge refuses inputs that are not results."""
    with pytest.raises(TypeError):
        eval_metrics.merge([{"passed": 1, "total": 1}])


def test_suite_aggregate_and_pass_rate():
    """Test SuiteResult helpers delegate to aggregation."""
    suite = _make_suite(9, 10)
    assert suite.aggregate() == eval_metrics.AggregateResult(9, 10)
    assert suite.pass_rate() == 90.0
    with pytest.raises(ThresholdUndefinedError):
        SuiteResult.from_cases([]).pass_rate()


def test_aggregate_to_dict():
    """Test AggregateResult serializes counts only."""
    assert eval_metrics.AggregateResult(2, 3).to_dict() == {"passed": 2, "total": 3}


def test_format_metrics_summary():
    """Test the summary lists every suite, the overall rate and duration."""
    summary = eval_metrics.format_metrics_summary(
        {"math.yml": _make_suite(5, 5), "santa.yml": _make_suite(3, 5), "empty.yml": SuiteResult.from_cases([])},
        run_time_s=75.5,
    )
    assert "EVALUATION SUMMARY" in summary
    assert "math.yml: 5/5 (100.0%)" in summary
    assert "santa.yml: 3/5 (60.0%)" in summary
    assert "empty.yml: 0/0 (n/a)" in summary
    assert "Passed:          8/10" in summary
    assert "Pass rate:       80.0%" in summary
    assert "Total duration:  1m 15.5s" in summary


def test_format_metrics_summary_empty():
    """Test the summary of no suites does not divide by zero."""
    summary = eval_metrics.format_metrics_summary({})
    assert "Pass rate:       n/a" in summary
