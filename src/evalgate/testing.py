"""Assertion helpers for test modules that gate on eval results."""

from __future__ import annotations

from typing import Union

from evalgate.eval.metrics import AggregateResult
from evalgate.eval.runner import SuiteResult
from evalgate.eval.thresholds import GateVerdict, ThresholdTable, ThresholdTier, gate


def assert_passes_threshold(
    result: Union[SuiteResult, AggregateResult],
    tier: ThresholdTier,
    table: ThresholdTable = None,
) -> GateVerdict:
  """Assert that result meets the tier; the failure message lists failing cases."""
  verdict = gate(result, tier, table)
  if not verdict.ok:
    raise AssertionError(verdict.message())
  return verdict
