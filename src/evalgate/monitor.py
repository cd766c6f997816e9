"""Sampled grading of live responses with a rolling pass-rate alert."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from evalgate.eval.checks import CaseGrader, Check, GradeOutcome


@dataclass
class MonitorSample:
    """One graded production response."""
    timestamp: float
    question: str
    outcome: GradeOutcome

    @property
    def valid(self) -> bool:
        return self.outcome.passed


@dataclass
class MonitorStats:
    total: int
    valid: int
    pass_rate: float


@dataclass
class ResponseMonitor:
    """Grades a sample of responses and alerts when quality drops.

    Attributes:
        grader: Grader applied to sampled responses.
        checks: Checks every sampled response must pass.
        sample_rate: Fraction of responses graded (1.0 = all).
        alert_threshold: Rolling pass rate (0-1) below which on_alert fires.
        window: Number of most recent samples the rolling rate covers.
        on_alert: Callback receiving the rolling pass rate.
        rng: Random source used for sampling.
    """
    grader: CaseGrader
    checks: Sequence[Check]
    sample_rate: float = 0.1
    alert_threshold: float = 0.8
    window: int = 10
    on_alert: Optional[Callable[[float], None]] = None
    rng: random.Random = field(default_factory=random.Random)
    samples: List[MonitorSample] = field(default_factory=list)

    def __post_init__(self):
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ValueError(f"sample_rate must be within [0, 1], got {self.sample_rate}")
        if not 0.0 <= self.alert_threshold <= 1.0:
            raise ValueError(f"alert_threshold must be within [0, 1], got {self.alert_threshold}")
        if self.window < 1:
            raise ValueError(f"window must be >= 1, got {self.window}")
        self._lock = threading.Lock()

    def check_response(self, question: str, response: str) -> Dict[str, object]:
        """Grade the response if it is sampled. Grader errors propagate."""
        if self.rng.random() >= self.sample_rate:
            return {"sampled": False}

        outcome = self.grader.grade(response, self.checks)
        sample = MonitorSample(timestamp=time.time(), question=question, outcome=outcome)

        with self._lock:
            self.samples.append(sample)
            recent = self.samples[-self.window:]
            full_window = len(recent) >= self.window
            rate = sum(1 for s in recent if s.valid) / len(recent)

        if full_window and rate < self.alert_threshold:
            self._alert(rate)
        return {"sampled": True, "outcome": outcome}

    def _alert(self, pass_rate: float) -> None:
        if self.on_alert is not None:
            self.on_alert(pass_rate)
        else:
            print(f"[monitor] ALERT: pass rate dropped to {pass_rate * 100:.1f}%")

    def stats(self) -> Optional[MonitorStats]:
        with self._lock:
            if not self.samples:
                return None
            valid = sum(1 for s in self.samples if s.valid)
            return MonitorStats(total=len(self.samples), valid=valid, pass_rate=valid / len(self.samples))
