from __future__ import annotations
import argparse
import os
import sys
import time
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

from evalgate.eval.checks import CheckGrader
from evalgate.eval.errors import EvalGateError, ThresholdUndefinedError
from evalgate.eval.metrics import format_metrics_summary, merge
from evalgate.eval.runner import EvalConfig, PRINT_MODES, SuiteExecutor
from evalgate.eval.session import EvalSession, FanOutConfig, POLICIES
from evalgate.eval.tasks import discover_suites
from evalgate.eval.thresholds import Category, Strictness, ThresholdTier, gate
from evalgate.llm import LLMConfig, LLMFactory
from evalgate.trace import Trace


def expand_paths(paths: List[str]) -> List[Path]:
  """Expand directories into the eval files they contain; keep files as given."""
  out: List[Path] = []
  for p in paths:
    path = Path(p).expanduser().resolve()
    if path.is_dir():
      out.extend(discover_suites(path))
    else:
      out.append(path)
  return out


def display_names(paths: List[Path]) -> Dict[Path, str]:
  """Label each eval file by its path relative to the files' common directory."""
  if len(paths) == 1:
    return {paths[0]: paths[0].name}
  root = Path(os.path.commonpath([str(p.parent) for p in paths]))
  return {p: p.relative_to(root).as_posix() for p in paths}


def _banner(title: str) -> None:
  print("=" * 40)
  print(title)
  print("=" * 40)


def main(argv=None) -> int:
  load_dotenv()

  ap = argparse.ArgumentParser(description="Run eval suites once each and gate the pass rate")
  ap.add_argument("paths", nargs="+", help="Eval files or directories of eval files")
  ap.add_argument("--category", type=str, default=Category.CURRICULUM.value, help="Threshold category (CURRICULUM, DEFENSIVE, QUALITY)")
  ap.add_argument("--strictness", type=str, default=Strictness.STANDARD.value, help="Threshold strictness (STRICT, STANDARD, LENIENT, HIGH)")
  ap.add_argument("--max-workers", type=int, default=4, help="Suites in flight at once")
  ap.add_argument("--case-workers", type=int, default=0, help="Cases in flight per suite (0 = sequential)")
  ap.add_argument("--deadline", type=float, default=None, help="Deadline in seconds for the whole run")
  ap.add_argument("--timeout", type=float, default=120.0, help="Timeout in seconds for each model call")
  ap.add_argument("--policy", choices=POLICIES, default=POLICIES[0])
  ap.add_argument("--trace", type=str, default=None, help="Write JSONL trace events to this file")
  ap.add_argument("--print-mode", choices=PRINT_MODES, default="standard")
  ap.add_argument("--provider", type=str, default=os.getenv("EVALGATE_PROVIDER", "openai"))
  ap.add_argument("--model", type=str, default=os.getenv("EVALGATE_MODEL"))
  ap.add_argument("--judge-model", type=str, default=os.getenv("EVALGATE_JUDGE_MODEL"))
  args = ap.parse_args(argv)

  if not os.getenv("OPENAI_API_KEY") and not os.getenv("CI"):
    print("Warning: Missing environment variables: OPENAI_API_KEY")
    print("Some evals may fail. Export OPENAI_API_KEY in your shell or .env file.")

  suite_paths = expand_paths(args.paths)
  if not suite_paths:
    print("No eval files found")
    return 2

  subject = LLMFactory.build(LLMConfig(provider=args.provider, model=args.model, timeout_s=args.timeout))
  judge = LLMFactory.build(LLMConfig(provider=args.provider, model=args.judge_model or args.model, timeout_s=args.timeout))
  trace = Trace(Path(args.trace)) if args.trace else None

  executor = SuiteExecutor(
      subject=subject,
      grader=CheckGrader(judge=judge),
      cfg=EvalConfig(case_workers=args.case_workers, call_timeout_s=args.timeout, print_mode=args.print_mode),
      trace=trace,
  )
  fanout_cfg = FanOutConfig(
      max_workers=args.max_workers,
      deadline_s=args.deadline,
      policy=args.policy,
      print_mode=args.print_mode,
  )

  _banner("Eval Suite - Starting")
  start = time.time()
  with EvalSession(executor, cfg=fanout_cfg, trace=trace) as session:
    try:
      results = session.run_all_once(suite_paths)
    except EvalGateError as e:
      print(f"[eval] Evals not available: {e}")
      return 2

    labels = display_names(suite_paths)
    named = {labels[p]: results[p] for p in suite_paths}
    print(format_metrics_summary(named, run_time_s=time.time() - start))

    tier = ThresholdTier(args.category, args.strictness)
    aggregate = merge(results.values())
    try:
      verdict = gate(aggregate, tier)
    except ThresholdUndefinedError as e:
      print(f"[eval] {e}")
      return 2
  if trace is not None:
    trace.log("gate", {"tier": str(tier), "threshold": verdict.threshold, "ok": verdict.ok, **aggregate.to_dict()})

  status = "PASSED" if verdict.ok else "FAILED"
  print(f"Gate {tier}: {status} ({verdict.pass_rate:.1f}% vs {verdict.threshold:g}%)")
  if not verdict.ok:
    print(verdict.message())
  _banner("Eval Suite - Complete")
  return 0 if verdict.ok else 1


if __name__ == "__main__":
  sys.exit(main())
