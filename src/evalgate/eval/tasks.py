"""Suite definitions and eval-file loading."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .checks import Check, parse_checks

SUITE_SUFFIXES = (".yml", ".yaml", ".json")


@dataclass(frozen=True)
class CaseSpec:
  """One prompt and the checks its response must satisfy.

    Attributes:
        prompt: Prompt sent to the subject, kept verbatim.
        checks: Checks applied to the subject's response.
        context: Extra per-case context handed to the subject.
    """

  prompt: str
  checks: List[Check] = field(default_factory=list)
  context: Dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_dict(cls, d: Dict[str, Any]) -> "CaseSpec":
    prompt = d.get("prompt")
    if not isinstance(prompt, str):
      raise ValueError("each eval requires a string prompt")
    return cls(
        prompt=prompt,
        checks=parse_checks(d.get("checks")),
        context=dict(d.get("context", {})),
    )


@dataclass
class SuiteDefinition:
  """An ordered collection of cases.

    Attributes:
        name: Name of the suite.
        cases: Cases in declaration order.
        system_prompt: System prompt for the subject (may be empty).
        model: Optional model override for the subject.
        metadata: Remaining metadata from the eval file.
    """

  name: str
  cases: List[CaseSpec]
  system_prompt: str = ""
  model: Optional[str] = None
  metadata: Dict[str, Any] = field(default_factory=dict)

  def context(self) -> Dict[str, Any]:
    ctx: Dict[str, Any] = {"suite": self.name}
    if self.system_prompt:
      ctx["system_prompt"] = self.system_prompt
    if self.model:
      ctx["model"] = self.model
    return ctx

  @classmethod
  def from_dict(cls, d: Dict[str, Any], default_name: str = "unnamed") -> "SuiteDefinition":
    if not isinstance(d, dict):
      raise ValueError("eval file must contain a mapping at the top level")
    meta = dict(d.get("metadata") or {})
    defaults = d.get("defaults") or {}
    cases = []
    for raw in d.get("evals") or []:
      # Defaults apply to each case unless the case overrides them
      cases.append(CaseSpec.from_dict({**defaults, **raw}))
    return cls(
        name=meta.pop("name", None) or default_name,
        system_prompt=meta.pop("system_prompt", "") or "",
        model=meta.pop("model", None),
        metadata=meta,
        cases=cases,
    )


def load_suite(path: Path) -> SuiteDefinition:
  """Load a suite from a YAML or JSON eval file.

    The format:

        metadata:
          name: 5th-grade-math
          model: gpt-4.1-mini
          system_prompt: You are a 5th grade math tutor.
        evals:
          - prompt: How do I add 1/2 + 1/4?
            checks:
              - llm_judge:
                  criteria: Explains common denominators
              - not_match: "x\\s*="
    """
  path = Path(path).expanduser().resolve()
  with path.open("r", encoding="utf-8") as f:
    if path.suffix == ".json":
      data = json.load(f)
    else:
      data = yaml.safe_load(f)
  return SuiteDefinition.from_dict(data, default_name=path.stem)


def discover_suites(root: Path) -> List[Path]:
  """Recursively list eval files under root, sorted."""
  root = Path(root).expanduser().resolve()
  return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix in SUITE_SUFFIXES)
