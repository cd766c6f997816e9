from __future__ import annotations
from typing import Dict, List


def judge_system_prompt() -> str:
  return (
    "You are a strict evaluator grading a single response against criteria.\n\n"

    "OUTPUT CONTRACT (STRICT):\n"
    "- Output EXACTLY ONE JSON object. No extra text. No markdown.\n"
    '- Shape: {"pass": true|false, "reasoning": "..."}\n'
    "- 'reasoning' is one or two sentences (<=300 chars).\n\n"

    "GRADING RULES:\n"
    "- pass=true only if the response satisfies EVERY criterion.\n"
    "- Judge the response as written; do not assume missing content.\n"
  )


def judge_user_prompt(criteria: str, response: str) -> str:
  return (
      f"CRITERIA:\n{criteria.strip()}\n\n"
      f"RESPONSE:\n{response}\n"
  )


def judge_messages(criteria: str, response: str) -> List[Dict[str, str]]:
  return [
      {"role": "system", "content": judge_system_prompt()},
      {"role": "user", "content": judge_user_prompt(criteria, response)},
  ]


def subject_messages(prompt: str, system_prompt: str = "") -> List[Dict[str, str]]:
  messages = []
  if system_prompt:
    messages.append({"role": "system", "content": system_prompt})
  messages.append({"role": "user", "content": prompt})
  return messages
