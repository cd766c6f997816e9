from __future__ import annotations
import json
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from .eval.checks import JudgeVerdict
from .eval.errors import GraderError, SubjectInvocationError
from .prompts import judge_messages, subject_messages

TOGETHER_BASE_URL = "https://api.together.xyz/v1"

DEFAULT_MODELS = {
  "openai": "gpt-4.1-mini",
  "together": "mistralai/Mistral-7B-Instruct-v0.3",
}


@dataclass
class LLMConfig:
  """Configuration for building a chat model client.

    Attributes:
        provider: Backend ("openai" or "together").
        model: Model identifier (provider default when None).
        temperature: Sampling temperature.
        max_tokens: Cap on completion tokens.
        timeout_s: Per-request timeout handed to the client.
        api_key: Optional API key override (otherwise read from the environment).
        seed: Optional sampling seed.
    """

  provider: str = "openai"
  model: Optional[str] = None
  temperature: float = 0.0
  max_tokens: int = 800
  timeout_s: Optional[float] = 60.0
  api_key: Optional[str] = None
  seed: Optional[int] = None


@dataclass
class ChatCompletionsLLM:
  """Chat Completions client usable both as the subject and as the judge."""

  model: str = DEFAULT_MODELS["openai"]
  base_url: Optional[str] = None
  api_key: Optional[str] = None
  temperature: float = 0.0
  max_tokens: int = 800
  timeout_s: Optional[float] = 60.0
  seed: Optional[int] = None
  _client: Any = field(default=None, init=False, repr=False)
  _client_lock: Any = field(default_factory=threading.Lock, init=False, repr=False)

  @property
  def client(self) -> OpenAI:
    # Built lazily so configs can be constructed without credentials.
    with self._client_lock:
      if self._client is None:
        kwargs: Dict[str, Any] = {"max_retries": 2}
        if self.base_url:
          kwargs["base_url"] = self.base_url
        if self.api_key:
          kwargs["api_key"] = self.api_key
        if self.timeout_s is not None:
          kwargs["timeout"] = self.timeout_s
        self._client = OpenAI(**kwargs)
      return self._client

  def complete(self, messages: List[Dict[str, str]], model: Optional[str] = None, json_mode: bool = False) -> str:
    kwargs: Dict[str, Any] = {
      "model": model or self.model,
      "messages": messages,
      "temperature": self.temperature,
      "max_tokens": self.max_tokens,
    }
    if self.seed is not None:
      kwargs["seed"] = self.seed
    if json_mode:
      kwargs["response_format"] = {"type": "json_object"}
    resp = self.client.chat.completions.create(**kwargs)
    if not resp.choices:
      raise RuntimeError("Empty model response (no choices).")
    return resp.choices[0].message.content or ""

  def invoke(self, prompt: str, context: Dict[str, Any]) -> str:
    """Subject contract: answer one prompt under the suite's system prompt."""
    messages = subject_messages(prompt, context.get("system_prompt", ""))
    try:
      return self.complete(messages, model=context.get("model"))
    except openai.OpenAIError as e:
      raise SubjectInvocationError(f"{type(e).__name__}: {e}") from e

  def judge(self, criteria: str, response: str) -> JudgeVerdict:
    try:
      txt = self.complete(judge_messages(criteria, response), json_mode=True).strip()
    except openai.OpenAIError as e:
      raise GraderError(f"{type(e).__name__}: {e}") from e
    return parse_judge_verdict(txt)


def parse_judge_verdict(txt: str) -> JudgeVerdict:
  """Parse the first JSON object of a judge reply into a JudgeVerdict."""
  txt = (txt or "").strip()
  if not txt:
    raise GraderError("Empty judge response.")
  decoder = json.JSONDecoder()
  try:
    obj, _ = decoder.raw_decode(txt)
  except json.JSONDecodeError:
    snippet = txt[:500].replace("\n", "\\n")
    raise GraderError(f"Could not parse judge output as JSON. Leading text: {snippet!r}")
  if not isinstance(obj, dict) or not isinstance(obj.get("pass"), bool):
    raise GraderError("Judge response must be an object with a boolean 'pass'.")
  return JudgeVerdict(passed=obj["pass"], reasoning=str(obj.get("reasoning", "")))


class LLMFactory:

  @staticmethod
  def build(cfg: LLMConfig) -> ChatCompletionsLLM:
    provider = (cfg.provider or "openai").lower()
    if provider == "openai":
      base_url = None
      api_key = cfg.api_key
    elif provider == "together":
      base_url = TOGETHER_BASE_URL
      api_key = cfg.api_key or os.getenv("TOGETHER_API_KEY")
    else:
      raise ValueError(f"Unknown LLM provider: {cfg.provider!r}")
    return ChatCompletionsLLM(
      model=cfg.model or DEFAULT_MODELS[provider],
      base_url=base_url,
      api_key=api_key,
      temperature=cfg.temperature,
      max_tokens=cfg.max_tokens,
      timeout_s=cfg.timeout_s,
      seed=cfg.seed,
    )
