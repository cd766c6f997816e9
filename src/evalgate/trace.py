from __future__ import annotations
import json
import threading
import time
import uuid
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Iterator, Optional


@dataclass
class TraceEvent:
  ts: float
  kind: str
  payload: Dict[str, Any]
  run_id: str
  meta: Dict[str, Any]


class Trace:
  """Append-only JSONL event log shared by the executor and the session."""

  def __init__(self, path: Path, run_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    self.path = Path(path)
    self.run_id = run_id or uuid.uuid4().hex[:10]
    self.meta = meta or {}
    self._lock = threading.Lock()
    self.path.parent.mkdir(parents=True, exist_ok=True)

  def log(self, kind: str, payload: Dict[str, Any]) -> None:
    evt = TraceEvent(ts=time.time(), kind=kind, payload=payload, run_id=self.run_id, meta=self.meta)
    line = json.dumps(asdict(evt), ensure_ascii=False, default=str) + "\n"
    # Suites and cases log from worker threads
    with self._lock:
      with self.path.open("a", encoding="utf-8") as f:
        f.write(line)

  def iter_all_events(self) -> Iterator[Dict[str, Any]]:
    """Yield raw event dicts from the trace file in order."""
    if not self.path.exists():
      return
    with self.path.open("r", encoding="utf-8") as f:
      for line in f:
        line = line.strip()
        if not line:
          continue
        try:
          yield json.loads(line)
        except json.JSONDecodeError:
          # skip malformed lines
          continue

  def iter_run_events(self, run_id: Optional[str] = None) -> Iterator[Dict[str, Any]]:
    """Yield events that match a run_id (default: this trace's) in chronological order."""
    run_id = run_id or self.run_id
    for evt in self.iter_all_events():
      if evt.get("run_id") == run_id:
        yield evt
