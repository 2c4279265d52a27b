from __future__ import annotations

import json
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from platformdirs import user_data_dir

APP_NAME = "pyautopilot"


def _events_dir() -> Path:
    root = Path(user_data_dir(APP_NAME))
    d = root / "events"
    d.mkdir(parents=True, exist_ok=True)
    return d


@dataclass
class Event:
    ts: float
    type: str
    data: dict[str, Any]


@dataclass
class EventStore:
    """Append-only jsonl journal of one run (tool dispatches, skill reports, permission results).

    Tolerant of partial corruption when reading.
    """

    run_id: str
    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @staticmethod
    def open(run_id: str | None = None, directory: Path | None = None) -> "EventStore":
        rid = run_id or uuid.uuid4().hex[:12]
        d = directory or _events_dir()
        d.mkdir(parents=True, exist_ok=True)
        return EventStore(run_id=rid, path=d / f"{rid}.jsonl")

    def append(self, event_type: str, data: dict[str, Any]) -> None:
        ev = Event(ts=time.time(), type=event_type, data=data)
        line = json.dumps(ev.__dict__, ensure_ascii=False, default=str) + "\n"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def iter_events(self) -> Iterable[Event]:
        if not self.path.exists():
            return []
        out: list[Event] = []
        for line in self.path.read_text(encoding="utf-8", errors="replace").splitlines():
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
                out.append(Event(ts=float(obj.get("ts", 0.0)), type=str(obj.get("type")), data=obj.get("data") or {}))
            except (ValueError, TypeError, AttributeError):
                continue
        return out


def list_runs(directory: Path | None = None) -> list[str]:
    d = directory or _events_dir()
    files = sorted(d.glob("*.jsonl"), key=lambda p: p.stat().st_mtime)
    return [p.stem for p in files]
