from __future__ import annotations

import json
import os
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AuditRecord:
    ts: str
    correlation_id: str
    actor: str
    event_type: str
    payload: Dict[str, Any]


class AuditLogger:
    """
    Append-only JSONL diagnostics channel.

    Everything operational (skipped relations, failed fetches, poller state changes) lands here
    rather than in the rendered view.
    """

    def __init__(self, path: str):
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        # Pollers write from their own threads; keep lines whole.
        self._lock = threading.Lock()

    def new_correlation_id(self) -> str:
        return uuid.uuid4().hex

    def write(
        self,
        correlation_id: str,
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "opsboard",
        timestamp: Optional[str] = None,
    ) -> None:
        record = {
            "ts": timestamp or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "correlation_id": correlation_id,
            "actor": actor,
            "event_type": event_type,
            "payload": payload,
        }
        line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)


def tail_jsonl(path: str, *, max_lines: int = 200) -> List[AuditRecord]:
    """
    Last `max_lines` well-formed records; blank and undecodable lines are skipped.
    """
    if max_lines <= 0 or not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        lines = deque(f, maxlen=max_lines)
    out: List[AuditRecord] = []
    for ln in lines:
        try:
            obj = json.loads(ln)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            out.append(
                AuditRecord(
                    ts=str(obj.get("ts", "")),
                    correlation_id=str(obj.get("correlation_id", "")),
                    actor=str(obj.get("actor", "")),
                    event_type=str(obj.get("event_type", "")),
                    payload=obj.get("payload") or {},
                )
            )
    return out
