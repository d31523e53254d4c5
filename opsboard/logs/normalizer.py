from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from opsboard.models import LogEntry, LogLevel
from opsboard.telemetry.audit import AuditLogger


# The dashboard's own polling shows up upstream as RequestHandler records; keep it out of the view.
SELF_TRAFFIC_COMPONENT = "RequestHandler"
_SELF_TRAFFIC_PREFIXES = ("/api/logs",)
_SELF_TRAFFIC_PATHS = ("/health", "/stats")
_SELF_HEALTH_PREFIX = "/api/health"

_LEVELS = {lvl.value: lvl for lvl in LogLevel}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def coerce_timestamp(value: Any, *, now: Optional[datetime] = None) -> datetime:
    """
    Upstream sends epoch milliseconds, numeric strings, ISO-8601 strings or nothing.
    Anything unusable becomes `now`; naive values are taken as UTC.
    """
    fallback = now or _utc_now()
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return _from_epoch_ms(value)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return fallback
        try:
            return _from_epoch_ms(float(text))
        except ValueError:
            pass
        except (OverflowError, OSError):
            return fallback
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return fallback
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return fallback


def coerce_level(value: Any) -> LogLevel:
    if isinstance(value, str):
        return _LEVELS.get(value.strip().upper(), LogLevel.INFO)
    return LogLevel.INFO


def parse_metadata(raw: Mapping[str, Any]) -> Any:
    """
    `data` (a serialized JSON string on the wire) wins over `metadata`.
    Unparseable strings are passed through untouched.
    """
    value = raw.get("data")
    if value in (None, ""):
        value = raw.get("metadata")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def is_self_traffic(entry: LogEntry) -> bool:
    if entry.component != SELF_TRAFFIC_COMPONENT:
        return False
    meta = entry.metadata
    if not isinstance(meta, Mapping):
        return False
    path = meta.get("path")
    if not isinstance(path, str) or not path:
        return False
    method = meta.get("method")
    return (
        path.startswith(_SELF_TRAFFIC_PREFIXES)
        or path in _SELF_TRAFFIC_PATHS
        or (path.startswith(_SELF_HEALTH_PREFIX) and method == "GET")
    )


def normalize_log_record(raw: Mapping[str, Any], *, fallback_id: str, now: Optional[datetime] = None) -> LogEntry:
    rid = raw.get("id")
    stack = raw.get("stackTrace")
    if stack is None:
        stack = raw.get("stack_trace")
    component = raw.get("component")
    return LogEntry(
        id=str(rid) if rid not in (None, "") else fallback_id,
        timestamp=coerce_timestamp(raw.get("timestamp"), now=now),
        level=coerce_level(raw.get("level")),
        service=str(raw.get("service") or "Unknown"),
        component=str(component) if component is not None else None,
        message=str(raw.get("message") or ""),
        metadata=parse_metadata(raw),
        stack_trace=str(stack) if stack is not None else None,
    )


def _unique_ids(raws: List[Mapping[str, Any]]) -> List[str]:
    given = {str(r.get("id")) for r in raws if r.get("id") not in (None, "")}
    taken: set[str] = set()
    out: List[str] = []
    for i, r in enumerate(raws):
        rid = r.get("id")
        if rid not in (None, ""):
            out.append(str(rid))
            continue
        candidate = f"log-{i}"
        n = 1
        while candidate in given or candidate in taken:
            candidate = f"log-{i}-{n}"
            n += 1
        taken.add(candidate)
        out.append(candidate)
    return out


def normalize_logs(
    raws: Iterable[Any],
    *,
    now: Optional[datetime] = None,
    audit: Optional[AuditLogger] = None,
    correlation_id: str = "normalizer",
) -> List[LogEntry]:
    """
    Raw upstream batch -> canonical set: one entry per record, self-traffic dropped,
    most recent first.
    """
    now = now or _utc_now()
    rows: List[Mapping[str, Any]] = [r for r in raws if isinstance(r, Mapping)]
    ids = _unique_ids(rows)
    entries: List[LogEntry] = []
    dropped: Dict[str, int] = {}
    for raw, fallback_id in zip(rows, ids):
        entry = normalize_log_record(raw, fallback_id=fallback_id, now=now)
        if is_self_traffic(entry):
            path = str(entry.metadata.get("path"))  # type: ignore[union-attr]
            dropped[path] = dropped.get(path, 0) + 1
            continue
        entries.append(entry)

    if dropped and audit is not None:
        audit.write(correlation_id, "logs.self_traffic_dropped", {"count": sum(dropped.values()), "paths": dropped})

    # sort() is stable: equal timestamps keep upstream order.
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    return entries
