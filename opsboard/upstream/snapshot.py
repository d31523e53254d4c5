from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import httpx

from opsboard.logs.normalizer import normalize_logs
from opsboard.models import Entity, LogEntry, LogStats, Relation
from opsboard.telemetry.audit import AuditLogger
from opsboard.upstream.client import KnowledgeGraphClient


T = TypeVar("T")

SLICES = ("health", "entities", "relations", "logs", "stats")


@dataclass(frozen=True)
class SliceResult(Generic[T]):
    """
    Outcome of one upstream fetch.

    - ok=True: `value` should be applied (it is the empty default when upstream answered non-2xx)
    - ok=False: transport failure; keep whatever was applied before
    """

    name: str
    ticket: int
    ok: bool
    value: T
    error: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(frozen=True)
class DashboardSnapshot:
    health: SliceResult[Dict[str, Any]]
    entities: SliceResult[List[Entity]]
    relations: SliceResult[List[Relation]]
    logs: SliceResult[List[LogEntry]]
    stats: SliceResult[Optional[LogStats]]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed(self) -> List[str]:
        return [s.name for s in (self.health, self.entities, self.relations, self.logs, self.stats) if not s.ok]


def _empty_default(name: str) -> Any:
    if name == "health":
        return {}
    if name == "stats":
        return None
    return []


def run_slice(
    name: str,
    ticket: int,
    fn: Callable[[], T],
    *,
    audit: Optional[AuditLogger] = None,
    correlation_id: str = "snapshot",
) -> SliceResult[T]:
    try:
        return SliceResult(name=name, ticket=ticket, ok=True, value=fn())
    except httpx.HTTPStatusError as e:
        code = e.response.status_code
        if audit is not None:
            audit.write(correlation_id, "upstream.fetch_failed", {"resource": name, "status_code": code, "degraded": "empty"})
        return SliceResult(name=name, ticket=ticket, ok=True, value=_empty_default(name), error=f"HTTP {code}", status_code=code)
    except (httpx.HTTPError, ValueError) as e:
        # ValueError covers undecodable JSON and payloads that fail model validation.
        err = f"{type(e).__name__}: {e}"
        if audit is not None:
            audit.write(correlation_id, "upstream.fetch_failed", {"resource": name, "error": err, "degraded": "retained"})
        return SliceResult(name=name, ticket=ticket, ok=False, value=_empty_default(name), error=err)


def _fetch_logs(client: KnowledgeGraphClient, limit: int, audit: Optional[AuditLogger], correlation_id: str) -> List[LogEntry]:
    return normalize_logs(client.stream_logs(limit=limit), audit=audit, correlation_id=correlation_id)


def fetch_logs_slice(
    client: KnowledgeGraphClient,
    *,
    ticket: int,
    limit: int,
    audit: Optional[AuditLogger] = None,
    correlation_id: str = "snapshot",
) -> SliceResult[List[LogEntry]]:
    return run_slice(
        "logs",
        ticket,
        lambda: _fetch_logs(client, limit, audit, correlation_id),
        audit=audit,
        correlation_id=correlation_id,
    )


def fetch_snapshot(
    client: KnowledgeGraphClient,
    *,
    tickets: Callable[[], int],
    log_limit: int = 100,
    audit: Optional[AuditLogger] = None,
    correlation_id: str = "snapshot",
) -> DashboardSnapshot:
    """
    Fetch all five slices in parallel. Each slice succeeds or degrades on its own; this never raises
    for upstream trouble.
    """
    calls: Dict[str, Callable[[], Any]] = {
        "health": client.health,
        "entities": client.list_entities,
        "relations": client.list_relations,
        "logs": lambda: _fetch_logs(client, log_limit, audit, correlation_id),
        "stats": client.log_stats,
    }
    # Tickets are taken in issue order, before any request leaves.
    issued = {name: tickets() for name in SLICES}
    with concurrent.futures.ThreadPoolExecutor(max_workers=len(SLICES)) as ex:
        futures = {
            name: ex.submit(run_slice, name, issued[name], calls[name], audit=audit, correlation_id=correlation_id)
            for name in SLICES
        }
        results = {name: fut.result() for name, fut in futures.items()}
    return DashboardSnapshot(**results)
