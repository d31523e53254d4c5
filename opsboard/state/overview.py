from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from opsboard.models import EndpointHealth, LogEntry, LogLevel, LogStats, ServiceHealth


DASHBOARD_URL = "http://localhost:42001"

_KG_ENDPOINTS = ("/entities", "/relations", "/api/logs/stats")


class HealthCards(BaseModel):
    services: List[ServiceHealth]
    using_mock_data: bool


def derive_service_health(
    health: Dict[str, Any],
    *,
    available: bool,
    api_base_url: str,
    dashboard_url: str = DASHBOARD_URL,
    now: Optional[datetime] = None,
) -> HealthCards:
    """
    Status cards for the knowledge-graph backend and the dashboard itself.
    The backend counts as healthy only when it answered with status "healthy".
    """
    now = now or datetime.now(timezone.utc)
    kg_status = "healthy" if available and health.get("status") == "healthy" else "offline"
    healthy = kg_status == "healthy"
    kg = ServiceHealth(
        id="knowledge-graph",
        name="Knowledge Graph",
        status=kg_status,
        url=api_base_url,
        uptime=99.9 if healthy else 0.0,
        response_time_ms=45.0 if healthy else 0.0,
        last_checked=now,
        endpoints=[EndpointHealth(name=p, status=kg_status) for p in _KG_ENDPOINTS] if available else [],
    )
    dashboard = ServiceHealth(
        id="dashboard",
        name="Dashboard",
        status="healthy",
        url=dashboard_url,
        uptime=99.8,
        response_time_ms=28.0,
        last_checked=now,
        endpoints=[EndpointHealth(name="/", status="healthy"), EndpointHealth(name="/logs", status="healthy")],
    )
    return HealthCards(services=[kg, dashboard], using_mock_data=not available)


class OverviewStats(BaseModel):
    total_logs: int
    error_count: int
    healthy_services: int
    total_services: int
    entity_count: int
    relation_count: int
    is_real_stats: bool


def summarize_overview(
    logs: Iterable[LogEntry],
    services: Iterable[ServiceHealth],
    stats: Optional[LogStats],
    *,
    entity_count: int = 0,
    relation_count: int = 0,
) -> OverviewStats:
    """
    Backend totals win when the stats endpoint answered; otherwise count what was fetched.
    """
    rows = list(logs)
    cards = list(services)
    if stats is not None:
        total, errors = stats.total_logs, stats.error_count
    else:
        total = len(rows)
        errors = sum(1 for e in rows if e.level in (LogLevel.ERROR, LogLevel.FATAL))
    return OverviewStats(
        total_logs=total,
        error_count=errors,
        healthy_services=sum(1 for s in cards if s.status == "healthy"),
        total_services=len(cards),
        entity_count=entity_count,
        relation_count=relation_count,
        is_real_stats=stats is not None,
    )
