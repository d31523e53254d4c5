from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from opsboard.models import LogEntry, ServiceCategory, ServiceInfo


# Ordered: first matching rule wins, so "webpack" lands in dev-server, never build-tool.
_CATEGORY_RULES: Tuple[Tuple[ServiceCategory, Tuple[str, ...]], ...] = (
    (ServiceCategory.terminal, ("terminal", "bash", "shell")),
    (ServiceCategory.dev_server, ("dev", "server", "vite", "webpack")),
    (ServiceCategory.api_service, ("api", "service", "context-kit")),
    (ServiceCategory.build_tool, ("build", "webpack", "rollup", "esbuild")),
    (ServiceCategory.test_runner, ("test", "jest", "vitest", "cypress")),
)

_EXACT_DISPLAY_NAMES: Dict[str, str] = {
    "Session": "Terminal Session",
    "unknown": "Unknown Service",
}

_CONTAINS_DISPLAY_NAMES: Tuple[Tuple[str, str], ...] = (
    ("context-kit", "Context Kit API"),
    ("dashboard", "Dashboard Server"),
    ("knowledge-graph", "Knowledge Graph"),
)

_NAME_SPLIT_RE = re.compile(r"[-_\s]+")

DEFAULT_ACTIVE_WINDOW = timedelta(minutes=10)


def categorize_service(service_name: str) -> ServiceCategory:
    name = (service_name or "").lower()
    for category, keywords in _CATEGORY_RULES:
        if any(k in name for k in keywords):
            return category
    return ServiceCategory.unknown


def display_name_for(service_name: str) -> str:
    """
    Human-friendly name for a technical service id ("vite-dev-server" -> "Vite Dev Server").
    """
    if service_name in _EXACT_DISPLAY_NAMES:
        return _EXACT_DISPLAY_NAMES[service_name]
    for needle, display in _CONTAINS_DISPLAY_NAMES:
        if needle in service_name:
            return display
    words = [w for w in _NAME_SPLIT_RE.split(service_name) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words)


def aggregate_services(
    logs: Iterable[LogEntry],
    *,
    now: Optional[datetime] = None,
    active_window: timedelta = DEFAULT_ACTIVE_WINDOW,
) -> List[ServiceInfo]:
    """
    One ServiceInfo per distinct service, in order of first appearance in `logs`.
    """
    now = now or datetime.now(timezone.utc)
    active_after = now - active_window

    counts: Dict[str, int] = {}
    last_seen: Dict[str, datetime] = {}
    active: Dict[str, bool] = {}
    for log in logs:
        name = log.service
        counts[name] = counts.get(name, 0) + 1
        prev = last_seen.get(name)
        if prev is None or log.timestamp > prev:
            last_seen[name] = log.timestamp
        if log.timestamp > active_after:
            active[name] = True

    return [
        ServiceInfo(
            service_name=name,
            display_name=display_name_for(name),
            category=categorize_service(name),
            log_count=count,
            is_active=active.get(name, False),
            last_activity=last_seen[name],
        )
        for name, count in counts.items()
    ]
