from __future__ import annotations

from datetime import datetime, timezone

from opsboard.models import LogEntry, LogLevel, LogStats
from opsboard.state.overview import derive_service_health, summarize_overview


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _entry(i: int, level: LogLevel) -> LogEntry:
    return LogEntry(id=f"l{i}", timestamp=NOW, level=level, service="svc")


def test_backend_healthy() -> None:
    cards = derive_service_health({"status": "healthy"}, available=True, api_base_url="http://kg.test", now=NOW)
    kg, dash = cards.services
    assert cards.using_mock_data is False
    assert (kg.id, kg.status, kg.url) == ("knowledge-graph", "healthy", "http://kg.test")
    assert [e.name for e in kg.endpoints] == ["/entities", "/relations", "/api/logs/stats"]
    assert dash.status == "healthy"
    assert kg.last_checked == NOW


def test_backend_reachable_but_not_healthy_is_offline() -> None:
    cards = derive_service_health({"status": "degraded"}, available=True, api_base_url="http://kg.test", now=NOW)
    kg = cards.services[0]
    assert kg.status == "offline"
    assert kg.uptime == 0.0
    assert {e.status for e in kg.endpoints} == {"offline"}
    assert cards.using_mock_data is False


def test_backend_unreachable_uses_fallback_cards() -> None:
    cards = derive_service_health({}, available=False, api_base_url="http://kg.test", now=NOW)
    kg = cards.services[0]
    assert kg.status == "offline"
    assert kg.endpoints == []
    assert cards.using_mock_data is True


def test_summary_prefers_backend_stats() -> None:
    logs = [_entry(0, LogLevel.ERROR), _entry(1, LogLevel.INFO)]
    services = derive_service_health({"status": "healthy"}, available=True, api_base_url="x", now=NOW).services
    s = summarize_overview(logs, services, LogStats(totalLogs=900, errorCount=12), entity_count=4, relation_count=3)
    assert (s.total_logs, s.error_count, s.is_real_stats) == (900, 12, True)
    assert (s.healthy_services, s.total_services) == (2, 2)
    assert (s.entity_count, s.relation_count) == (4, 3)


def test_summary_counts_fetched_logs_without_stats() -> None:
    logs = [_entry(0, LogLevel.ERROR), _entry(1, LogLevel.FATAL), _entry(2, LogLevel.WARN)]
    s = summarize_overview(logs, [], None)
    assert (s.total_logs, s.error_count, s.is_real_stats) == (3, 2, False)
    assert s.total_services == 0
