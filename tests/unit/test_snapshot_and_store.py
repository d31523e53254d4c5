from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

import httpx

from opsboard.logs.feed import LogFeed
from opsboard.models import Entity, LogEntry
from opsboard.state.store import DashboardStore, RequestSequencer
from opsboard.telemetry.audit import AuditLogger, tail_jsonl
from opsboard.upstream.client import KnowledgeGraphClient
from opsboard.upstream.snapshot import SliceResult, fetch_snapshot


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


DOWN = "connect-error"


def _client(routes: Dict[str, Any]) -> KnowledgeGraphClient:
    def handler(request: httpx.Request) -> httpx.Response:
        out = routes.get(request.url.path)
        if out == DOWN:
            raise httpx.ConnectError("refused", request=request)
        if out is None:
            return httpx.Response(404)
        status, body = out
        return httpx.Response(status, json=body)

    return KnowledgeGraphClient(base_url="http://kg.test", transport=httpx.MockTransport(handler))


HEALTHY = {
    "/health": (200, {"status": "healthy"}),
    "/entities": (200, {"data": [{"id": "e1", "type": "service", "name": "kg"}]}),
    "/relations": (200, {"data": []}),
    "/api/logs/stream": (200, {"data": [{"id": "l1", "message": "hi", "timestamp": 1_717_243_200_000}]}),
    "/api/logs/stats": (200, {"totalLogs": 1, "errorCount": 0}),
}


def test_fetch_snapshot_all_slices_ok() -> None:
    seq = RequestSequencer()
    snap = fetch_snapshot(_client(HEALTHY), tickets=seq.next)
    assert snap.failed == []
    assert [e.id for e in snap.entities.value] == ["e1"]
    assert [e.id for e in snap.logs.value] == ["l1"]
    assert snap.stats.value is not None and snap.stats.value.total_logs == 1
    tickets = [snap.health.ticket, snap.entities.ticket, snap.relations.ticket, snap.logs.ticket, snap.stats.ticket]
    assert len(set(tickets)) == 5


def test_one_slice_failing_degrades_only_that_slice(tmp_path) -> None:
    audit = AuditLogger(str(tmp_path / "audit.jsonl"))
    routes = dict(HEALTHY)
    routes["/relations"] = (503, {"error": "down"})
    routes["/api/logs/stats"] = DOWN
    snap = fetch_snapshot(_client(routes), tickets=RequestSequencer().next, audit=audit)

    # Non-2xx: applied as the empty default.
    assert snap.relations.ok is True and snap.relations.value == [] and snap.relations.status_code == 503
    # Transport error: marked failed.
    assert snap.stats.ok is False and snap.stats.error and "ConnectError" in snap.stats.error
    assert snap.failed == ["stats"]
    assert [e.id for e in snap.entities.value] == ["e1"]

    failed = [r for r in tail_jsonl(audit.path) if r.event_type == "upstream.fetch_failed"]
    assert {r.payload["resource"] for r in failed} == {"relations", "stats"}


def _store() -> DashboardStore:
    return DashboardStore(feed=LogFeed())


def test_store_retains_previous_value_on_transport_failure() -> None:
    store = _store()
    seq = store.sequencer
    store.apply_snapshot(fetch_snapshot(_client(HEALTHY), tickets=seq.next))
    assert store.health_available is True
    assert store.stats is not None

    down = {path: DOWN for path in HEALTHY}
    snap = fetch_snapshot(_client(down), tickets=seq.next)
    changed = store.apply_snapshot(snap)
    assert changed == []
    assert [e.id for e in store.entities] == ["e1"]
    assert [e.id for e in store.logs] == ["l1"]
    assert store.stats is not None
    assert store.health_available is False
    assert set(store.last_errors) == {"health", "entities", "relations", "logs", "stats"}


def test_store_discards_stale_responses(tmp_path) -> None:
    audit = AuditLogger(str(tmp_path / "audit.jsonl"))
    store = DashboardStore(feed=LogFeed(audit=audit), audit=audit)
    newer = SliceResult(name="entities", ticket=10, ok=True, value=[Entity(id="new", type="api", name="new")])
    older = SliceResult(name="entities", ticket=4, ok=True, value=[Entity(id="old", type="api", name="old")])
    assert store._accept(newer) is True
    store.entities = newer.value
    assert store._accept(older) is False
    assert [e.id for e in store.entities] == ["new"]

    new_logs = SliceResult(name="logs", ticket=9, ok=True, value=[LogEntry(id="n", timestamp=NOW, service="s")])
    old_logs = SliceResult(name="logs", ticket=8, ok=True, value=[LogEntry(id="o", timestamp=NOW, service="s")])
    assert store.apply_logs(new_logs) is True
    assert store.apply_logs(old_logs) is False
    assert [e.id for e in store.logs] == ["n"]

    stale = [r for r in tail_jsonl(audit.path) if r.event_type == "snapshot.stale_discarded"]
    assert {r.payload["slice"] for r in stale} == {"entities", "logs"}


def test_sequencer_is_strictly_increasing() -> None:
    seq = RequestSequencer()
    got = [seq.next() for _ in range(5)]
    assert got == sorted(got) and len(set(got)) == 5


def test_log_errors_are_tracked_and_cleared() -> None:
    store = _store()
    failed = SliceResult(name="logs", ticket=1, ok=False, value=[], error="ConnectError: refused")
    assert store.apply_logs(failed) is False
    snapshot = store.errors()
    assert snapshot == {"logs": "ConnectError: refused"}

    ok = SliceResult(name="logs", ticket=2, ok=True, value=[LogEntry(id="a", timestamp=NOW, service="s")])
    assert store.apply_logs(ok) is True
    assert store.errors() == {}
    # errors() hands out a copy.
    assert snapshot == {"logs": "ConnectError: refused"}
