from __future__ import annotations

import hashlib
import json
import os
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query


app = FastAPI(title="opsboard Mock Knowledge Graph", version="0.1.0")


def _stable_int(seed: str) -> int:
    h = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(h[:8], 16)


ENTITIES: List[Dict[str, Any]] = [
    {"id": "svc-kg", "type": "service", "name": "knowledge-graph", "data": {"port": 42003, "runtime": "node"}},
    {"id": "svc-dash", "type": "service", "name": "dashboard", "data": {"port": 42001}},
    {"id": "api-entities", "type": "api", "name": "GET /entities", "data": {"method": "GET", "auth": "none"}},
    {"id": "api-logs", "type": "api", "name": "GET /api/logs/stream", "data": {"method": "GET", "paginated": True}},
    {"id": "db-main", "type": "database", "name": "knowledge.db", "data": {"engine": "sqlite", "size_mb": 12}},
    {"id": "cmp-graph", "type": "component", "name": "GraphView", "properties": {"framework": "react"}},
    {"id": "cmp-logs", "type": "component", "name": "LogViewer", "properties": {"framework": "react"}},
    {"id": "user-dev", "type": "user", "name": "developer"},
    # Type outside the hierarchical ordering; lands on the random fallback.
    {"id": "queue-events", "type": "queue", "name": "event-queue", "data": {"broker": "in-memory"}},
]

RELATIONS: List[Dict[str, Any]] = [
    {"id": "rel-1", "from_id": "svc-kg", "to_id": "api-entities", "type": "exposes"},
    {"id": "rel-2", "from_id": "svc-kg", "to_id": "api-logs", "type": "exposes"},
    {"id": "rel-3", "from_id": "api-entities", "to_id": "db-main", "type": "reads"},
    {"id": "rel-4", "from_id": "api-logs", "to_id": "db-main", "type": "reads"},
    {"id": "rel-5", "source": "cmp-graph", "target": "api-entities", "type": "calls"},
    {"id": "rel-6", "source": "cmp-logs", "target": "api-logs", "type": "calls"},
    {"id": "rel-7", "from_id": "svc-dash", "to_id": "cmp-graph", "type": "renders"},
    {"id": "rel-8", "from_id": "user-dev", "to_id": "svc-dash", "type": "uses"},
    {"id": "rel-9", "from_id": "svc-kg", "to_id": "queue-events", "type": "publishes"},
    # Dangling: target was deleted upstream.
    {"id": "rel-10", "from_id": "svc-dash", "to_id": "cmp-removed", "type": "renders"},
]

SERVICES = ["knowledge-graph", "vite-dev-server", "context-kit", "jest-runner", "esbuild", "Session", "dashboard"]
_LEVELS = ["DEBUG"] * 2 + ["INFO"] * 10 + ["warn"] * 3 + ["ERROR"] * 2 + ["FATAL"]
_MESSAGES = [
    "request completed",
    "cache miss for key",
    "connection timeout after 5000ms",
    "rebuilt 14 modules",
    "test suite passed",
    "entity upserted",
    "slow query detected",
]
KNOWN_HEALTH_TARGETS = {"knowledge-graph", "dashboard"}

MOCK_LOG_COUNT = 240


def _records(now_ms: int, *, seed: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for i in range(MOCK_LOG_COUNT):
        n = _stable_int(f"{seed}:{i}")
        service = SERVICES[n % len(SERVICES)]
        level = _LEVELS[(n >> 4) % len(_LEVELS)]
        rec: Dict[str, Any] = {
            "id": f"mock-{i}",
            # Spread over the last ~40 minutes, newest first.
            "timestamp": now_ms - i * 10_000,
            "level": level,
            "service": service,
            "component": "Worker",
            "message": _MESSAGES[(n >> 8) % len(_MESSAGES)],
        }
        if i % 5 == 0:
            rec["data"] = json.dumps({"duration_ms": (n >> 12) % 900, "attempt": 1})
        if i % 11 == 0:
            # The dashboard's own polling as seen by the backend's request logger.
            rec["component"] = "RequestHandler"
            rec["data"] = json.dumps({"path": "/api/logs/stream", "method": "GET"})
        if i % 23 == 0:
            rec["data"] = "{not json"
        if i % 29 == 0:
            rec.pop("id")
        if level in ("ERROR", "FATAL"):
            rec["stackTrace"] = f"Error: {rec['message']}\n    at handler ({service}.js:{n % 300})"
        out.append(rec)
    return out


def _seed() -> str:
    return os.getenv("MOCK_API_SEED", "seed")


def _now_ms() -> int:
    fixed = os.getenv("MOCK_API_NOW_MS")
    return int(fixed) if fixed else int(time.time() * 1000)


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/entities")
def entities() -> Dict[str, Any]:
    return {"data": ENTITIES}


@app.get("/relations")
def relations() -> Dict[str, Any]:
    return {"data": RELATIONS}


@app.get("/api/logs/stream")
def logs_stream(limit: int = Query(100, ge=1, le=1000), service: Optional[str] = None) -> Dict[str, Any]:
    records = _records(_now_ms(), seed=_seed())
    if service:
        records = [r for r in records if r["service"] == service]
    return {"data": records[:limit]}


@app.get("/api/logs/stats")
def logs_stats() -> Dict[str, Any]:
    records = _records(_now_ms(), seed=_seed())
    by_level: Dict[str, int] = {}
    by_service: Dict[str, int] = {}
    for r in records:
        lvl = str(r["level"]).upper()
        by_level[lvl] = by_level.get(lvl, 0) + 1
        by_service[r["service"]] = by_service.get(r["service"], 0) + 1
    return {
        "totalLogs": len(records),
        "errorCount": by_level.get("ERROR", 0) + by_level.get("FATAL", 0),
        "logsByLevel": by_level,
        "logsByService": by_service,
    }


@app.post("/api/health/{service_id}")
def health_check(service_id: str) -> Dict[str, Any]:
    if service_id not in KNOWN_HEALTH_TARGETS:
        raise HTTPException(status_code=404, detail={"error": "unknown_service", "service_id": service_id})
    return {"id": service_id, "status": "healthy", "checked_at": _now_ms()}
