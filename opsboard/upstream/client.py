from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import httpx

from opsboard.logs.normalizer import coerce_timestamp
from opsboard.models import Entity, EntityMetadata, LogStats, Relation


def _data_list(payload: Any) -> List[Dict[str, Any]]:
    """
    Collections arrive wrapped as {"data": [...]}; anything else reads as empty.
    """
    if isinstance(payload, Mapping):
        items = payload.get("data")
        if isinstance(items, list):
            return [x for x in items if isinstance(x, dict)]
    return []


def transform_entity(raw: Mapping[str, Any], *, now: Optional[datetime] = None) -> Entity:
    now = now or datetime.now(timezone.utc)
    props = raw.get("data") or raw.get("properties") or {}
    return Entity(
        id=str(raw.get("id")),
        type=str(raw.get("type") or ""),
        name=str(raw.get("name") or raw.get("id") or ""),
        properties=dict(props) if isinstance(props, Mapping) else {},
        metadata=EntityMetadata(
            created=coerce_timestamp(raw.get("created_at"), now=now),
            updated=coerce_timestamp(raw.get("updated_at"), now=now),
            version=int(raw.get("version") or 1),
        ),
    )


def transform_relation(raw: Mapping[str, Any]) -> Relation:
    props = raw.get("properties") or {}
    return Relation(
        id=str(raw.get("id")),
        source=str(raw.get("from_id") or raw.get("source") or ""),
        target=str(raw.get("to_id") or raw.get("target") or ""),
        type=str(raw.get("type") or ""),
        properties=dict(props) if isinstance(props, Mapping) else {},
    )


@dataclass(frozen=True)
class KnowledgeGraphClient:
    """
    Read-only client for the knowledge-graph/logging backend.

    Non-2xx responses surface as httpx.HTTPStatusError, transport problems as other httpx.HTTPError
    subclasses; callers decide how each degrades. Mockable through `transport`.
    """

    base_url: str = "http://localhost:42003"
    timeout_s: float = 10.0
    transport: httpx.BaseTransport | None = None

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout_s, transport=self.transport)

    def _get_json(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        with self._client() as c:
            r = c.get(path, params=params)
            r.raise_for_status()
            return r.json()

    def health(self) -> Dict[str, Any]:
        data = self._get_json("/health")
        return data if isinstance(data, dict) else {}

    def list_entities(self) -> List[Entity]:
        return [transform_entity(x) for x in _data_list(self._get_json("/entities"))]

    def list_relations(self) -> List[Relation]:
        return [transform_relation(x) for x in _data_list(self._get_json("/relations"))]

    def stream_logs(self, *, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Raw log records, newest batch up to `limit`. Normalization is left to the caller.
        """
        return _data_list(self._get_json("/api/logs/stream", params={"limit": limit}))

    def log_stats(self) -> Optional[LogStats]:
        data = self._get_json("/api/logs/stats")
        if not isinstance(data, dict):
            return None
        return LogStats.model_validate(data)

    def refresh_service(self, service_id: str) -> bool:
        """
        Ask the backend to re-check one service. True when it accepted the request.
        """
        with self._client() as c:
            r = c.post(f"/api/health/{service_id}")
            if r.status_code == 404:
                return False
            r.raise_for_status()
        return True
