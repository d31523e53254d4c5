from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
    LogLevel.FATAL: 4,
}


class LayoutMode(str, Enum):
    hierarchical = "hierarchical"
    circular = "circular"
    grid = "grid"
    force = "force"


class ServiceCategory(str, Enum):
    terminal = "terminal"
    dev_server = "dev-server"
    api_service = "api-service"
    build_tool = "build-tool"
    test_runner = "test-runner"
    unknown = "unknown"


class EntityMetadata(BaseModel):
    created: datetime = Field(default_factory=_utc_now)
    updated: datetime = Field(default_factory=_utc_now)
    version: int = 1


class Entity(BaseModel):
    """
    A typed node of the knowledge graph. Snapshots are replaced wholesale on every fetch cycle.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    name: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    metadata: EntityMetadata = Field(default_factory=EntityMetadata)


class Relation(BaseModel):
    """
    Directed, typed edge. Renderable only when both endpoints resolve in the current entity set.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str
    type: str
    properties: Dict[str, Any] = Field(default_factory=dict)


class LogEntry(BaseModel):
    """
    Canonical log record produced by the normalizer. Never mutated after creation.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    level: LogLevel = LogLevel.INFO
    service: str
    component: Optional[str] = None
    message: str = ""
    # Structured when upstream sent parseable JSON, otherwise the raw value as received.
    metadata: Optional[Any] = None
    stack_trace: Optional[str] = None


class ServiceInfo(BaseModel):
    """
    Per-service aggregation over the canonical log set. Derived on every change, never stored.
    """

    service_name: str
    display_name: str
    category: ServiceCategory
    log_count: int
    is_active: bool
    last_activity: datetime


class Position(BaseModel):
    x: float
    y: float


class LogStats(BaseModel):
    """
    Aggregate log statistics as reported by the upstream backend.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    total_logs: int = Field(default=0, alias="totalLogs")
    error_count: int = Field(default=0, alias="errorCount")
    logs_by_level: Dict[str, int] = Field(default_factory=dict, alias="logsByLevel")
    logs_by_service: Dict[str, int] = Field(default_factory=dict, alias="logsByService")


HealthStatus = Literal["healthy", "warning", "error", "unknown", "offline"]


class EndpointHealth(BaseModel):
    name: str
    status: HealthStatus
    response_time_ms: float = 0.0


class ServiceHealth(BaseModel):
    id: str
    name: str
    status: HealthStatus
    url: Optional[str] = None
    uptime: float = 0.0
    response_time_ms: float = 0.0
    last_checked: datetime = Field(default_factory=_utc_now)
    endpoints: List[EndpointHealth] = Field(default_factory=list)
