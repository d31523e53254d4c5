from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from opsboard.models import Entity, Position, Relation


class NodeKind(str, Enum):
    service = "service"
    api = "api"
    database = "database"
    component = "component"
    user = "user"
    # Any entity type the dashboard has no dedicated rendering for.
    other = "other"

    @classmethod
    def for_type(cls, entity_type: str) -> "NodeKind":
        try:
            return cls(entity_type)
        except ValueError:
            return cls.other


@dataclass(frozen=True)
class NodeStyle:
    icon: str
    color: str
    shape: str


_NODE_STYLES: Dict[NodeKind, NodeStyle] = {
    NodeKind.service: NodeStyle(icon="server", color="#3b82f6", shape="rect"),
    NodeKind.api: NodeStyle(icon="globe", color="#10b981", shape="rect"),
    NodeKind.database: NodeStyle(icon="database", color="#8b5cf6", shape="cylinder"),
    NodeKind.component: NodeStyle(icon="box", color="#f59e0b", shape="rect"),
    NodeKind.user: NodeStyle(icon="user", color="#ef4444", shape="circle"),
    NodeKind.other: NodeStyle(icon="circle", color="#6b7280", shape="circle"),
}

_missing = set(NodeKind) - set(_NODE_STYLES)
if _missing:
    raise RuntimeError(f"node styles missing for kinds: {sorted(k.value for k in _missing)}")


def node_style(kind: NodeKind) -> NodeStyle:
    return _NODE_STYLES[kind]


PREVIEW_PROPERTIES = 3


def property_preview(properties: Dict[str, Any], *, limit: int = PREVIEW_PROPERTIES) -> List[Tuple[str, str]]:
    return [(str(k), str(v)) for k, v in list(properties.items())[:limit]]


class GraphNode(BaseModel):
    id: str
    label: str
    kind: NodeKind
    type: str
    position: Position
    preview: List[Tuple[str, str]] = Field(default_factory=list)
    property_count: int = 0

    @classmethod
    def from_entity(cls, entity: Entity, position: Position) -> "GraphNode":
        return cls(
            id=entity.id,
            label=entity_label(entity),
            kind=NodeKind.for_type(entity.type),
            type=entity.type,
            position=position,
            preview=property_preview(entity.properties),
            property_count=len(entity.properties),
        )

    @property
    def style(self) -> NodeStyle:
        return node_style(self.kind)


class GraphEdge(BaseModel):
    id: str
    source: str
    target: str
    label: str
    properties: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_relation(cls, relation: Relation) -> "GraphEdge":
        return cls(
            id=relation.id,
            source=relation.source,
            target=relation.target,
            label=relation.type,
            properties=dict(relation.properties),
        )


def entity_label(entity: Entity) -> str:
    """
    What search matches against: the label the node is drawn with.
    """
    return entity.name or entity.id


def find_entity(entities: List[Entity], entity_id: str) -> Optional[Entity]:
    for e in entities:
        if e.id == entity_id:
            return e
    return None
