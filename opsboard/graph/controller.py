from __future__ import annotations

import random
import threading
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from opsboard.graph.layout import Canvas, Positions, compute_layout
from opsboard.graph.nodes import GraphEdge, GraphNode, entity_label
from opsboard.graph.validator import validate_relations
from opsboard.models import Entity, LayoutMode, Relation
from opsboard.telemetry.audit import AuditLogger


class Overlay(str, Enum):
    none = "none"
    layout_menu = "layout_menu"
    type_menu = "type_menu"


class GraphView(BaseModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    entity_types: List[str] = Field(default_factory=list)
    total_entities: int = 0
    total_relations: int = 0
    skipped_relations: int = 0
    search: str = ""
    selected_types: List[str] = Field(default_factory=list)
    layout_mode: LayoutMode = LayoutMode.hierarchical
    is_fullscreen: bool = False
    overlay: Overlay = Overlay.none


class GraphController:
    """
    UI state of the knowledge-graph panel: search text, type filter, layout mode, fullscreen and
    the single open overlay (dropdown).

    Positions are computed over the full entity set when data or layout mode changes, so filtering
    only hides nodes and never moves the remaining ones. Fullscreen renders the same view.
    """

    def __init__(
        self,
        *,
        layout_mode: LayoutMode = LayoutMode.hierarchical,
        canvas: Canvas = Canvas(),
        rng: Optional[random.Random] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._canvas = canvas
        self._rng = rng
        self._audit = audit
        self._entities: List[Entity] = []
        self._relations: List[Relation] = []
        self._valid_relations: List[Relation] = []
        self._positions: Positions = {}

        self.search = ""
        self.selected_types: set[str] = set()
        self.layout_mode = LayoutMode(layout_mode)
        self.is_fullscreen = False
        self.overlay = Overlay.none

    # --- data ---

    def set_data(self, entities: Iterable[Entity], relations: Iterable[Relation]) -> None:
        with self._lock:
            self._entities = list(entities)
            self._relations = list(relations)
            self._valid_relations = validate_relations(self._entities, self._relations, audit=self._audit)
            self._relayout()

    @property
    def entities(self) -> List[Entity]:
        return list(self._entities)

    @property
    def relations(self) -> List[Relation]:
        return list(self._valid_relations)

    def _relayout(self) -> None:
        self._positions = compute_layout(
            self._entities,
            self._relations,
            self.layout_mode,
            rng=self._rng,
            canvas=self._canvas,
            audit=self._audit,
        )

    # --- transitions ---

    def set_search(self, text: str) -> None:
        self.search = text or ""

    def toggle_type(self, entity_type: str) -> None:
        # The type menu stays open so several types can be picked in a row.
        with self._lock:
            if entity_type in self.selected_types:
                self.selected_types.discard(entity_type)
            else:
                self.selected_types.add(entity_type)

    def clear_types(self) -> None:
        with self._lock:
            self.selected_types.clear()
            self.overlay = Overlay.none

    def choose_layout(self, mode: LayoutMode | str) -> None:
        with self._lock:
            mode = LayoutMode(mode)
            self.overlay = Overlay.none
            if mode != self.layout_mode:
                self.layout_mode = mode
                self._relayout()

    def toggle_overlay(self, overlay: Overlay | str) -> None:
        """
        Opening one overlay closes any other; toggling the open one closes it.
        """
        overlay = Overlay(overlay)
        with self._lock:
            self.overlay = Overlay.none if self.overlay == overlay else overlay

    def dismiss_overlay(self) -> None:
        # Outside click, for whichever overlay is open.
        self.overlay = Overlay.none

    def enter_fullscreen(self) -> None:
        self.is_fullscreen = True

    def exit_fullscreen(self) -> None:
        self.is_fullscreen = False

    def escape(self) -> None:
        with self._lock:
            self.overlay = Overlay.none
            self.is_fullscreen = False

    # --- derived view ---

    def entity_types(self) -> List[str]:
        seen: dict[str, None] = {}
        for e in self._entities:
            seen.setdefault(e.type, None)
        return list(seen)

    def is_visible(self, entity: Entity) -> bool:
        if self.search and self.search.lower() not in entity_label(entity).lower():
            return False
        if self.selected_types and entity.type not in self.selected_types:
            return False
        return True

    def view(self) -> GraphView:
        with self._lock:
            nodes = [GraphNode.from_entity(e, self._positions[e.id]) for e in self._entities if self.is_visible(e)]
            visible_ids = {n.id for n in nodes}
            edges = [
                GraphEdge.from_relation(r)
                for r in self._valid_relations
                if r.source in visible_ids and r.target in visible_ids
            ]
            return GraphView(
                nodes=nodes,
                edges=edges,
                entity_types=self.entity_types(),
                total_entities=len(self._entities),
                total_relations=len(self._relations),
                skipped_relations=len(self._relations) - len(self._valid_relations),
                search=self.search,
                selected_types=sorted(self.selected_types),
                layout_mode=self.layout_mode,
                is_fullscreen=self.is_fullscreen,
                overlay=self.overlay,
            )
