from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from opsboard.models import Entity, LayoutMode, Position, Relation
from opsboard.telemetry.audit import AuditLogger


HIERARCHY_ORDER: Tuple[str, ...] = ("service", "api", "database", "component", "user")
LAYER_HEIGHT = 200.0
LAYER_TOP = 50.0
NODE_SPACING = 280.0
CENTER_X = 400.0

CIRCLE_RADIUS = 300.0
CIRCLE_CENTER = (400.0, 350.0)

GRID_SPACING = 280.0
GRID_MARGIN = 50.0

FORCE_PULL = 0.1

Positions = Dict[str, Position]


@dataclass(frozen=True)
class Canvas:
    width: float = 800.0
    height: float = 600.0


def relation_degrees(relations: Iterable[Relation]) -> Dict[str, int]:
    degree: Dict[str, int] = {}
    for r in relations:
        degree[r.source] = degree.get(r.source, 0) + 1
        degree[r.target] = degree.get(r.target, 0) + 1
    return degree


def hierarchical_layout(entities: Sequence[Entity], relations: Sequence[Relation]) -> Positions:
    """
    One horizontal layer per known type, top to bottom in HIERARCHY_ORDER.

    Entities of a type outside the ordering get no position here; the caller decides what to do with them.
    """
    degree = relation_degrees(relations)
    positions: Positions = {}
    for layer, entity_type in enumerate(HIERARCHY_ORDER):
        members = [e for e in entities if e.type == entity_type]
        # Stable: equal degrees keep input order.
        members.sort(key=lambda e: degree.get(e.id, 0), reverse=True)
        y = layer * LAYER_HEIGHT + LAYER_TOP
        start_x = CENTER_X - (len(members) - 1) * NODE_SPACING / 2
        for i, e in enumerate(members):
            positions[e.id] = Position(x=start_x + i * NODE_SPACING, y=y)
    return positions


def circular_layout(entities: Sequence[Entity], relations: Sequence[Relation] = ()) -> Positions:
    n = len(entities)
    cx, cy = CIRCLE_CENTER
    positions: Positions = {}
    for i, e in enumerate(entities):
        angle = 2 * math.pi * i / n
        positions[e.id] = Position(x=cx + CIRCLE_RADIUS * math.cos(angle), y=cy + CIRCLE_RADIUS * math.sin(angle))
    return positions


def grid_columns(count: int) -> int:
    return math.ceil(math.sqrt(count)) if count > 0 else 0


def grid_layout(entities: Sequence[Entity], relations: Sequence[Relation] = ()) -> Positions:
    cols = grid_columns(len(entities))
    positions: Positions = {}
    for i, e in enumerate(entities):
        row, col = divmod(i, cols)
        positions[e.id] = Position(x=col * GRID_SPACING + GRID_MARGIN, y=row * GRID_SPACING + GRID_MARGIN)
    return positions


def force_layout(entities: Sequence[Entity], relations: Sequence[Relation]) -> Positions:
    """
    Single-pass heuristic, not a simulation: each entity moves once by 10% of the distance
    to every relation-connected neighbour, measured on the circular layout. No iteration,
    no repulsion, no convergence.
    """
    base = circular_layout(entities)
    offsets: Dict[str, Tuple[float, float]] = {eid: (0.0, 0.0) for eid in base}
    for r in relations:
        src, dst = base.get(r.source), base.get(r.target)
        if src is None or dst is None:
            continue
        dx, dy = offsets[r.source]
        offsets[r.source] = (dx + (dst.x - src.x) * FORCE_PULL, dy + (dst.y - src.y) * FORCE_PULL)
        dx, dy = offsets[r.target]
        offsets[r.target] = (dx + (src.x - dst.x) * FORCE_PULL, dy + (src.y - dst.y) * FORCE_PULL)
    return {eid: Position(x=p.x + offsets[eid][0], y=p.y + offsets[eid][1]) for eid, p in base.items()}


_ALGORITHMS: Dict[LayoutMode, Callable[[Sequence[Entity], Sequence[Relation]], Positions]] = {
    LayoutMode.hierarchical: hierarchical_layout,
    LayoutMode.circular: circular_layout,
    LayoutMode.grid: grid_layout,
    LayoutMode.force: force_layout,
}


def compute_layout(
    entities: Iterable[Entity],
    relations: Iterable[Relation],
    mode: LayoutMode | str,
    *,
    rng: Optional[random.Random] = None,
    canvas: Canvas = Canvas(),
    audit: Optional[AuditLogger] = None,
    correlation_id: str = "graph",
) -> Positions:
    """
    Total map entity id -> position, one entry per entity.

    Entities the chosen algorithm leaves unplaced (today: hierarchical with a type outside
    HIERARCHY_ORDER) get a random point on the canvas. That placement is nondeterministic
    unless `rng` is seeded, and is reported as `layout.random_fallback`.
    """
    ents: List[Entity] = list(entities)
    rels: List[Relation] = list(relations)
    positions = _ALGORITHMS[LayoutMode(mode)](ents, rels)

    unplaced = [e.id for e in ents if e.id not in positions]
    if unplaced:
        rng = rng or random.Random()
        for eid in unplaced:
            positions[eid] = Position(x=rng.random() * canvas.width, y=rng.random() * canvas.height)
        if audit is not None:
            audit.write(correlation_id, "layout.random_fallback", {"mode": LayoutMode(mode).value, "entity_ids": unplaced})
    return positions
