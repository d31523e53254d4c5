from __future__ import annotations

from typing import Iterable, List, Optional

from opsboard.models import Entity, Relation
from opsboard.telemetry.audit import AuditLogger


def missing_endpoints(relation: Relation, entity_ids: set[str]) -> List[str]:
    missing: List[str] = []
    if relation.source not in entity_ids:
        missing.append("source")
    if relation.target not in entity_ids:
        missing.append("target")
    return missing


def validate_relations(
    entities: Iterable[Entity],
    relations: Iterable[Relation],
    *,
    audit: Optional[AuditLogger] = None,
    correlation_id: str = "graph",
) -> List[Relation]:
    """
    Keep only relations whose source and target both resolve to a known entity.
    Every dropped relation gets one `relation.skipped` diagnostic; nothing is raised.
    """
    entity_ids = {e.id for e in entities}
    kept: List[Relation] = []
    for rel in relations:
        missing = missing_endpoints(rel, entity_ids)
        if not missing:
            kept.append(rel)
            continue
        if audit is not None:
            audit.write(
                correlation_id,
                "relation.skipped",
                {
                    "relation_id": rel.id,
                    "source": rel.source,
                    "target": rel.target,
                    "missing": missing,
                },
            )
    return kept
