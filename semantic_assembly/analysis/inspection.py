"""Hover inspection — ray picking against entity positions."""

from collections.abc import Sequence

import numpy as np

from semantic_assembly.models import Entity, InspectionInfo, Role, classify_weight


def pick_entity(
    entities: Sequence[Entity],
    origin: Sequence[float],
    direction: Sequence[float],
    radius: float,
) -> Entity | None:
    """Nearest visible entity in front of the ray within ``radius`` of it."""
    d = np.asarray(direction, dtype=float)
    norm = np.linalg.norm(d)
    if norm == 0:
        return None
    d = d / norm
    o = np.asarray(origin, dtype=float)

    best: Entity | None = None
    best_along = np.inf
    for entity in entities:
        if not entity.visible:
            continue
        rel = entity.position - o
        along = float(rel @ d)
        if along < 0:
            continue
        miss = float(np.linalg.norm(rel - along * d))
        if miss <= radius and along < best_along:
            best, best_along = entity, along
    return best


def inspect(entity: Entity) -> InspectionInfo:
    parent = entity.parent if entity.role == Role.SATELLITE else None
    return InspectionInfo(
        entity_id=entity.id,
        word=entity.word,
        role=entity.role,
        weight=entity.weight,
        weight_class=classify_weight(entity.weight),
        parent_word=parent.word if parent is not None else None,
        distance_from_parent=entity.distance_from_parent if parent is not None else None,
    )
