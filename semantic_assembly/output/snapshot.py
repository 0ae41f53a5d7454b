"""Frame snapshots — the render-facing view of the simulation, exportable as JSON."""

import logging
from collections.abc import Sequence
from pathlib import Path

from semantic_assembly.models import Edge, EdgeFrame, Entity, EntityFrame, FrameSnapshot, Phase

logger = logging.getLogger(__name__)


def _point(v) -> tuple[float, float, float]:
    return (float(v[0]), float(v[1]), float(v[2]))


def build_snapshot(
    phase: Phase,
    status: str,
    entities: Sequence[Entity],
    edges: Sequence[Edge],
) -> FrameSnapshot:
    return FrameSnapshot(
        phase=phase,
        status=status,
        entities=[
            EntityFrame(
                id=e.id,
                position=_point(e.position),
                visible=e.visible,
                scale=e.scale * e.size_variation,
                opacity=e.opacity,
                role=e.role,
                word=e.word,
                weight=e.weight,
            )
            for e in entities
        ],
        edges=[
            EdgeFrame(
                a=edge.a.id,
                b=edge.b.id,
                opacity=edge.opacity,
                scale=edge.scale,
                intensity=edge.intensity,
                length=edge.length,
            )
            for edge in edges
            if edge.formed
        ],
    )


def write_snapshot(path: Path, snapshot: FrameSnapshot) -> Path:
    """Write a snapshot as JSON. Creates parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2))
    logger.info("Wrote frame snapshot (%d entities, %d edges) to %s",
                len(snapshot.entities), len(snapshot.edges), path)
    return path
