"""Summary graph statistics for the assembled particle/edge set."""

from collections.abc import Sequence

import numpy as np

from semantic_assembly.models import Edge, Entity, TopologySummary


def analyze(entities: Sequence[Entity], edges: Sequence[Edge]) -> TopologySummary:
    """Density, average degree, centroid and bounding radius. Reads, never writes."""
    node_count = len(entities)
    edge_count = len(edges)

    if node_count == 0:
        return TopologySummary(
            node_count=0,
            edge_count=edge_count,
            density=0.0,
            avg_degree=0.0,
            centroid=(0.0, 0.0, 0.0),
            bounding_radius=0.0,
        )

    positions = np.array([e.position for e in entities], dtype=float)
    centroid = positions.mean(axis=0)
    radius = float(np.max(np.linalg.norm(positions - centroid, axis=1)))

    pairs = node_count * (node_count - 1) / 2
    return TopologySummary(
        node_count=node_count,
        edge_count=edge_count,
        density=edge_count / pairs if pairs else 0.0,
        avg_degree=2 * edge_count / node_count,
        centroid=(float(centroid[0]), float(centroid[1]), float(centroid[2])),
        bounding_radius=radius,
    )
