"""Edge candidates from target positions, and their incremental formation."""

import logging
from collections.abc import Sequence

import numpy as np

from semantic_assembly.assembly.context import SimulationContext
from semantic_assembly.config import ConnectivityConfig
from semantic_assembly.models import Edge, Entity

logger = logging.getLogger(__name__)


class FormationStats:
    """Summary of one formation tick."""

    def __init__(self) -> None:
        self.formed: int = 0
        self.skipped: int = 0
        self.remaining: int = 0

    def __repr__(self) -> str:
        return (
            f"FormationStats({self.formed} formed, {self.skipped} skipped, "
            f"{self.remaining} remaining)"
        )


def ease_out_cubic(p: float) -> float:
    return 1 - (1 - p) ** 3


class ConnectivityBuilder:
    """Derives a sparse edge set from entity positions and grows it in over time."""

    def __init__(self, config: ConnectivityConfig | None = None) -> None:
        self.config = config or ConnectivityConfig()

    def compute_candidates(
        self,
        entities: Sequence[Entity],
        threshold: float | None = None,
    ) -> list[Edge]:
        """All unordered pairs whose target distance is below ``threshold``. O(N²)."""
        if threshold is None:
            threshold = self.config.threshold
        placed = [e for e in entities if e.target_position is not None]
        if len(placed) < 2:
            return []

        targets = np.array([e.target_position for e in placed])
        dist = np.linalg.norm(targets[None, :, :] - targets[:, None, :], axis=2)
        rows, cols = np.triu_indices(len(placed), k=1)
        close = dist[rows, cols] < threshold

        candidates = [
            Edge(a=placed[i], b=placed[j], distance=float(dist[i, j]))
            for i, j in zip(rows[close], cols[close])
        ]
        logger.debug("Calculated %d potential connections", len(candidates))
        return candidates

    def formation_rate(self, total: int) -> int:
        return max(1, total // self.config.formation_ticks)

    def form_edge(self, edge: Edge, now: float) -> Edge:
        """Materialise a potential edge at its current length."""
        edge.distance = edge.current_distance()
        edge.formed = True
        edge.formed_at = now
        edge.base_opacity = max(0.0, 0.6 * (1 - edge.distance / self.config.threshold))
        edge.scale = 0.1
        edge.opacity = 0.0
        edge.intensity = 0.0
        edge.growth = 0.0
        self.sync([edge])
        return edge

    def form_edges(self, ctx: SimulationContext, now: float) -> FormationStats:
        """Form the next batch of candidates, skipping pairs that drifted apart."""
        stats = FormationStats()
        limit = self.config.threshold * self.config.formation_tolerance
        batch = self.formation_rate(len(ctx.candidates))

        for _ in range(batch):
            if ctx.candidate_cursor >= len(ctx.candidates):
                break
            edge = ctx.candidates[ctx.candidate_cursor]
            ctx.candidate_cursor += 1
            if edge.formed:
                continue
            if edge.current_distance() < limit:
                ctx.edges.append(self.form_edge(edge, now))
                stats.formed += 1
            else:
                stats.skipped += 1

        stats.remaining = len(ctx.candidates) - ctx.candidate_cursor
        return stats

    def grow(self, edge: Edge, now: float) -> None:
        """Phase-in animation: scale and opacity ramp with an ease-out cubic."""
        if edge.formed_at is None:
            return
        duration = self.config.growth_duration
        p = 1.0 if duration <= 0 else min(1.0, max(0.0, (now - edge.formed_at) / duration))
        eased = ease_out_cubic(p)
        edge.growth = p
        edge.scale = 0.1 + eased * 0.9
        edge.opacity = eased * edge.base_opacity
        edge.intensity = eased * 0.5

    def sync(self, edges: Sequence[Edge]) -> None:
        for edge in edges:
            edge.length = edge.current_distance()
            edge.midpoint = (edge.a.position + edge.b.position) / 2

    def intensify(self, edges: Sequence[Edge], t: float) -> None:
        for edge in edges:
            edge.intensity = 0.6 + t * 0.2

    def fade(self, edges: Sequence[Edge], progress: float) -> None:
        for edge in edges:
            edge.opacity = edge.base_opacity * (1 - progress * 0.8)
            edge.intensity = 0.5 * (1 - progress)
