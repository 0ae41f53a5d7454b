"""Golden-angle satellite expansion around laid-out core entities.

Placement is a pure function of the satellite index and the core set: the spiral
angle, radius and polar angle come from the index, and the parent is chosen by
comparing ``(i % 100) / 100`` against the cumulative core-weight table. Re-running
with the same cores and count reproduces the same satellites.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from semantic_assembly.config import ExpansionConfig
from semantic_assembly.models import Entity

logger = logging.getLogger(__name__)

POLAR_PERIOD = 89  # a Fibonacci number


@dataclass(eq=False)
class Satellite:
    index: int
    position: np.ndarray
    weight: float
    centrality: float
    parent: Entity
    distance_from_parent: float
    size_variation: float


def fibonacci(n: int) -> int:
    """n-th Fibonacci number, iterative (fib(0)=0, fib(1)=1)."""
    if n <= 1:
        return n
    a, b = 0, 1
    for _ in range(2, n + 1):
        a, b = b, a + b
    return b


def _cumulative_weights(weights: np.ndarray) -> np.ndarray:
    total = float(weights.sum())
    if total <= 0:
        weights = np.ones_like(weights)
        total = float(weights.sum())
    return np.cumsum(weights / total)


class ExpansionGenerator:
    """Generates satellite positions around core entities (phyllotaxis spiral)."""

    def __init__(self, config: ExpansionConfig | None = None) -> None:
        self.config = config or ExpansionConfig()

    def expand(self, core_entities: Sequence[Entity], satellite_count: int) -> list[Satellite]:
        if satellite_count <= 0:
            return []
        if not core_entities:
            raise ValueError("Cannot expand satellites without core entities")

        cfg = self.config
        golden_angle = math.radians(cfg.golden_angle)

        anchors = np.array([c.anchor for c in core_entities], dtype=float)
        weights = np.array([max(0.0, float(c.weight)) for c in core_entities])
        cumulative = _cumulative_weights(weights)
        centroid = anchors.mean(axis=0)

        satellites: list[Satellite] = []
        for i in range(satellite_count):
            theta = i * golden_angle

            # sqrt growth for even packing, stepped by the Fibonacci sequence
            fib = fibonacci(i // 10 + 1)
            radius = math.sqrt(i + 1) * cfg.spiral_scale * (1 + (fib % 5) * 0.1)
            phi = math.acos(1 - 2 * (i % POLAR_PERIOD) / POLAR_PERIOD)

            rand = (i % 100) / 100
            parent_idx = int(np.searchsorted(cumulative, rand, side="right"))
            if parent_idx >= len(core_entities):
                parent_idx = 0
            parent = core_entities[parent_idx]
            anchor = anchors[parent_idx]

            offset = np.array([
                radius * math.sin(phi) * math.cos(theta),
                radius * math.sin(phi) * math.sin(theta),
                radius * math.cos(phi),
            ])
            position = anchor + offset
            distance = float(np.linalg.norm(position - anchor))

            satellites.append(Satellite(
                index=i,
                position=position,
                weight=float(weights[parent_idx]) * math.exp(-distance / cfg.weight_decay),
                centrality=float(np.linalg.norm(position - centroid)),
                parent=parent,
                distance_from_parent=distance,
                size_variation=0.6 + 0.4 * math.exp(-distance / cfg.size_decay),
            ))

        logger.debug(
            "Expanded %d satellites around %d cores (golden angle %.2f deg)",
            len(satellites), len(core_entities), cfg.golden_angle,
        )
        return satellites
