"""Owned simulation state: entity pool, edges, current space, and the shared RNG."""

import logging
import math

import numpy as np

from semantic_assembly.config import Config
from semantic_assembly.models import AssemblySpace, Edge, Entity, Role
from semantic_assembly.space.expansion import ExpansionGenerator

logger = logging.getLogger(__name__)


class SimulationContext:
    """Single-writer state passed to every phase and component call.

    The entity pool is allocated once and reused for every question.
    """

    def __init__(self, config: Config | None = None, rng: np.random.Generator | None = None) -> None:
        self.config = config or Config()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.entities: list[Entity] = [
            Entity(id=i, position=self.random_rest_position())
            for i in range(self.config.pool.size)
        ]
        self.edges: list[Edge] = []
        self.candidates: list[Edge] = []
        self.candidate_cursor = 0
        self.space: AssemblySpace | None = None

    # --- Pool helpers ---

    def random_rest_position(self) -> np.ndarray:
        """Random point on the resting shell between rest_radius_min and rest_radius_max."""
        pool = self.config.pool
        phi = self.rng.random() * math.pi * 2
        theta = self.rng.random() * math.pi
        r = pool.rest_radius_min + self.rng.random() * (pool.rest_radius_max - pool.rest_radius_min)
        return np.array([
            r * math.sin(theta) * math.cos(phi),
            r * math.sin(theta) * math.sin(phi),
            r * math.cos(theta),
        ])

    @property
    def targeted(self) -> list[Entity]:
        return [e for e in self.entities if e.target_position is not None]

    @property
    def cores(self) -> list[Entity]:
        return [e for e in self.entities if e.role == Role.CORE]

    def clear_edges(self) -> None:
        self.edges = []
        self.candidates = []
        self.candidate_cursor = 0

    def scatter(self) -> None:
        """Hide every entity, clear its assembly fields, and re-randomise its resting spot."""
        for entity in self.entities:
            entity.reset()
            entity.position = self.random_rest_position()
        self.clear_edges()
        self.space = None

    # --- Assembly setup ---

    def load_space(self, space: AssemblySpace, expansion: ExpansionGenerator) -> None:
        """Overwrite every entity's target/weight/role for a new assembly.

        The first entities become cores (scaled space positions); the rest become
        golden-angle satellites around them.
        """
        pool = self.config.pool
        for entity in self.entities:
            entity.reset()
        self.clear_edges()
        self.space = space

        core_count = min(pool.max_core, len(space.positions), len(self.entities))
        cores: list[Entity] = []
        for i in range(core_count):
            entity = self.entities[i]
            entity.target_position = np.array(space.positions[i], dtype=float) * pool.core_scale
            entity.word = space.words[i] if i < len(space.words) else None
            entity.weight = (
                float(space.weights[i]) if i < len(space.weights)
                else self.config.expansion.default_weight
            )
            entity.role = Role.CORE
            cores.append(entity)

        satellites = expansion.expand(cores, len(self.entities) - core_count) if cores else []
        for entity, sat in zip(self.entities[core_count:], satellites):
            entity.target_position = sat.position
            entity.weight = sat.weight
            entity.parent = sat.parent
            entity.distance_from_parent = sat.distance_from_parent
            entity.expansion_index = sat.index
            entity.size_variation = sat.size_variation
            entity.role = Role.SATELLITE

        targeted = self.targeted
        if targeted:
            centroid = np.mean([e.target_position for e in targeted], axis=0)
            for entity in targeted:
                entity.centrality = float(np.linalg.norm(entity.target_position - centroid))

        logger.info(
            "Loaded space for %r: %d core, %d satellite entities",
            space.question, len(cores), len(satellites),
        )
