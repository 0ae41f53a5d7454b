"""Models for semantic assembly: enums, value models, and the mutable simulation units."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Phase(str, Enum):
    IDLE = "idle"
    COLLAPSING = "collapsing"
    ATTRACTING = "attracting"
    CONNECTING = "connecting"
    SETTLING = "settling"
    OBSERVED = "observed"
    DECAYING = "decaying"
    ABORTED = "aborted"


class Role(str, Enum):
    CORE = "core"
    SATELLITE = "satellite"


class WeightClass(str, Enum):
    FUNDAMENTAL = "fundamental"
    BALANCED = "balanced"
    SPECIFIC = "specific"
    PERIPHERAL = "peripheral"


def classify_weight(weight: float) -> WeightClass:
    if weight > 7:
        return WeightClass.FUNDAMENTAL
    if weight > 5:
        return WeightClass.BALANCED
    if weight > 3:
        return WeightClass.SPECIFIC
    return WeightClass.PERIPHERAL


Point3 = tuple[float, float, float]


# --- Value models ---


class AssemblySpace(BaseModel):
    """Output of one space generation: words, distances, weights, and 3D positions.

    Index-aligned: positions[i] belongs to words[i] and weights[i]. Simple mode has
    no words, only positions and weights.
    """
    model_config = ConfigDict(frozen=True)

    question: str
    words: list[str] = Field(default_factory=list)
    distance_matrix: list[list[float]] = Field(default_factory=list)
    weights: list[float] = Field(default_factory=list)
    positions: list[Point3] = Field(default_factory=list)
    mode: str = "llm"

    @model_validator(mode="after")
    def _check_alignment(self) -> "AssemblySpace":
        if len(self.positions) != len(self.weights):
            raise ValueError(
                f"positions ({len(self.positions)}) and weights ({len(self.weights)}) are not aligned"
            )
        if self.words or self.mode != "simple":
            if len(self.words) != len(self.positions):
                raise ValueError(
                    f"words ({len(self.words)}) and positions ({len(self.positions)}) are not aligned"
                )
        return self


class ProgressEvent(BaseModel):
    phase: str
    progress: int = Field(ge=0, le=100)
    message: str
    data: Any = None
    request: int | None = None  # generation request that emitted it


class TopologySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_count: int
    edge_count: int
    density: float
    avg_degree: float
    centroid: Point3
    bounding_radius: float


class Interpretation(BaseModel):
    """Free-text commentary on an assembled topology."""
    text: str
    fundamental_concepts: list[str] = Field(default_factory=list)
    peripheral_concepts: list[str] = Field(default_factory=list)
    central_concepts: list[str] = Field(default_factory=list)
    fallback: bool = False


class InspectionInfo(BaseModel):
    entity_id: int
    word: str | None = None
    role: Role | None = None
    weight: float
    weight_class: WeightClass
    parent_word: str | None = None
    distance_from_parent: float | None = None


class EntityFrame(BaseModel):
    id: int
    position: Point3
    visible: bool
    scale: float
    opacity: float
    role: Role | None = None
    word: str | None = None
    weight: float = 0.0


class EdgeFrame(BaseModel):
    a: int
    b: int
    opacity: float
    scale: float
    intensity: float
    length: float


class FrameSnapshot(BaseModel):
    """Everything a renderer needs to draw one frame."""
    phase: Phase
    status: str
    entities: list[EntityFrame]
    edges: list[EdgeFrame]


# --- Simulation units (mutable, numpy-backed) ---


def _vec(value: Any) -> np.ndarray:
    return np.array(value, dtype=float).reshape(3)


@dataclass(eq=False)
class Entity:
    """One pooled particle. Allocated once, reset for every assembly."""
    id: int
    position: np.ndarray
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    target_position: np.ndarray | None = None
    role: Role | None = None
    parent: "Entity | None" = field(default=None, repr=False)
    weight: float = 0.0  # a.k.a. curvature
    centrality: float = 0.0
    word: str | None = None
    distance_from_parent: float | None = None
    expansion_index: int | None = None
    size_variation: float = 1.0
    visible: bool = False
    scale: float = 0.0
    opacity: float = 0.0
    rest_target: np.ndarray | None = field(default=None, repr=False)
    attraction_delay: float = 0.0
    attraction_strength: float = 0.0

    def __post_init__(self) -> None:
        self.position = _vec(self.position)
        self.velocity = _vec(self.velocity)
        if self.target_position is not None:
            self.target_position = _vec(self.target_position)

    @property
    def anchor(self) -> np.ndarray:
        """Target position if laid out, else current position."""
        return self.target_position if self.target_position is not None else self.position

    def reset(self) -> None:
        """Clear every per-assembly attribute."""
        self.velocity = np.zeros(3)
        self.target_position = None
        self.role = None
        self.parent = None
        self.weight = 0.0
        self.centrality = 0.0
        self.word = None
        self.distance_from_parent = None
        self.expansion_index = None
        self.size_variation = 1.0
        self.visible = False
        self.scale = 0.0
        self.opacity = 0.0
        self.rest_target = None
        self.attraction_delay = 0.0
        self.attraction_strength = 0.0


@dataclass(eq=False)
class Edge:
    """A connection between two entities; potential until ``formed``."""
    a: Entity
    b: Entity
    distance: float
    formed: bool = False
    formed_at: float | None = None
    base_opacity: float = 0.0
    scale: float = 0.1
    opacity: float = 0.0
    intensity: float = 0.0
    growth: float = 0.0
    length: float = 0.0
    midpoint: np.ndarray = field(default_factory=lambda: np.zeros(3), repr=False)

    @property
    def key(self) -> tuple[int, int]:
        return (min(self.a.id, self.b.id), max(self.a.id, self.b.id))

    def current_distance(self) -> float:
        return float(np.linalg.norm(self.a.position - self.b.position))
