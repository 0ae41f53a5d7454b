"""Configuration loading for semantic assembly."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    model: str = "groq/llama-3.3-70b-versatile"
    temperature: float = 0.3
    max_tokens: int = 800
    top_p: float = 1.0
    timeout: float = 30.0
    word_count: int = 30
    neighbor_samples: int = 3


class LayoutConfig(BaseModel):
    iterations: int = 100
    spring_constant: float = 0.1
    learning_rate: float = 0.1
    scale_factor: float = 10.0  # distance-matrix units -> scene units
    init_extent: float = 20.0  # side of the random init cube
    epsilon: float = 0.1
    max_step: float = 10.0  # per-iteration displacement cap


class ExpansionConfig(BaseModel):
    golden_angle: float = 137.5077640  # degrees
    spiral_scale: float = 0.5
    weight_decay: float = 5.0
    size_decay: float = 3.0
    default_weight: float = 5.0


class ConnectivityConfig(BaseModel):
    threshold: float = 3.0
    formation_tolerance: float = 1.2
    formation_ticks: int = 60  # candidates are formed over ~this many ticks
    growth_duration: float = 1.0


class PhaseConfig(BaseModel):
    """Phase durations in seconds."""
    collapse: float = 1.0
    attract: float = 2.5
    connect: float = 3.0
    settle: float = 2.0
    observe: float = 1.0
    dwell: float = 30.0  # OBSERVED -> DECAYING
    decay: float = 45.0
    abort_delay: float = 2.0
    cluster_radius: float = 5.0


class PoolConfig(BaseModel):
    size: int = 200
    max_core: int = 30
    core_scale: float = 0.8
    rest_radius_min: float = 10.0
    rest_radius_max: float = 25.0
    particle_size: float = 0.15


class ContextConfig(BaseModel):
    influence: float = 0.6
    min_strength: float = 0.1
    key_words: int = 5


class Config(BaseModel):
    simple_mode: bool = False
    seed: int | None = None
    llm: LLMConfig = Field(default_factory=LLMConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    expansion: ExpansionConfig = Field(default_factory=ExpansionConfig)
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)
    phases: PhaseConfig = Field(default_factory=PhaseConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)

    @property
    def forward_duration(self) -> float:
        """Total time from COLLAPSING to the end of the OBSERVED settle."""
        p = self.phases
        return p.collapse + p.attract + p.connect + p.settle + p.observe


def _project_root() -> Path:
    """Return the semantic_assembly project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        return Config(**raw)

    return Config()
