"""Shared test fixtures for semantic assembly tests."""

import re

import numpy as np
import pytest

from semantic_assembly.config import Config, PhaseConfig, PoolConfig
from semantic_assembly.errors import ProviderFailure
from semantic_assembly.models import Entity, Role

_NUMBERED = re.compile(r"^\s*\d+\.\s", re.MULTILINE)

WORDS = ["mind", "thought", "memory", "awareness", "self", "perception"]


class FakeLLM:
    """Scripted completer: answers by prompt kind and records every prompt it sees."""

    def __init__(
        self,
        words: list[str] | None = None,
        similarity: float = 0.8,
        importance: list[float] | None = None,
        interpretation: str = "The shape answers the question.",
        fail_on: tuple[str, ...] = (),
    ):
        self.words = words if words is not None else list(WORDS)
        self.similarity = similarity
        self.importance = importance if importance is not None else [9, 8, 6, 4, 2, 1]
        self.interpretation = interpretation
        self.fail_on = fail_on
        self.prompts: list[str] = []

    @staticmethod
    def kind(prompt: str) -> str:
        if prompt.startswith("List "):
            return "words"
        if prompt.startswith("Rate similarity"):
            return "similarity"
        if prompt.startswith("Rate importance"):
            return "importance"
        return "interpretation"

    def calls(self, kind: str) -> list[str]:
        return [p for p in self.prompts if self.kind(p) == kind]

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        kind = self.kind(prompt)
        if kind in self.fail_on:
            raise ProviderFailure(f"{kind} unavailable")
        if kind == "words":
            return ", ".join(self.words)
        count = len(_NUMBERED.findall(prompt))
        if kind == "similarity":
            return "\n".join(str(self.similarity) for _ in range(count))
        if kind == "importance":
            return "\n".join(str(self.importance[i % len(self.importance)]) for i in range(count))
        return self.interpretation


@pytest.fixture()
def config():
    """Seeded config with a small pool and short dwell/decay so full cycles run fast."""
    return Config(
        seed=7,
        pool=PoolConfig(size=60),
        phases=PhaseConfig(dwell=2.0, decay=3.0),
    )


@pytest.fixture()
def fake_llm():
    return FakeLLM()


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


def make_entity(
    id: int,
    position=(0.0, 0.0, 0.0),
    target=None,
    word: str | None = None,
    weight: float = 0.0,
    role: Role | None = None,
    visible: bool = True,
) -> Entity:
    entity = Entity(id=id, position=position, target_position=target)
    entity.word = word
    entity.weight = weight
    entity.role = role
    entity.visible = visible
    entity.scale = 1.0 if visible else 0.0
    return entity
