"""Question -> semantic space: words, distance matrix, weights, and 3D positions.

Four LLM call sites feed the space. Only the first (word generation) is fatal on
failure; similarity and importance ratings fall back to uniform defaults.
"""

import logging
import functools
import math
import re
from dataclasses import dataclass, field

import numpy as np

from semantic_assembly.config import Config
from semantic_assembly.errors import ProviderFailure
from semantic_assembly.events import ProgressBus
from semantic_assembly.llm import PROMPTS_DIR, Completer, render_prompt
from semantic_assembly.models import AssemblySpace
from semantic_assembly.space.distance_matrix import DEFAULT_DISTANCE, DistanceMatrix
from semantic_assembly.space.layout_engine import LayoutEngine

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY = 0.5
DEFAULT_IMPORTANCE = 2.0
SIMPLE_POINT_COUNT = 200

_WORD_RE = re.compile(r"^[a-z\s-]+$")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def parse_words(response: str, limit: int) -> list[str]:
    """Comma-separated LLM reply -> cleaned lowercase words."""
    words: list[str] = []
    for raw in response.lower().split(","):
        w = raw.strip()
        if 2 < len(w) < 25 and _WORD_RE.match(w):
            words.append(w)
    return words[:limit]


def parse_ratings(
    response: str,
    count: int,
    low: float,
    high: float,
    default: float,
) -> list[float]:
    """One number per line; out-of-range values dropped, padded with ``default``.

    The last number on a line wins, so numbered replies ("1. 0.8") parse as 0.8.
    """
    ratings: list[float] = []
    for line in response.splitlines():
        numbers = _NUMBER_RE.findall(line)
        if not numbers:
            continue
        value = float(numbers[-1])
        if low <= value <= high:
            ratings.append(value)
    while len(ratings) < count:
        ratings.append(default)
    return ratings[:count]


def question_seed(question: str) -> int:
    """32-bit string hash of the question, made non-negative."""
    seed = 0
    for ch in question:
        seed = ((seed << 5) - seed + ord(ch)) & 0xFFFFFFFF
        if seed >= 0x80000000:
            seed -= 0x100000000
    return abs(seed)


@dataclass
class PreviousContext:
    """What is remembered of the last assembly for question chaining."""
    question: str
    words: list[str] = field(default_factory=list)
    timestamp: float = 0.0


def build_contextual_question(
    question: str,
    previous: PreviousContext | None,
    now: float,
    config: Config,
) -> str:
    """Blend the previous question into the prompt while its context is still fresh."""
    if previous is None:
        return question

    total = config.phases.dwell + config.phases.decay
    strength = max(0.0, 1 - (now - previous.timestamp) / total) if total > 0 else 0.0
    if strength < config.context.min_strength:
        return question

    influence = round(strength * config.context.influence * 100)
    logger.info("Chaining questions (%d%% context from previous)", influence)
    key_words = previous.words[: config.context.key_words]
    return render_prompt(
        PROMPTS_DIR / "context.yaml",
        influence=influence,
        previous_question=previous.question,
        previous_words=", ".join(key_words) if key_words else "unknown",
        question=question,
    )


class SpaceGenerator:
    """Builds an AssemblySpace for a question, reporting progress on a bus."""

    def __init__(
        self,
        llm: Completer | None,
        config: Config | None = None,
        progress: ProgressBus | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or Config()
        self.progress = progress or ProgressBus()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.layout_engine = LayoutEngine(self.config.layout, rng=self.rng)

    def generate_space(
        self,
        question: str,
        prompt_question: str | None = None,
        request: int | None = None,
    ) -> AssemblySpace:
        """Main entry point. ``prompt_question`` overrides the text sent to the LLM.

        Every progress event is tagged with ``request`` so listeners can tell runs apart.
        """
        emit = functools.partial(self.progress.emit, request=request)
        try:
            if self.config.simple_mode or self.llm is None:
                emit("GENERATING", 50, "Generating shape (simple mode)...")
                positions = self.generate_simple_positions(SIMPLE_POINT_COUNT, question)
                emit("COMPLETE", 100, "Shape generated!")
                return AssemblySpace(
                    question=question,
                    weights=[self.config.expansion.default_weight] * len(positions),
                    positions=[tuple(p) for p in positions.tolist()],
                    mode="simple",
                )

            emit("GENERATING_WORDS", 10, "Asking LLM for core concepts...")
            words = self.generate_core_words(prompt_question or question)
            emit("WORDS_GENERATED", 30, f"Generated {len(words)} words", data=words)

            emit("CALCULATING_DISTANCES", 40, "Measuring semantic distances...")
            matrix = self.build_distance_matrix(words, request=request)
            emit("DISTANCES_CALCULATED", 70, "Distance matrix complete")

            emit("CALCULATING_CURVATURE", 80, "Rating archetypal weights...")
            weights = self.calculate_weights(words)
            emit("CURVATURE_CALCULATED", 90, "Curvature values computed")

            emit("PROJECTING_SPACE", 95, "Projecting to 3D space...")
            positions = self.project_to_3d(matrix)

            emit("COMPLETE", 100, "Space generation complete!")
            return AssemblySpace(
                question=question,
                words=words,
                distance_matrix=matrix.to_list(),
                weights=weights,
                positions=[tuple(p) for p in positions.tolist()],
            )
        except ProviderFailure as exc:
            emit("ERROR", 0, str(exc))
            raise

    # --- LLM call sites ---

    def generate_core_words(self, question: str) -> list[str]:
        count = self.config.llm.word_count
        prompt = render_prompt(PROMPTS_DIR / "core_words.yaml", count=count, question=question)
        try:
            response = self.llm(prompt)
        except ProviderFailure as exc:
            raise ProviderFailure(f"Failed to generate words from LLM: {exc}") from exc

        words = parse_words(response, count)
        if not words:
            raise ProviderFailure("LLM returned no usable words")
        logger.info("Generated %d words: %s", len(words), words)
        return words

    def batch_similarity(self, word: str, neighbors: list[str]) -> list[float]:
        prompt = render_prompt(
            PROMPTS_DIR / "similarity.yaml",
            word=word,
            neighbors="\n".join(f"{i + 1}. {n}" for i, n in enumerate(neighbors)),
        )
        try:
            response = self.llm(prompt)
        except ProviderFailure as exc:
            logger.warning("Similarity rating for %r failed, using defaults: %s", word, exc)
            return [DEFAULT_SIMILARITY] * len(neighbors)
        return parse_ratings(response, len(neighbors), 0.0, 1.0, DEFAULT_SIMILARITY)

    def calculate_weights(self, words: list[str]) -> list[float]:
        prompt = render_prompt(
            PROMPTS_DIR / "importance.yaml",
            words="\n".join(f"{i + 1}. {w}" for i, w in enumerate(words)),
        )
        try:
            response = self.llm(prompt)
        except ProviderFailure as exc:
            logger.warning("Importance rating failed, using defaults: %s", exc)
            return [DEFAULT_IMPORTANCE] * len(words)
        return parse_ratings(response, len(words), 0.0, 10.0, DEFAULT_IMPORTANCE)

    # --- Geometry ---

    def build_distance_matrix(self, words: list[str], request: int | None = None) -> DistanceMatrix:
        """Rate each word against a few sampled neighbours; unrated pairs stay at 0.5."""
        n = len(words)
        entries: dict[tuple[int, int], float] = {}
        sample_size = min(self.config.llm.neighbor_samples, n - 1)

        for i, word in enumerate(words):
            if sample_size > 0:
                others = [j for j in range(n) if j != i]
                sampled = [int(j) for j in self.rng.choice(others, size=sample_size, replace=False)]
                similarities = self.batch_similarity(word, [words[j] for j in sampled])
                for j, similarity in zip(sampled, similarities):
                    entries[(i, j)] = 1.0 - similarity

            self.progress.emit(
                "CALCULATING_DISTANCES",
                40 + math.floor((i + 1) / n * 30),
                f"Processing word {i + 1}/{n}...",
                request=request,
            )

        return DistanceMatrix.from_partial(n, entries, default=DEFAULT_DISTANCE)

    def project_to_3d(self, matrix: DistanceMatrix) -> np.ndarray:
        return self.layout_engine.layout(matrix)

    def generate_simple_positions(self, count: int, question: str) -> np.ndarray:
        """Question-seeded pattern (organic sphere, spiral, or clusters) without an LLM."""
        seed = question_seed(question)
        pattern = seed % 3
        rng = np.random.default_rng(seed)
        positions = np.zeros((count, 3))

        for i in range(count):
            t = i / count
            angle = t * math.pi * 2

            if pattern == 0:
                phi = math.acos(2 * t - 1)
                theta = angle * 3 + seed * t
                r = 8 + 2 * math.sin(seed * t * 5)
                positions[i] = (
                    r * math.sin(phi) * math.cos(theta),
                    r * math.sin(phi) * math.sin(theta),
                    r * math.cos(phi),
                )
            elif pattern == 1:
                radius = 6 + 2 * t
                positions[i] = (
                    radius * math.cos(angle * 4),
                    (t - 0.5) * 15,
                    radius * math.sin(angle * 4),
                )
            else:
                clusters = 4
                cluster_angle = math.floor(t * clusters) / clusters * math.pi * 2
                local_r = 3 + rng.random() * 2
                local_angle = t * clusters * math.pi * 2
                positions[i] = (
                    8 * math.cos(cluster_angle) + local_r * math.cos(local_angle),
                    (rng.random() - 0.5) * 8,
                    8 * math.sin(cluster_angle) + local_r * math.sin(local_angle),
                )

        return positions
