"""Topology interpretation — ranks assembled concepts and asks the LLM what the shape means."""

import logging
from collections.abc import Sequence

import numpy as np

from semantic_assembly.errors import ProviderFailure
from semantic_assembly.llm import PROMPTS_DIR, Completer, render_prompt
from semantic_assembly.models import Entity, Interpretation, TopologySummary

logger = logging.getLogger(__name__)


# --- Concept ranking ---


class ConceptRanking:
    """Word-bearing entities ordered three ways."""

    def __init__(self) -> None:
        self.fundamental: list[str] = []
        self.peripheral: list[str] = []
        self.central: list[str] = []

    def __repr__(self) -> str:
        return (
            f"ConceptRanking(fundamental={self.fundamental}, "
            f"peripheral={self.peripheral}, central={self.central})"
        )


def rank_concepts(
    entities: Sequence[Entity],
    fundamental: int = 5,
    peripheral: int = 3,
    central: int = 3,
) -> ConceptRanking:
    """Highest weight first for fundamental, lowest for peripheral, smallest centrality for central."""
    ranking = ConceptRanking()
    worded = [e for e in entities if e.word and e.weight]
    if not worded:
        return ranking

    by_weight = sorted(worded, key=lambda e: e.weight, reverse=True)
    ranking.fundamental = [e.word for e in by_weight[:fundamental]]
    ranking.peripheral = [e.word for e in by_weight[-peripheral:]]
    ranking.central = [e.word for e in sorted(by_weight, key=lambda e: e.centrality)[:central]]
    return ranking


def identify_clusters(
    entities: Sequence[Entity],
    radius: float = 4.0,
    limit: int = 5,
) -> list[list[str]]:
    """Greedy grouping of word entities by current position. Singletons are not clusters."""
    worded = [e for e in entities if e.word]
    processed: set[int] = set()
    clusters: list[list[str]] = []

    for entity in worded:
        if entity.id in processed:
            continue
        members = [entity.word]
        for other in worded:
            if other is entity or other.id in processed:
                continue
            if float(np.linalg.norm(entity.position - other.position)) < radius:
                members.append(other.word)
                processed.add(other.id)
        if len(members) > 1:
            clusters.append(members)
            processed.add(entity.id)

    return clusters[:limit]


def fallback_response(ranking: ConceptRanking) -> str:
    if not ranking.fundamental:
        return "The topology crystallized without named concepts; its form alone carries the answer."
    center = ranking.central[0] if ranking.central else ranking.fundamental[0]
    return (
        f"The topology reveals {', '.join(ranking.fundamental[:3])} as fundamental concepts "
        f"with highest curvature, clustering around {center} at the geometric center."
    )


def fallback_shape_meaning(ranking: ConceptRanking, clusters: list[list[str]]) -> str:
    if not ranking.fundamental:
        return "The shape has no named concepts to explain."
    text = f"The shape is anchored by {', '.join(ranking.fundamental[:3])}."
    if clusters:
        text += " Concepts grouped as " + "; ".join(", ".join(c) for c in clusters) + "."
    return text


# --- Interpreter ---


class Interpreter:
    """Turns an assembled topology into commentary. Never raises on LLM failure."""

    def __init__(self, llm: Completer | None) -> None:
        self.llm = llm

    def _ask(self, prompt: str) -> str | None:
        if self.llm is None:
            return None
        try:
            return self.llm(prompt)
        except ProviderFailure as exc:
            logger.warning("Interpretation call failed, using fallback: %s", exc)
            return None

    def topology_response(
        self,
        question: str,
        entities: Sequence[Entity],
        topology: TopologySummary,
    ) -> Interpretation:
        ranking = rank_concepts(entities)
        text = None
        if ranking.fundamental:
            prompt = render_prompt(
                PROMPTS_DIR / "topology_response.yaml",
                question=question,
                node_count=topology.node_count,
                edge_count=topology.edge_count,
                density_pct=f"{topology.density * 100:.1f}",
                fundamental=", ".join(ranking.fundamental),
                peripheral=", ".join(ranking.peripheral),
                central=", ".join(ranking.central),
            )
            text = self._ask(prompt)

        return Interpretation(
            text=text or fallback_response(ranking),
            fundamental_concepts=ranking.fundamental,
            peripheral_concepts=ranking.peripheral,
            central_concepts=ranking.central,
            fallback=text is None,
        )

    def explain_shape(
        self,
        question: str,
        entities: Sequence[Entity],
        topology: TopologySummary,
    ) -> Interpretation:
        """What the shape reveals: fundamental vs peripheral concepts plus spatial clusters."""
        ranking = rank_concepts(entities, peripheral=5)
        clusters = identify_clusters(entities)
        text = None
        if ranking.fundamental:
            prompt = render_prompt(
                PROMPTS_DIR / "shape_meaning.yaml",
                question=question,
                node_count=topology.node_count,
                density_pct=f"{topology.density * 100:.1f}",
                fundamental=", ".join(ranking.fundamental),
                peripheral=", ".join(ranking.peripheral),
                clusters=", ".join(f"[{', '.join(c)}]" for c in clusters) or "none",
            )
            text = self._ask(prompt)

        return Interpretation(
            text=text or fallback_shape_meaning(ranking, clusters),
            fundamental_concepts=ranking.fundamental,
            peripheral_concepts=ranking.peripheral,
            central_concepts=ranking.central,
            fallback=text is None,
        )
