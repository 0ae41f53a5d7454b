"""Per-tick kinematic updates for each assembly phase.

Every step reads the previous tick's committed positions and velocities into
arrays, updates them together, and writes them back, so the result does not
depend on entity order.
"""

from collections.abc import Sequence

import numpy as np

from semantic_assembly.assembly.context import SimulationContext
from semantic_assembly.models import Entity


def _gather(entities: Sequence[Entity]) -> tuple[np.ndarray, np.ndarray]:
    positions = np.array([e.position for e in entities], dtype=float).reshape(-1, 3)
    velocities = np.array([e.velocity for e in entities], dtype=float).reshape(-1, 3)
    return positions, velocities


def _targets(entities: Sequence[Entity]) -> np.ndarray:
    return np.array([e.target_position for e in entities], dtype=float).reshape(-1, 3)


def _commit(entities: Sequence[Entity], positions: np.ndarray, velocities: np.ndarray) -> None:
    for entity, p, v in zip(entities, positions, velocities):
        entity.position = p.copy()
        entity.velocity = v.copy()


def collapse_step(ctx: SimulationContext, t: float) -> None:
    """Staggered appearance with decaying velocity jitter."""
    entities = ctx.entities
    n = len(entities)
    if n == 0:
        return

    stagger = np.arange(n) / n * 0.5
    appear = np.clip((t - stagger) / 0.5, 0.0, 1.0)
    for entity, a in zip(entities, appear):
        if a > 0:
            entity.visible = True
            entity.opacity = float(a) * 0.8
            entity.scale = float(a)

    chaos = (1 - t) * 0.1
    jitter = (ctx.rng.random((n, 3)) - 0.5) * chaos
    for entity, j in zip(entities, jitter):
        entity.velocity = entity.velocity + j


def begin_attraction(ctx: SimulationContext) -> None:
    """Pick each entity's response delay and pull strength for this assembly."""
    for entity in ctx.targeted:
        entity.attraction_delay = float(ctx.rng.random() * 0.4)
        entity.attraction_strength = float(0.3 + ctx.rng.random() * 0.4)


def attraction_step(ctx: SimulationContext, t: float) -> None:
    entities = ctx.targeted
    if not entities:
        return
    positions, velocities = _gather(entities)
    targets = _targets(entities)
    delay = np.array([e.attraction_delay for e in entities])
    strength = np.array([e.attraction_strength for e in entities])

    pt = np.clip((t - delay) / (1 - delay), 0.0, 1.0)
    velocities += (targets - positions) * (pt * strength * 0.02)[:, None]
    positions += velocities
    velocities *= (0.98 - pt * 0.05)[:, None]
    _commit(entities, positions, velocities)


def clustering_forces(positions: np.ndarray, t: float, radius: float) -> np.ndarray:
    """Gentle pull toward every neighbour within ``radius``, stronger as ``t`` grows."""
    delta = positions[None, :, :] - positions[:, None, :]
    dist = np.linalg.norm(delta, axis=2)
    near = (dist < radius) & (dist > 0.1)
    safe = np.where(near, dist, 1.0)
    magnitude = np.where(near, 0.02 * t / safe, 0.0)
    return np.einsum("ij,ijk->ik", magnitude / safe, delta)


def connecting_step(ctx: SimulationContext, t: float) -> None:
    entities = ctx.targeted
    if not entities:
        return
    positions, velocities = _gather(entities)
    previous = positions.copy()
    targets = _targets(entities)

    delta = targets - positions
    dist = np.linalg.norm(delta, axis=1)
    pulling = dist > 0.1
    velocities[pulling] += delta[pulling] / dist[pulling, None] * 0.05
    positions += velocities
    velocities *= 0.96

    if t >= 0.3:
        velocities += clustering_forces(previous, t, ctx.config.phases.cluster_radius)
    _commit(entities, positions, velocities)


def settling_step(ctx: SimulationContext, t: float) -> None:
    """Spring-damper toward targets with damping that tightens over the phase."""
    entities = ctx.targeted
    if not entities:
        return
    positions, velocities = _gather(entities)
    targets = _targets(entities)

    velocities += (targets - positions) * 0.03
    positions += velocities
    velocities *= 0.92 - t * 0.1
    _commit(entities, positions, velocities)


def observation_step(ctx: SimulationContext, t: float) -> None:
    for entity in ctx.entities:
        if entity.visible:
            entity.opacity = 0.8 + t * 0.2
        if entity.target_position is not None:
            entity.position = entity.position + (entity.target_position - entity.position) * (0.05 * (1 - t))
        entity.velocity = entity.velocity * 0.9


def decay_step(ctx: SimulationContext, progress: float) -> None:
    """Drift back toward a resting shell spot with light Brownian motion."""
    entities = ctx.targeted
    if not entities:
        return
    for entity in entities:
        if entity.rest_target is None:
            entity.rest_target = ctx.random_rest_position()

    positions, velocities = _gather(entities)
    rest = np.array([e.rest_target for e in entities], dtype=float)

    positions += (rest - positions) * (progress * 0.02)
    velocities += (ctx.rng.random(velocities.shape) - 0.5) * (0.01 * progress)
    positions += velocities
    velocities *= 0.98
    _commit(entities, positions, velocities)


def enter_idle(ctx: SimulationContext) -> None:
    ctx.scatter()
