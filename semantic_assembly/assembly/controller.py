"""Assembly state machine: sequences the entity pool through its phases, one tick at a time.

IDLE -> COLLAPSING -> ATTRACTING -> CONNECTING -> SETTLING -> OBSERVED -> DECAYING -> IDLE,
with ABORTED as the short-lived error state when space generation fails. A new
question preempts any phase and restarts from COLLAPSING in the same call.
"""

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future

import numpy as np

from semantic_assembly.analysis.inspection import inspect, pick_entity
from semantic_assembly.analysis.interpretation import Interpreter
from semantic_assembly.assembly import phases
from semantic_assembly.assembly.connectivity import ConnectivityBuilder
from semantic_assembly.assembly.context import SimulationContext
from semantic_assembly.assembly.topology import analyze
from semantic_assembly.config import Config
from semantic_assembly.errors import InvalidInput, ProviderFailure
from semantic_assembly.events import ProgressBus
from semantic_assembly.llm import Completer
from semantic_assembly.models import (
    AssemblySpace,
    FrameSnapshot,
    InspectionInfo,
    Interpretation,
    Phase,
    ProgressEvent,
    TopologySummary,
)
from semantic_assembly.output.snapshot import build_snapshot
from semantic_assembly.space.expansion import ExpansionGenerator
from semantic_assembly.space.generator import (
    PreviousContext,
    SpaceGenerator,
    build_contextual_question,
)

logger = logging.getLogger(__name__)

STATUS = {
    Phase.IDLE: "Ready. Ask a question to begin assembly.",
    Phase.COLLAPSING: "Collapsing: nodes crystallizing...",
    Phase.ATTRACTING: "Attraction: forces emerging...",
    Phase.CONNECTING: "Bonding: network topology emerging...",
    Phase.SETTLING: "Stabilization: topology stabilizing...",
    Phase.OBSERVED: "Analyzing semantic curvature...",
    Phase.DECAYING: "Context decaying...",
}
GENERATING_STATUS = "Generating semantic space..."
STABLE_STATUS = "Topology crystallized. Network stable."
PAUSED_STATUS = "Decay paused for inspection."


class AssemblyController:
    """Owns the simulation context and drives it from a host frame loop via ``tick()``.

    Space generation and interpretation run inline unless an ``executor`` is given,
    in which case they are submitted to it and polled each tick.
    """

    def __init__(
        self,
        config: Config | None = None,
        llm: Completer | None = None,
        context: SimulationContext | None = None,
        generator: SpaceGenerator | None = None,
        interpreter: Interpreter | None = None,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.monotonic,
        progress: ProgressBus | None = None,
    ) -> None:
        self.config = config or Config()
        self.progress = progress or ProgressBus()
        self.context = context or SimulationContext(self.config)
        self.generator = generator or SpaceGenerator(
            llm, self.config, self.progress, rng=np.random.default_rng(self.config.seed),
        )
        self.interpreter = interpreter or Interpreter(llm)
        self.expansion = ExpansionGenerator(self.config.expansion)
        self.connectivity = ConnectivityBuilder(self.config.connectivity)
        self.executor = executor
        self.clock = clock

        self._phase = Phase.IDLE
        self._status = STATUS[Phase.IDLE]
        self._question: str | None = None
        self._phase_started: float | None = None
        self._last_tick: float | None = None
        self._request = 0
        self._space_future: Future | None = None
        self._interpretation_future: Future | None = None
        self._topology: TopologySummary | None = None
        self._interpretation: Interpretation | None = None
        self._error: str | None = None
        self._previous: PreviousContext | None = None
        self._decay_elapsed = 0.0
        self._paused = False

        self.progress.subscribe(self._on_progress)

    # --- Read-only state ---

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def status(self) -> str:
        return self._status

    @property
    def question(self) -> str | None:
        return self._question

    @property
    def space(self) -> AssemblySpace | None:
        return self.context.space

    @property
    def topology(self) -> TopologySummary | None:
        return self._topology

    @property
    def interpretation(self) -> Interpretation | None:
        return self._interpretation

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def decay_progress(self) -> float:
        decay = self.config.phases.decay
        return 1.0 if decay <= 0 else min(1.0, self._decay_elapsed / decay)

    # --- Inputs ---

    def submit_question(self, question: str, now: float | None = None) -> None:
        """Start a new assembly, preempting whatever is in flight."""
        if not question or not question.strip():
            raise InvalidInput("Question must not be empty")
        now = self.clock() if now is None else now
        question = question.strip()

        self._cancel()
        self._request += 1
        self._question = question
        self._phase = Phase.COLLAPSING
        self._phase_started = None
        self._status = GENERATING_STATUS
        logger.info("Question received: %r", question)

        prompt_question = build_contextual_question(question, self._previous, now, self.config)

        if self.executor is not None:
            self._space_future = self.executor.submit(
                self.generator.generate_space, question, prompt_question, self._request,
            )
            return

        try:
            space = self.generator.generate_space(question, prompt_question, self._request)
        except ProviderFailure as exc:
            self._abort(exc, now)
            return
        self._start_assembly(space, now)

    def reset(self) -> None:
        """Return to IDLE immediately."""
        self._cancel()
        self._go_idle()

    def toggle_pause(self) -> bool:
        """Pause or resume decay. Ignored outside DECAYING; returns the pause state."""
        if self._phase != Phase.DECAYING:
            logger.debug("Pause ignored in %s", self._phase.value)
            return self._paused
        self._paused = not self._paused
        self._status = PAUSED_STATUS if self._paused else STATUS[Phase.DECAYING]
        logger.info("Decay %s", "paused" if self._paused else "resumed")
        return self._paused

    def entity_at(
        self,
        origin: Sequence[float],
        direction: Sequence[float],
    ) -> InspectionInfo | None:
        """Hover lookup along a pointer ray; answers only once the assembly is observable."""
        if self._phase not in (Phase.OBSERVED, Phase.DECAYING):
            return None
        radius = self.config.pool.particle_size * 1.5
        entity = pick_entity(self.context.entities, origin, direction, radius)
        return inspect(entity) if entity is not None else None

    def explain_shape(self) -> Interpretation | None:
        if self._topology is None or self._question is None:
            return None
        return self.interpreter.explain_shape(self._question, self.context.entities, self._topology)

    def snapshot(self) -> FrameSnapshot:
        return build_snapshot(self._phase, self._status, self.context.entities, self.context.edges)

    # --- Frame loop ---

    def tick(self, now: float | None = None) -> Phase:
        """Advance the current phase by one non-blocking frame."""
        now = self.clock() if now is None else now
        dt = 0.0 if self._last_tick is None else max(0.0, now - self._last_tick)
        self._last_tick = now

        if self._phase == Phase.COLLAPSING:
            self._tick_collapsing(now)
        elif self._phase == Phase.ATTRACTING:
            self._tick_forward(now, self.config.phases.attract, phases.attraction_step, Phase.CONNECTING)
        elif self._phase == Phase.CONNECTING:
            self._tick_connecting(now)
        elif self._phase == Phase.SETTLING:
            self._tick_settling(now)
        elif self._phase == Phase.OBSERVED:
            self._tick_observed(now)
        elif self._phase == Phase.DECAYING:
            self._tick_decaying(now, dt)
        elif self._phase == Phase.ABORTED:
            if now - self._phase_started >= self.config.phases.abort_delay:
                self._go_idle()
        return self._phase

    # --- Phase handlers ---

    def _elapsed(self, now: float) -> float:
        return max(0.0, now - self._phase_started)

    def _tick_collapsing(self, now: float) -> None:
        if self._space_future is not None:
            if not self._space_future.done():
                return
            future, self._space_future = self._space_future, None
            try:
                space = future.result()
            except ProviderFailure as exc:
                self._abort(exc, now)
                return
            self._start_assembly(space, now)

        if self._phase_started is None:
            return
        duration = self.config.phases.collapse
        elapsed = self._elapsed(now)
        phases.collapse_step(self.context, _fraction(elapsed, duration))
        if elapsed >= duration:
            phases.begin_attraction(self.context)
            self._enter(Phase.ATTRACTING, now)

    def _tick_forward(
        self,
        now: float,
        duration: float,
        step: Callable[[SimulationContext, float], None],
        next_phase: Phase,
    ) -> bool:
        elapsed = self._elapsed(now)
        step(self.context, _fraction(elapsed, duration))
        if elapsed >= duration:
            self._enter(next_phase, now)
            return True
        return False

    def _tick_connecting(self, now: float) -> None:
        ctx = self.context
        stats = self.connectivity.form_edges(ctx, now)
        if stats.formed or stats.skipped:
            logger.debug("Edge formation: %r", stats)
        for edge in ctx.edges:
            self.connectivity.grow(edge, now)
        done = self._tick_forward(now, self.config.phases.connect, phases.connecting_step, Phase.SETTLING)
        self.connectivity.sync(ctx.edges)
        if done:
            logger.info("Formed %d of %d potential connections", len(ctx.edges), len(ctx.candidates))

    def _tick_settling(self, now: float) -> None:
        ctx = self.context
        for edge in ctx.edges:
            self.connectivity.grow(edge, now)
        done = self._tick_forward(now, self.config.phases.settle, phases.settling_step, Phase.OBSERVED)
        self.connectivity.sync(ctx.edges)
        if done:
            self._observe(now)

    def _tick_observed(self, now: float) -> None:
        ctx = self.context
        elapsed = self._elapsed(now)
        if elapsed <= self.config.phases.observe:
            t = _fraction(elapsed, self.config.phases.observe)
            phases.observation_step(ctx, t)
            self.connectivity.intensify(ctx.edges, t)
            self.connectivity.sync(ctx.edges)

        self._poll_interpretation()

        if elapsed >= self.config.phases.dwell:
            self._decay_elapsed = 0.0
            self._paused = False
            self._enter(Phase.DECAYING, now)

    def _tick_decaying(self, now: float, dt: float) -> None:
        self._poll_interpretation()
        if self._paused:
            return
        ctx = self.context
        self._decay_elapsed += dt
        progress = self.decay_progress
        phases.decay_step(ctx, progress)
        self.connectivity.fade(ctx.edges, progress)
        self.connectivity.sync(ctx.edges)
        if progress >= 1.0:
            logger.info("Context fully decayed, returning to rest")
            self._go_idle()

    # --- Transitions ---

    def _enter(self, phase: Phase, now: float) -> None:
        self._phase = phase
        self._phase_started = now
        self._status = STATUS[phase]
        logger.info("Phase -> %s", phase.value)

    def _start_assembly(self, space: AssemblySpace, now: float) -> None:
        ctx = self.context
        ctx.load_space(space, self.expansion)
        ctx.candidates = self.connectivity.compute_candidates(ctx.entities)
        self._previous = PreviousContext(question=space.question, words=list(space.words), timestamp=now)
        logger.info(
            "Assembly ready: %d entities, %d potential connections",
            len(ctx.targeted), len(ctx.candidates),
        )
        self._enter(Phase.COLLAPSING, now)

    def _observe(self, now: float) -> None:
        ctx = self.context
        self._topology = analyze(ctx.targeted, ctx.edges)
        logger.info(
            "Topology: %d nodes, %d edges, density %.3f",
            self._topology.node_count, self._topology.edge_count, self._topology.density,
        )
        if self.executor is not None:
            self._interpretation_future = self.executor.submit(
                self.interpreter.topology_response, self._question, list(ctx.entities), self._topology,
            )
            return
        self._interpretation = self.interpreter.topology_response(self._question, ctx.entities, self._topology)
        self._status = STABLE_STATUS

    def _poll_interpretation(self) -> None:
        future = self._interpretation_future
        if future is None or not future.done():
            return
        self._interpretation_future = None
        self._interpretation = future.result()
        if self._phase == Phase.OBSERVED:
            self._status = STABLE_STATUS

    def _abort(self, exc: Exception, now: float) -> None:
        self._error = str(exc)
        logger.error("Assembly failed for %r: %s", self._question, exc)
        self._phase = Phase.ABORTED
        self._phase_started = now
        self._status = f"Assembly failed: {exc}"

    def _go_idle(self) -> None:
        phases.enter_idle(self.context)
        self._phase = Phase.IDLE
        self._phase_started = None
        self._topology = None
        self._interpretation = None
        self._decay_elapsed = 0.0
        self._paused = False
        self._status = STATUS[Phase.IDLE]
        logger.info("Phase -> %s", Phase.IDLE.value)

    def _cancel(self) -> None:
        for future in (self._space_future, self._interpretation_future):
            if future is not None:
                future.cancel()
        self._space_future = None
        self._interpretation_future = None
        self.context.clear_edges()
        self._topology = None
        self._interpretation = None
        self._error = None
        self._decay_elapsed = 0.0
        self._paused = False

    def _on_progress(self, event: ProgressEvent) -> None:
        # a superseded generation may still be running on the executor
        if event.request is not None and event.request != self._request:
            return
        if self._phase == Phase.COLLAPSING and self._phase_started is None:
            self._status = event.message


def _fraction(elapsed: float, duration: float) -> float:
    return 1.0 if duration <= 0 else min(1.0, elapsed / duration)
