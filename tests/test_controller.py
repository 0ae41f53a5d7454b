"""Tests for the assembly state machine, driven on a simulated clock."""

from concurrent.futures import Executor, Future

import numpy as np
import pytest

from conftest import FakeLLM
from semantic_assembly.assembly.controller import (
    GENERATING_STATUS,
    STABLE_STATUS,
    AssemblyController,
)
from semantic_assembly.config import Config, PoolConfig
from semantic_assembly.errors import InvalidInput
from semantic_assembly.models import Phase, Role

FPS = 30


def run_until(controller, phase, start=0.0, fps=FPS, limit=60.0):
    """Tick at ``fps`` until ``phase`` is reached; returns the simulated time."""
    now = start
    while now < start + limit:
        now += 1.0 / fps
        if controller.tick(now) == phase:
            return now
    raise AssertionError(f"never reached {phase.value}, stuck in {controller.phase.value}")


def run_for(controller, start, seconds, fps=FPS):
    now = start
    while now < start + seconds:
        now += 1.0 / fps
        controller.tick(now)
    return now


class ManualExecutor(Executor):
    """Queues submitted work until the test runs it."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as exc:
                future.set_exception(exc)


@pytest.fixture()
def controller(config, fake_llm):
    return AssemblyController(config, llm=fake_llm)


class TestForwardPath:
    def test_starts_idle(self, controller):
        assert controller.phase == Phase.IDLE
        assert not any(e.visible for e in controller.context.entities)

    def test_submit_enters_collapsing_immediately(self, controller):
        controller.submit_question("What is consciousness?", now=0.0)
        assert controller.phase == Phase.COLLAPSING
        assert controller.space is not None
        assert controller.space.question == "What is consciousness?"

    def test_reaches_observed_within_phase_durations(self, controller, config):
        controller.submit_question("What is consciousness?", now=0.0)
        t = run_until(controller, Phase.OBSERVED)

        p = config.phases
        expected = p.collapse + p.attract + p.connect + p.settle
        assert expected - 1e-6 <= t <= expected + 5.0 / FPS

    def test_phases_in_order(self, controller):
        controller.submit_question("What is consciousness?", now=0.0)
        seen = [controller.phase]
        now = 0.0
        while controller.phase != Phase.OBSERVED:
            now += 1.0 / FPS
            phase = controller.tick(now)
            if phase != seen[-1]:
                seen.append(phase)
        assert seen == [
            Phase.COLLAPSING, Phase.ATTRACTING, Phase.CONNECTING,
            Phase.SETTLING, Phase.OBSERVED,
        ]

    def test_observed_has_topology_and_interpretation(self, controller, fake_llm):
        controller.submit_question("What is consciousness?", now=0.0)
        run_until(controller, Phase.OBSERVED)

        topology = controller.topology
        assert topology is not None
        assert topology.node_count == len(controller.context.entities)
        assert topology.edge_count == len(controller.context.edges)
        assert controller.interpretation.text == fake_llm.interpretation
        assert not controller.interpretation.fallback
        assert controller.status == STABLE_STATUS

    def test_entities_settle_near_targets(self, controller):
        controller.submit_question("What is consciousness?", now=0.0)
        t = run_until(controller, Phase.OBSERVED, fps=60)
        run_for(controller, t, 1.0, fps=60)

        errors = [
            np.linalg.norm(e.position - e.target_position)
            for e in controller.context.targeted
        ]
        assert float(np.mean(errors)) < 1.0

    def test_all_entities_visible_after_collapse(self, controller, config):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.ATTRACTING)
        entities = controller.context.entities
        assert all(e.visible for e in entities)
        assert all(e.scale == pytest.approx(1.0) for e in entities)

    def test_edges_only_form_while_connecting(self, controller):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.CONNECTING)
        assert controller.context.edges == []
        t = run_until(controller, Phase.SETTLING)
        formed = len(controller.context.edges)
        run_until(controller, Phase.OBSERVED, start=t)
        assert len(controller.context.edges) == formed
        assert all(edge.formed for edge in controller.context.edges)

    def test_simple_mode_without_llm(self):
        config = Config(simple_mode=True, seed=2, pool=PoolConfig(size=60))
        controller = AssemblyController(config)
        controller.submit_question("What is time?", now=0.0)
        run_until(controller, Phase.OBSERVED)
        assert controller.space.mode == "simple"
        assert controller.interpretation.fallback
        assert all(e.word is None for e in controller.context.entities)


class TestInput:
    def test_empty_question_rejected_without_state_change(self, controller):
        with pytest.raises(InvalidInput):
            controller.submit_question("   ", now=0.0)
        assert controller.phase == Phase.IDLE

    def test_empty_question_mid_assembly_keeps_phase(self, controller):
        controller.submit_question("q", now=0.0)
        t = run_until(controller, Phase.CONNECTING)
        with pytest.raises(InvalidInput):
            controller.submit_question("", now=t)
        assert controller.phase == Phase.CONNECTING


class TestPreemption:
    def test_new_question_restarts_from_collapsing(self, controller):
        controller.submit_question("first", now=0.0)
        t = run_until(controller, Phase.CONNECTING)
        run_for(controller, t, 1.0)

        controller.submit_question("second", now=t + 1.0)

        assert controller.phase == Phase.COLLAPSING
        assert controller.question == "second"
        assert controller.context.edges == []
        assert controller.topology is None
        run_until(controller, Phase.OBSERVED, start=t + 1.0)
        assert controller.space.question == "second"

    def test_preempt_from_decaying_clears_pause(self, controller):
        controller.submit_question("first", now=0.0)
        t = run_until(controller, Phase.DECAYING)
        controller.toggle_pause()
        assert controller.paused

        controller.submit_question("second", now=t)
        assert controller.phase == Phase.COLLAPSING
        assert not controller.paused
        assert controller.decay_progress == 0.0

    def test_recent_question_adds_context(self, controller, fake_llm):
        controller.submit_question("first", now=0.0)
        t = run_until(controller, Phase.CONNECTING)
        controller.submit_question("second", now=t)
        assert "Previous context" in fake_llm.calls("words")[-1]
        assert '"first"' in fake_llm.calls("words")[-1]

    def test_stale_context_is_dropped(self, controller, fake_llm, config):
        controller.submit_question("first", now=0.0)
        controller.submit_question("second", now=config.phases.dwell + config.phases.decay)
        assert "Previous context" not in fake_llm.calls("words")[-1]

    def test_new_assembly_overwrites_entity_fields(self, controller, fake_llm):
        controller.submit_question("first", now=0.0)
        t = run_until(controller, Phase.OBSERVED)

        fake_llm.words = ["alpha", "beta", "gamma"]
        controller.submit_question("second", now=t)

        entities = controller.context.entities
        assert [e.word for e in entities if e.word] == ["alpha", "beta", "gamma"]
        assert [e.role for e in entities[:4]] == [Role.CORE] * 3 + [Role.SATELLITE]
        assert all(e.target_position is not None for e in entities)


class TestFailure:
    def test_word_failure_aborts_then_returns_to_idle(self, config):
        controller = AssemblyController(config, llm=FakeLLM(fail_on=("words",)))
        controller.submit_question("q", now=0.0)

        assert controller.phase == Phase.ABORTED
        assert controller.status.startswith("Assembly failed:")
        assert controller.error

        assert controller.tick(config.phases.abort_delay - 0.1) == Phase.ABORTED
        assert controller.tick(config.phases.abort_delay) == Phase.IDLE
        assert not any(e.visible for e in controller.context.entities)

    def test_recovers_after_abort(self, config):
        llm = FakeLLM(fail_on=("words",))
        controller = AssemblyController(config, llm=llm)
        controller.submit_question("q", now=0.0)
        llm.fail_on = ()
        controller.submit_question("q", now=0.5)
        assert controller.phase == Phase.COLLAPSING
        assert controller.error is None

    def test_interpretation_failure_uses_fallback(self, config):
        controller = AssemblyController(config, llm=FakeLLM(fail_on=("interpretation",)))
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.OBSERVED)
        assert controller.phase == Phase.OBSERVED
        assert controller.interpretation.fallback
        assert controller.interpretation.text.startswith("The topology reveals")

    def test_rating_failures_do_not_abort(self, config):
        controller = AssemblyController(config, llm=FakeLLM(fail_on=("similarity", "importance")))
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.OBSERVED)
        assert controller.space.weights == [2.0] * len(controller.space.words)


class TestDecay:
    def test_observed_decays_back_to_idle(self, controller, config):
        controller.submit_question("q", now=0.0)
        t_obs = run_until(controller, Phase.OBSERVED)
        t_decay = run_until(controller, Phase.DECAYING, start=t_obs)
        assert t_decay - t_obs == pytest.approx(config.phases.dwell, abs=2.0 / FPS)

        t_idle = run_until(controller, Phase.IDLE, start=t_decay)
        assert t_idle - t_decay == pytest.approx(config.phases.decay, abs=2.0 / FPS)

        ctx = controller.context
        assert ctx.edges == []
        assert ctx.space is None
        assert controller.topology is None
        assert all(not e.visible and e.target_position is None for e in ctx.entities)

    def test_idle_entities_rest_on_shell(self, controller, config):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.IDLE)
        radii = [np.linalg.norm(e.position) for e in controller.context.entities]
        assert min(radii) >= config.pool.rest_radius_min - 1e-9
        assert max(radii) <= config.pool.rest_radius_max + 1e-9

    def test_edges_fade(self, controller):
        controller.submit_question("q", now=0.0)
        t = run_until(controller, Phase.DECAYING)
        run_for(controller, t, 2.0)
        for edge in controller.context.edges:
            assert edge.opacity < edge.base_opacity or edge.base_opacity == 0.0


class TestPause:
    def test_pause_freezes_decay(self, controller):
        controller.submit_question("q", now=0.0)
        t = run_until(controller, Phase.DECAYING)
        t = run_for(controller, t, 0.5)

        assert controller.toggle_pause() is True
        progress = controller.decay_progress
        positions = [e.position.copy() for e in controller.context.entities]
        assert progress > 0

        t = run_for(controller, t, 10.0)
        assert controller.phase == Phase.DECAYING
        assert controller.decay_progress == progress
        for before, entity in zip(positions, controller.context.entities):
            np.testing.assert_array_equal(before, entity.position)

        assert controller.toggle_pause() is False
        run_until(controller, Phase.IDLE, start=t)

    def test_toggle_ignored_outside_decaying(self, controller):
        assert controller.toggle_pause() is False
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.OBSERVED)
        assert controller.toggle_pause() is False
        assert not controller.paused


class TestReset:
    def test_reset_returns_to_idle(self, controller):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.CONNECTING)
        controller.reset()
        assert controller.phase == Phase.IDLE
        assert controller.context.edges == []
        assert not any(e.visible for e in controller.context.entities)


class TestHover:
    def test_entity_at_returns_topmost_entity(self, controller):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.OBSERVED)

        top = max(controller.context.entities, key=lambda e: e.position[2])
        origin = top.position + np.array([0.0, 0.0, 10.0])
        info = controller.entity_at(origin, (0.0, 0.0, -1.0))

        assert info is not None
        assert info.entity_id == top.id

    def test_no_hover_before_observed(self, controller):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.CONNECTING)
        entity = controller.context.entities[0]
        assert controller.entity_at(entity.position + np.array([0, 0, 5.0]), (0, 0, -1)) is None


class TestSnapshot:
    def test_snapshot_reflects_state(self, controller):
        controller.submit_question("q", now=0.0)
        run_until(controller, Phase.OBSERVED)
        snap = controller.snapshot()
        assert snap.phase == Phase.OBSERVED
        assert snap.status == controller.status
        assert len(snap.entities) == len(controller.context.entities)
        assert len(snap.edges) == len(controller.context.edges)


class TestExecutor:
    def test_generation_runs_on_executor(self, config, fake_llm):
        executor = ManualExecutor()
        controller = AssemblyController(config, llm=fake_llm, executor=executor)
        controller.submit_question("q", now=0.0)

        assert controller.phase == Phase.COLLAPSING
        assert controller.status == GENERATING_STATUS
        assert controller.space is None
        controller.tick(1.0)
        assert controller.space is None

        executor.run_all()
        controller.tick(1.5)
        assert controller.space is not None
        t = run_until(controller, Phase.OBSERVED, start=1.5)
        assert controller.interpretation is None

        executor.run_all()
        controller.tick(t + 1.0 / FPS)
        assert controller.interpretation is not None
        assert controller.status == STABLE_STATUS

    def test_superseded_result_is_discarded(self, config, fake_llm):
        executor = ManualExecutor()
        controller = AssemblyController(config, llm=fake_llm, executor=executor)
        controller.submit_question("first", now=0.0)
        controller.submit_question("second", now=0.1)

        executor.run_all()
        controller.tick(0.2)
        assert controller.space.question == "second"
        assert len(fake_llm.calls("words")) == 1

    def test_superseded_generation_does_not_overwrite_status(self, config, fake_llm):
        executor = ManualExecutor()
        controller = AssemblyController(config, llm=fake_llm, executor=executor)
        controller.submit_question("first", now=0.0)
        # the first generation is already running, so cancelling it has no effect
        running, fn, args, kwargs = executor.pending.pop()
        assert running.set_running_or_notify_cancel()
        controller.submit_question("second", now=0.1)

        fn(*args, **kwargs)
        assert controller.status == GENERATING_STATUS

        executor.run_all()
        assert controller.status == "Space generation complete!"
        controller.tick(0.2)
        assert controller.space.question == "second"

    def test_executor_failure_aborts(self, config):
        executor = ManualExecutor()
        controller = AssemblyController(config, llm=FakeLLM(fail_on=("words",)), executor=executor)
        controller.submit_question("q", now=0.0)
        executor.run_all()
        assert controller.tick(0.1) == Phase.ABORTED
        assert controller.tick(0.2 + config.phases.abort_delay) == Phase.IDLE
