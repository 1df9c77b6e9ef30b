from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Dict, List

import pytest

from game_trainer.algorithms.qlearning import QLearningConfig
from game_trainer.logging_config.log_constants import LOG_CONFIG_WARNING, LOG_ORCHESTRATOR_PHASE_FAILED
from game_trainer.services.orchestrator import (
    _TRANSITIONS,
    CycleContext,
    OrchestratorConfig,
    OrchestratorState,
    Phase,
    PhaseKind,
    PhaseOrchestrator,
    PhaseSpec,
    REPORT_FILENAME,
)
from game_trainer.storage.episodes import EpisodePersistence
from game_trainer.storage.models import ModelRegistry


def _phases(noop_s: float = 0.0) -> Dict[Phase, PhaseSpec]:
    return {
        Phase.GAME_AI: PhaseSpec(Phase.GAME_AI),
        Phase.AUXILIARY_1: PhaseSpec(Phase.AUXILIARY_1, PhaseKind.NOOP, noop_s),
        Phase.AUXILIARY_2: PhaseSpec(Phase.AUXILIARY_2, PhaseKind.NOOP, noop_s),
        Phase.OPTIMIZE: PhaseSpec(Phase.OPTIMIZE),
    }


def _config(**overrides) -> OrchestratorConfig:
    options = {
        "episodes_per_cycle": 1,
        "cooldown_s": 0.0,
        "backoff_s": 0.0,
        "phases": _phases(),
        "episode_delay_s": 0.0,
        "min_steps": 3,
        "max_steps": 6,
        "seed": 11,
    }
    options.update(overrides)
    return OrchestratorConfig(**options)


class _RecordingHandlers:
    """Fake WORK phases that record which cycle called them."""

    def __init__(self) -> None:
        self.calls: List[tuple[Phase, int]] = []
        self.fail_cycles: set[int] = set()
        self.stop_on_cycle: int | None = None

    async def game_ai(self, ctx: CycleContext) -> None:
        self.calls.append((Phase.GAME_AI, ctx.cycle))
        if ctx.cycle in self.fail_cycles:
            raise RuntimeError("collection crashed")
        if self.stop_on_cycle == ctx.cycle:
            ctx.stop_event.set()

    async def optimize(self, ctx: CycleContext) -> None:
        self.calls.append((Phase.OPTIMIZE, ctx.cycle))

    def mapping(self) -> Dict[Phase, object]:
        return {Phase.GAME_AI: self.game_ai, Phase.OPTIMIZE: self.optimize}


def _orchestrator(tmp_path: Path, config: OrchestratorConfig, handlers=None, qlearning=None) -> PhaseOrchestrator:
    return PhaseOrchestrator(
        config,
        episodes=EpisodePersistence(tmp_path / "data"),
        registry=ModelRegistry(tmp_path / "models"),
        reports_dir=tmp_path / "reports",
        qlearning=qlearning,
        handlers=handlers.mapping() if handlers is not None else None,
    )


def _assert_valid_transitions(orchestrator: PhaseOrchestrator) -> None:
    previous = OrchestratorState.IDLE
    for record in orchestrator.transitions:
        assert record.source is previous
        assert record.target in _TRANSITIONS[record.source]
        previous = record.target
    assert previous is OrchestratorState.STOPPED


@pytest.mark.asyncio
async def test_runs_max_cycles_in_phase_order(tmp_path: Path) -> None:
    handlers = _RecordingHandlers()
    orchestrator = _orchestrator(tmp_path, _config(max_cycles=3), handlers)

    summary = await asyncio.wait_for(orchestrator.run(), timeout=5)

    assert summary.cycles_completed == 3
    assert summary.cycles_failed == 0
    assert handlers.calls == [(phase, cycle) for cycle in (1, 2, 3) for phase in (Phase.GAME_AI, Phase.OPTIMIZE)]
    assert orchestrator.state is OrchestratorState.STOPPED
    assert orchestrator.summary is summary
    _assert_valid_transitions(orchestrator)
    phases_seen = [t.phase for t in orchestrator.transitions if t.target is OrchestratorState.RUNNING_PHASE]
    assert phases_seen[:4] == [Phase.GAME_AI, Phase.AUXILIARY_1, Phase.AUXILIARY_2, Phase.OPTIMIZE]
    cooldowns = [t for t in orchestrator.transitions if t.target is OrchestratorState.COOLDOWN]
    assert len(cooldowns) == 2


@pytest.mark.asyncio
async def test_failed_phase_abandons_cycle_and_recovers(tmp_path: Path, caplog) -> None:
    handlers = _RecordingHandlers()
    handlers.fail_cycles = {1}
    orchestrator = _orchestrator(tmp_path, _config(max_cycles=3), handlers)

    caplog.set_level("ERROR")
    summary = await asyncio.wait_for(orchestrator.run(), timeout=5)

    assert summary.cycles_failed == 1
    assert summary.cycles_completed == 2
    assert (Phase.OPTIMIZE, 1) not in handlers.calls
    assert (Phase.GAME_AI, 2) in handlers.calls
    assert len(orchestrator.failures) == 1
    failure = orchestrator.failures[0]
    assert failure.phase == "GAME_AI"
    assert failure.cycle == 1
    assert isinstance(failure.cause, RuntimeError)
    assert "Phase GAME_AI failed in cycle 1" in str(failure)
    assert any(r.__dict__.get("log_code") == LOG_ORCHESTRATOR_PHASE_FAILED.code for r in caplog.records)
    _assert_valid_transitions(orchestrator)


@pytest.mark.asyncio
async def test_stop_event_ends_run_before_next_phase(tmp_path: Path) -> None:
    handlers = _RecordingHandlers()
    handlers.stop_on_cycle = 2
    orchestrator = _orchestrator(tmp_path, _config(), handlers)

    summary = await asyncio.wait_for(orchestrator.run(), timeout=5)

    assert summary.cycles_completed == 1
    assert handlers.calls[-1] == (Phase.GAME_AI, 2)
    assert orchestrator.state is OrchestratorState.STOPPED
    _assert_valid_transitions(orchestrator)


@pytest.mark.asyncio
async def test_request_stop_interrupts_noop_pause(tmp_path: Path) -> None:
    handlers = _RecordingHandlers()
    orchestrator = _orchestrator(tmp_path, _config(phases=_phases(noop_s=60.0)), handlers)

    task = asyncio.create_task(orchestrator.run())
    await asyncio.sleep(0.05)
    assert orchestrator.current_phase is Phase.AUXILIARY_1
    orchestrator.request_stop()
    summary = await asyncio.wait_for(task, timeout=5)

    assert summary.cycles_completed == 0
    assert orchestrator.state is OrchestratorState.STOPPED


@pytest.mark.asyncio
async def test_shared_stop_event_is_honoured(tmp_path: Path) -> None:
    handlers = _RecordingHandlers()
    orchestrator = _orchestrator(tmp_path, _config(cooldown_s=60.0), handlers)
    stop_event = asyncio.Event()

    task = asyncio.create_task(orchestrator.run(stop_event))
    await asyncio.sleep(0.05)
    assert orchestrator.state is OrchestratorState.COOLDOWN
    stop_event.set()
    summary = await asyncio.wait_for(task, timeout=5)

    assert summary.cycles_completed == 1
    _assert_valid_transitions(orchestrator)


@pytest.mark.asyncio
async def test_cancellation_still_reaches_stopped(tmp_path: Path) -> None:
    handlers = _RecordingHandlers()
    orchestrator = _orchestrator(tmp_path, _config(phases=_phases(noop_s=60.0)), handlers)

    task = asyncio.create_task(orchestrator.run())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert orchestrator.state is OrchestratorState.STOPPED
    assert orchestrator.summary is not None
    assert orchestrator.summary.cycles_completed == 0


@pytest.mark.asyncio
async def test_run_may_only_be_called_once(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, _config(max_cycles=1), _RecordingHandlers())
    await orchestrator.run()

    with pytest.raises(RuntimeError):
        await orchestrator.run()


@pytest.mark.asyncio
async def test_default_phases_collect_train_and_report(tmp_path: Path) -> None:
    orchestrator = _orchestrator(
        tmp_path,
        _config(max_cycles=1, episodes_per_cycle=2, keep_recent=1),
        qlearning=QLearningConfig(state_space_size=12),
    )

    summary = await asyncio.wait_for(orchestrator.run(), timeout=30)

    assert summary.cycles_completed == 1
    assert summary.episodes_generated == 2
    registry = orchestrator.registry
    assert sorted(m.model_name for m in registry.list_models()) == ["adversary", "auxiliary", "player"]
    report = json.loads((tmp_path / "reports" / REPORT_FILENAME).read_text(encoding="utf-8"))
    assert report["metrics"]["total_episodes"] == 2
    assert orchestrator.episodes.get_data_stats()[0] == 1


class _TrainerSnapshots:
    """OPTIMIZE stand-in that records each slot's trainer after every cycle."""

    def __init__(self) -> None:
        self.orchestrator: PhaseOrchestrator | None = None
        self.seen: List[tuple[int, int]] = []

    async def optimize(self, ctx: CycleContext) -> None:
        assert self.orchestrator is not None
        trainer = self.orchestrator.slot_trainers["player"]
        self.seen.append((id(trainer), trainer.metrics.experiences_processed))

    def mapping(self) -> Dict[Phase, object]:
        return {Phase.OPTIMIZE: self.optimize}


@pytest.mark.asyncio
async def test_slot_trainers_carry_learning_across_cycles(tmp_path: Path) -> None:
    snapshots = _TrainerSnapshots()
    orchestrator = _orchestrator(
        tmp_path,
        _config(max_cycles=2, episodes_per_cycle=2, model_slots=(("player", 1.0),)),
        snapshots,
        qlearning=QLearningConfig(state_space_size=12),
    )
    snapshots.orchestrator = orchestrator

    summary = await asyncio.wait_for(orchestrator.run(), timeout=30)

    assert summary.cycles_completed == 2
    (first_id, after_first), (second_id, after_second) = snapshots.seen
    assert first_id == second_id
    assert after_second > after_first > 0
    assert after_second == orchestrator.episodes.get_data_stats()[1]


def test_work_phase_without_handler_is_rejected(tmp_path: Path) -> None:
    phases = _phases()
    phases[Phase.AUXILIARY_1] = PhaseSpec(Phase.AUXILIARY_1, PhaseKind.WORK)

    with pytest.raises(ValueError):
        _orchestrator(tmp_path, _config(phases=phases))


def test_config_from_yaml_profile(tmp_path: Path) -> None:
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "fast:\n"
        "  episodes_per_cycle: 3\n"
        "  max_cycles: 2\n"
        "  model_slots: [player]\n"
        "  phases:\n"
        "    auxiliary_1: {kind: noop, duration_s: 0.5}\n"
        "    auxiliary_2: work\n",
        encoding="utf-8",
    )

    config = OrchestratorConfig.from_yaml("fast", path)

    assert config.episodes_per_cycle == 3
    assert config.max_cycles == 2
    assert config.model_slots == (("player", 1.0),)
    assert config.phases[Phase.AUXILIARY_1] == PhaseSpec(Phase.AUXILIARY_1, PhaseKind.NOOP, 0.5)
    assert config.phases[Phase.AUXILIARY_2].kind is PhaseKind.WORK


def test_config_unknown_profile_raises(tmp_path: Path) -> None:
    path = tmp_path / "profiles.yaml"
    path.write_text("default: {}\n", encoding="utf-8")

    with pytest.raises(ValueError):
        OrchestratorConfig.from_yaml("missing", path)


def test_config_unknown_keys_are_logged(caplog) -> None:
    caplog.set_level("WARNING")

    config = OrchestratorConfig.from_dict({"episodes_per_cycle": 4, "turbo": True})

    assert config.episodes_per_cycle == 4
    assert any(r.__dict__.get("log_code") == LOG_CONFIG_WARNING.code for r in caplog.records)


def test_config_overrides_skip_none() -> None:
    config = _config(max_cycles=5).with_overrides(max_cycles=None, episodes_per_cycle=7)

    assert config.max_cycles == 5
    assert config.episodes_per_cycle == 7


@pytest.mark.parametrize("options", [{"episodes_per_cycle": 0}, {"cooldown_s": -1.0}, {"max_cycles": 0}])
def test_config_validation(options) -> None:
    with pytest.raises(ValueError):
        _config(**options)
