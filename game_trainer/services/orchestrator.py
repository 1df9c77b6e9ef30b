"""Phased background orchestrator for collection, training and analysis cycles.

Each cycle runs the phases ``GAME_AI -> AUXILIARY_1 -> AUXILIARY_2 -> OPTIMIZE``.
A phase is either ``WORK`` (an async handler) or ``NOOP`` (a timed pause that
honours the stop signal). A phase that raises abandons its cycle; the error is
logged as a :class:`PhaseFailure`, a fixed backoff is awaited and the next cycle
starts from ``GAME_AI``. Only a stop request or task cancellation ends the run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
import logging
from pathlib import Path
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from game_trainer import constants
from game_trainer.algorithms.policies import HeuristicPolicy
from game_trainer.algorithms.qlearning import QLearningConfig, QLearningTrainer
from game_trainer.config.settings import load_orchestrator_profile
from game_trainer.core.data_model import Episode
from game_trainer.core.errors import InvalidDimension, IOFailure, ParseFailure, PhaseFailure
from game_trainer.core.experience_store import CollectionSession, ExperienceStore
from game_trainer.logging_config.helpers import LogConstantMixin, log_constant
from game_trainer.logging_config.log_constants import (
    LOG_CONFIG_LOADED,
    LOG_CONFIG_WARNING,
    LOG_ORCHESTRATOR_BACKOFF,
    LOG_ORCHESTRATOR_CYCLE_COMPLETED,
    LOG_ORCHESTRATOR_PHASE_COMPLETED,
    LOG_ORCHESTRATOR_PHASE_FAILED,
    LOG_ORCHESTRATOR_PHASE_STARTED,
    LOG_ORCHESTRATOR_PROGRESS,
    LOG_ORCHESTRATOR_SLOT_TRAINED,
    LOG_ORCHESTRATOR_STARTED,
    LOG_ORCHESTRATOR_STOP_REQUESTED,
    LOG_ORCHESTRATOR_STOPPED,
    LOG_ORCHESTRATOR_TRANSITION,
    LOG_REGISTRY_MODEL_UNREADABLE,
)
from game_trainer.services.analyzer import DataAnalyzer
from game_trainer.services.collector import EpisodeCollector
from game_trainer.services.simulation import SimulatedGame
from game_trainer.storage.coordinator import StorageCoordinator
from game_trainer.storage.episodes import EpisodePersistence
from game_trainer.storage.models import ModelRegistry

_LOGGER = logging.getLogger(__name__)

REPORT_FILENAME = "training_report.json"


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RUNNING_PHASE = "running_phase"
    COOLDOWN = "cooldown"
    STOPPED = "stopped"


class Phase(str, Enum):
    GAME_AI = "GAME_AI"
    AUXILIARY_1 = "AUXILIARY_1"
    AUXILIARY_2 = "AUXILIARY_2"
    OPTIMIZE = "OPTIMIZE"


PHASE_ORDER: Tuple[Phase, ...] = (Phase.GAME_AI, Phase.AUXILIARY_1, Phase.AUXILIARY_2, Phase.OPTIMIZE)


class PhaseKind(str, Enum):
    WORK = "work"
    NOOP = "noop"


_TRANSITIONS: Dict[OrchestratorState, frozenset[OrchestratorState]] = {
    OrchestratorState.IDLE: frozenset({OrchestratorState.RUNNING_PHASE, OrchestratorState.STOPPED}),
    OrchestratorState.RUNNING_PHASE: frozenset(
        {OrchestratorState.RUNNING_PHASE, OrchestratorState.COOLDOWN, OrchestratorState.STOPPED}
    ),
    OrchestratorState.COOLDOWN: frozenset({OrchestratorState.RUNNING_PHASE, OrchestratorState.STOPPED}),
    OrchestratorState.STOPPED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class PhaseSpec:
    phase: Phase
    kind: PhaseKind = PhaseKind.WORK
    duration_s: float = 0.0


@dataclass(frozen=True, slots=True)
class Transition:
    source: OrchestratorState
    target: OrchestratorState
    phase: Optional[Phase]
    cycle: int
    at: datetime


@dataclass(frozen=True, slots=True)
class OrchestratorSummary:
    cycles_completed: int
    cycles_failed: int
    episodes_generated: int
    total_runtime_s: float

    @property
    def cycles_per_hour(self) -> float:
        if self.total_runtime_s <= 0:
            return 0.0
        return self.cycles_completed / self.total_runtime_s * 3600.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycles_completed": self.cycles_completed,
            "cycles_failed": self.cycles_failed,
            "episodes_generated": self.episodes_generated,
            "total_runtime_s": self.total_runtime_s,
            "cycles_per_hour": self.cycles_per_hour,
        }


def default_phases() -> Dict[Phase, PhaseSpec]:
    return {
        Phase.GAME_AI: PhaseSpec(Phase.GAME_AI),
        Phase.AUXILIARY_1: PhaseSpec(Phase.AUXILIARY_1, PhaseKind.NOOP, constants.DEFAULT_NOOP_PHASE_S),
        Phase.AUXILIARY_2: PhaseSpec(Phase.AUXILIARY_2, PhaseKind.NOOP, constants.DEFAULT_NOOP_PHASE_S),
        Phase.OPTIMIZE: PhaseSpec(Phase.OPTIMIZE),
    }


def _parse_phase_spec(phase: Phase, raw: Any, fallback: PhaseSpec) -> PhaseSpec:
    if isinstance(raw, str):
        kind = PhaseKind(raw.strip().lower())
        duration = fallback.duration_s or constants.DEFAULT_NOOP_PHASE_S
        return PhaseSpec(phase, kind, duration if kind is PhaseKind.NOOP else 0.0)
    if isinstance(raw, Mapping):
        kind = PhaseKind(str(raw.get("kind", fallback.kind.value)).strip().lower())
        duration = float(raw.get("duration_s", fallback.duration_s or constants.DEFAULT_NOOP_PHASE_S))
        if duration < 0:
            raise ValueError(f"{phase.value}.duration_s must be >= 0")
        return PhaseSpec(phase, kind, duration if kind is PhaseKind.NOOP else 0.0)
    raise ValueError(f"Phase {phase.value} must be 'work', 'noop' or a mapping")


def _parse_slots(raw: Any) -> Tuple[Tuple[str, float], ...]:
    if isinstance(raw, Mapping):
        slots = tuple((str(name), float(scale)) for name, scale in raw.items())
    elif isinstance(raw, (list, tuple)):
        slots = tuple((str(name), 1.0) for name in raw)
    else:
        raise ValueError("model_slots must be a list of names or a mapping of name to reward scale")
    if not slots:
        raise ValueError("model_slots must name at least one slot")
    return slots


@dataclass(frozen=True)
class OrchestratorConfig:
    """Cycle plan and pacing for :class:`PhaseOrchestrator`."""

    episodes_per_cycle: int = constants.DEFAULT_EPISODES_PER_CYCLE
    cooldown_s: float = constants.DEFAULT_COOLDOWN_S
    backoff_s: float = constants.DEFAULT_BACKOFF_S
    max_cycles: Optional[int] = None
    model_slots: Tuple[Tuple[str, float], ...] = constants.DEFAULT_MODEL_SLOTS
    keep_recent: Optional[int] = constants.DEFAULT_KEEP_RECENT
    phases: Mapping[Phase, PhaseSpec] = field(default_factory=default_phases)
    progress_every: int = constants.DEFAULT_ORCHESTRATOR_PROGRESS_EVERY
    min_steps: int = constants.DEFAULT_MIN_EPISODE_STEPS
    max_steps: int = constants.DEFAULT_MAX_EPISODE_STEPS
    episode_delay_s: float = constants.DEFAULT_EPISODE_DELAY_S
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.episodes_per_cycle < 1:
            raise ValueError("episodes_per_cycle must be >= 1")
        if self.cooldown_s < 0 or self.backoff_s < 0:
            raise ValueError("cooldown_s and backoff_s must be >= 0")
        if self.max_cycles is not None and self.max_cycles < 1:
            raise ValueError("max_cycles must be >= 1 when set")
        if self.keep_recent is not None and self.keep_recent < 0:
            raise ValueError("keep_recent must be >= 0 when set")
        missing = [phase.value for phase in PHASE_ORDER if phase not in self.phases]
        if missing:
            raise ValueError(f"phases missing: {', '.join(missing)}")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "OrchestratorConfig":
        """Build a config from a profile mapping; unknown keys are logged and ignored."""

        if not data:
            return cls()
        defaults = cls()
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "phases":
                phases = dict(defaults.phases)
                for name, raw in (value or {}).items():
                    phase = Phase(str(name).upper())
                    phases[phase] = _parse_phase_spec(phase, raw, phases[phase])
                kwargs["phases"] = phases
            elif key == "model_slots":
                kwargs["model_slots"] = _parse_slots(value)
            elif key in {"episodes_per_cycle", "progress_every", "min_steps", "max_steps"}:
                kwargs[key] = int(value)
            elif key in {"cooldown_s", "backoff_s", "episode_delay_s"}:
                kwargs[key] = float(value)
            elif key in {"max_cycles", "keep_recent", "seed"}:
                kwargs[key] = None if value is None else int(value)
            else:
                log_constant(_LOGGER, LOG_CONFIG_WARNING, message=f"unknown orchestrator option '{key}'")
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, profile: str = "default", path: Optional[Path] = None) -> "OrchestratorConfig":
        config = cls.from_dict(load_orchestrator_profile(profile, path=path))
        log_constant(
            _LOGGER,
            LOG_CONFIG_LOADED,
            extra={"profile": profile, "episodes_per_cycle": config.episodes_per_cycle, "max_cycles": config.max_cycles},
        )
        return config

    def with_overrides(self, **changes: Any) -> "OrchestratorConfig":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


@dataclass
class CycleContext:
    """State shared between the phases of one cycle."""

    cycle: int
    stop_event: asyncio.Event
    batch: List[Episode] = field(default_factory=list)


PhaseHandler = Callable[[CycleContext], Awaitable[None]]


def _scaled(episodes: Sequence[Episode], scale: float) -> List[Episode]:
    if scale == 1.0:
        return list(episodes)
    scaled: List[Episode] = []
    for episode in episodes:
        experiences = tuple(replace(exp, reward=exp.reward * scale) for exp in episode.experiences)
        scaled.append(
            Episode.from_experiences(
                episode.episode_number,
                experiences,
                session_id=episode.session_id,
                start_time=episode.start_time,
                end_time=episode.end_time,
            )
        )
    return scaled


class PhaseOrchestrator(LogConstantMixin):
    """Supervises repeating collection/training/analysis cycles."""

    def __init__(
        self,
        config: OrchestratorConfig,
        *,
        episodes: EpisodePersistence,
        registry: ModelRegistry,
        reports_dir: Path,
        qlearning: Optional[QLearningConfig] = None,
        handlers: Optional[Mapping[Phase, PhaseHandler]] = None,
    ) -> None:
        self.config = config
        self.episodes = episodes
        self.registry = registry
        self.reports_dir = Path(reports_dir)
        self.qlearning = qlearning or QLearningConfig()
        self.coordinator = StorageCoordinator(episodes, registry)
        self.analyzer = DataAnalyzer(self.qlearning.action_space_size)
        self._logger = logging.getLogger(__name__)
        self._rng = random.Random(config.seed)
        self._stop_event = asyncio.Event()
        self._state = OrchestratorState.IDLE
        self._phase: Optional[Phase] = None
        self._cycle = 0
        self.transitions: List[Transition] = []
        self.failures: List[PhaseFailure] = []
        self.summary: Optional[OrchestratorSummary] = None
        self._episodes_generated = 0
        self._slot_trainers: Dict[str, QLearningTrainer] = {}

        self._handlers: Dict[Phase, PhaseHandler] = {
            Phase.GAME_AI: self._game_ai_phase,
            Phase.OPTIMIZE: self._optimize_phase,
        }
        if handlers:
            self._handlers.update(handlers)
        for phase, spec in config.phases.items():
            if spec.kind is PhaseKind.WORK and phase not in self._handlers:
                raise ValueError(f"Phase {phase.value} is WORK but has no handler")

        self._session = CollectionSession()
        store = ExperienceStore(
            self._session,
            state_size=self.qlearning.state_space_size,
            action_size=self.qlearning.action_space_size,
        )
        game = SimulatedGame(
            state_size=self.qlearning.state_space_size,
            action_size=self.qlearning.action_space_size,
            rng=random.Random(self._rng.random()),
            min_steps=config.min_steps,
            max_steps=config.max_steps,
        )
        self.collector = EpisodeCollector(
            game,
            store,
            self.coordinator,
            HeuristicPolicy(self.qlearning.action_space_size, rng=random.Random(self._rng.random())),
            episode_delay_s=config.episode_delay_s,
        )

    # ------------------------------------------------------------------
    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def current_phase(self) -> Optional[Phase]:
        return self._phase

    @property
    def episodes_generated(self) -> int:
        return self._episodes_generated

    @property
    def slot_trainers(self) -> Mapping[str, QLearningTrainer]:
        """Live trainer per model slot; tables carry over from cycle to cycle."""

        return dict(self._slot_trainers)

    def request_stop(self) -> None:
        if not self._stop_event.is_set():
            self.log_constant(LOG_ORCHESTRATOR_STOP_REQUESTED, extra={"cycle": self._cycle})
        self._stop_event.set()

    def _transition(self, target: OrchestratorState, phase: Optional[Phase] = None) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal orchestrator transition {self._state.value} -> {target.value}")
        record = Transition(self._state, target, phase, self._cycle, datetime.now(timezone.utc))
        self.transitions.append(record)
        self._state = target
        self._phase = phase
        self.log_constant(
            LOG_ORCHESTRATOR_TRANSITION,
            extra={
                "source": record.source.value,
                "target": target.value,
                "phase": phase.value if phase else None,
                "cycle": self._cycle,
            },
        )

    async def _pause(self, seconds: float) -> None:
        if seconds <= 0 or self._stop_event.is_set():
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    async def run(self, stop_event: Optional[asyncio.Event] = None) -> OrchestratorSummary:
        """Run cycles until stopped, cancelled or ``max_cycles`` is reached.

        Passing ``stop_event`` lets the caller share a stop signal (for example
        one wired to SIGINT). Task cancellation also ends in ``STOPPED``; the
        summary is stored on ``self.summary`` before ``CancelledError`` is
        re-raised.
        """

        if self._state is not OrchestratorState.IDLE:
            raise RuntimeError("PhaseOrchestrator.run() may only be called once")
        if stop_event is not None:
            self._stop_event = stop_event

        started = time.monotonic()
        completed = 0
        failed = 0
        max_cycles = self.config.max_cycles
        self.log_constant(
            LOG_ORCHESTRATOR_STARTED,
            extra={
                "session_id": self._session.session_id,
                "max_cycles": max_cycles,
                "episodes_per_cycle": self.config.episodes_per_cycle,
            },
        )
        try:
            while not self._stop_event.is_set():
                if max_cycles is not None and self._cycle >= max_cycles:
                    break
                self._cycle += 1
                outcome = await self._run_cycle(self._cycle)
                if outcome is None:
                    break
                if outcome:
                    completed += 1
                    self.log_constant(
                        LOG_ORCHESTRATOR_CYCLE_COMPLETED,
                        extra={"cycle": self._cycle, "episodes_generated": self._episodes_generated},
                    )
                    if completed % self.config.progress_every == 0:
                        elapsed = time.monotonic() - started
                        self.log_constant(
                            LOG_ORCHESTRATOR_PROGRESS,
                            extra={
                                "cycles_completed": completed,
                                "cycles_failed": failed,
                                "elapsed_s": round(elapsed, 1),
                                "cycles_per_hour": round(completed / elapsed * 3600.0, 2) if elapsed > 0 else 0.0,
                            },
                        )
                else:
                    failed += 1
                if max_cycles is not None and self._cycle >= max_cycles:
                    break
                if self._stop_event.is_set():
                    break
                self._transition(OrchestratorState.COOLDOWN)
                if outcome:
                    await self._pause(self.config.cooldown_s)
                else:
                    self.log_constant(
                        LOG_ORCHESTRATOR_BACKOFF,
                        extra={"cycle": self._cycle, "backoff_s": self.config.backoff_s},
                    )
                    await self._pause(self.config.backoff_s)
        finally:
            self.summary = OrchestratorSummary(
                cycles_completed=completed,
                cycles_failed=failed,
                episodes_generated=self._episodes_generated,
                total_runtime_s=time.monotonic() - started,
            )
            self._transition(OrchestratorState.STOPPED)
            self.log_constant(LOG_ORCHESTRATOR_STOPPED, extra=self.summary.to_dict())
        return self.summary

    async def _run_cycle(self, cycle: int) -> Optional[bool]:
        """Run one cycle; ``True`` completed, ``False`` failed, ``None`` stopped."""

        ctx = CycleContext(cycle=cycle, stop_event=self._stop_event)
        for phase in PHASE_ORDER:
            if self._stop_event.is_set():
                return None
            spec = self.config.phases[phase]
            self._transition(OrchestratorState.RUNNING_PHASE, phase)
            self.log_constant(
                LOG_ORCHESTRATOR_PHASE_STARTED,
                extra={"phase": phase.value, "kind": spec.kind.value, "cycle": cycle},
            )
            phase_started = time.monotonic()
            try:
                if spec.kind is PhaseKind.NOOP:
                    await self._pause(spec.duration_s)
                else:
                    await self._handlers[phase](ctx)
            except Exception as exc:  # noqa: BLE001
                failure = PhaseFailure(phase.value, cycle, exc)
                self.failures.append(failure)
                self.log_constant(
                    LOG_ORCHESTRATOR_PHASE_FAILED,
                    message=str(failure),
                    extra={"phase": phase.value, "cycle": cycle},
                    exc_info=exc,
                )
                return False
            self.log_constant(
                LOG_ORCHESTRATOR_PHASE_COMPLETED,
                extra={
                    "phase": phase.value,
                    "cycle": cycle,
                    "duration_s": round(time.monotonic() - phase_started, 3),
                },
            )
        return True

    # ------------------------------------------------------------------
    def _slot_trainer(self, name: str, seed: float) -> QLearningTrainer:
        """Build the long-lived trainer for ``name``, resuming from the stored best model."""

        trainer = QLearningTrainer(self.qlearning, rng=random.Random(seed), name=name)
        try:
            artifact = self.registry.load_best_model(name)
            if artifact is not None:
                trainer.load_model_data(artifact.model_data)
        except (ParseFailure, IOFailure, InvalidDimension) as exc:
            self.log_constant(
                LOG_REGISTRY_MODEL_UNREADABLE,
                message=f"starting {name} from an empty table: {exc}",
                extra={"model_name": name},
            )
            trainer = QLearningTrainer(self.qlearning, rng=random.Random(seed), name=name)
        return trainer

    async def _game_ai_phase(self, ctx: CycleContext) -> None:
        summary = await self.collector.collect_episodes(
            self.config.episodes_per_cycle, ctx.stop_event, retain=True
        )
        self._episodes_generated += summary.episodes
        ctx.batch = list(summary.batch)
        if ctx.stop_event.is_set() or not ctx.batch:
            return

        slots = self.config.model_slots
        for name, _ in slots:
            if name not in self._slot_trainers:
                self._slot_trainers[name] = await asyncio.to_thread(self._slot_trainer, name, self._rng.random())
        trainers = [self._slot_trainers[name] for name, _ in slots]
        await asyncio.gather(
            *(
                asyncio.to_thread(trainer.train_on_episodes, _scaled(ctx.batch, scale), strict=False)
                for trainer, (_, scale) in zip(trainers, slots)
            )
        )
        for trainer in trainers:
            score = trainer.get_average_reward()
            path = await self.coordinator.save_best_model(trainer.name, trainer.get_model_data(), score)
            self.log_constant(
                LOG_ORCHESTRATOR_SLOT_TRAINED,
                extra={
                    "model_name": trainer.name,
                    "cycle": ctx.cycle,
                    "score": score,
                    "states": trainer.table_size,
                    "path": str(path) if path else None,
                },
            )

    async def _optimize_phase(self, ctx: CycleContext) -> None:
        analyzer = self.analyzer

        def _analyze() -> Path:
            metrics = analyzer.analyze_data(self.episodes)
            curve = list(analyzer.generate_learning_curve(self.episodes))
            rewards = analyzer.analyze_action_rewards(self.episodes)
            return analyzer.export_report(metrics, self.reports_dir / REPORT_FILENAME, curve, rewards)

        await asyncio.to_thread(_analyze)
        if self.config.keep_recent is not None:
            await self.coordinator.prune(self.config.keep_recent)


__all__ = [
    "OrchestratorConfig",
    "OrchestratorState",
    "OrchestratorSummary",
    "Phase",
    "PhaseKind",
    "PhaseSpec",
    "PhaseOrchestrator",
    "PHASE_ORDER",
    "Transition",
    "CycleContext",
    "default_phases",
]
