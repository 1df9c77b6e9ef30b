"""Automated episode collection from the simulated game."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from game_trainer import constants
from game_trainer.algorithms.policies import ActionPolicy
from game_trainer.core.data_model import Episode
from game_trainer.core.experience_store import ExperienceStore
from game_trainer.logging_config.helpers import LogConstantMixin
from game_trainer.logging_config.log_constants import (
    LOG_COLLECTOR_COMPLETED,
    LOG_COLLECTOR_PROGRESS,
    LOG_COLLECTOR_STARTED,
    LOG_COLLECTOR_STOPPED,
)
from game_trainer.services.simulation import SimulatedGame
from game_trainer.storage.coordinator import StorageCoordinator


@dataclass(frozen=True, slots=True)
class CollectionSummary:
    episodes: int
    experiences: int
    elapsed_s: float
    stopped_early: bool = False
    batch: Tuple[Episode, ...] = ()

    @property
    def experiences_per_hour(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.experiences / self.elapsed_s * 3600.0


class EpisodeCollector(LogConstantMixin):
    """Plays simulated episodes and persists each one through the coordinator.

    Episodes are generated in a worker thread so the event loop keeps
    observing ``stop_event`` between episodes.
    """

    def __init__(
        self,
        game: SimulatedGame,
        store: ExperienceStore,
        coordinator: StorageCoordinator,
        policy: ActionPolicy,
        *,
        episode_delay_s: float = constants.DEFAULT_EPISODE_DELAY_S,
        progress_every: int = constants.DEFAULT_COLLECTOR_PROGRESS_EVERY,
    ) -> None:
        self.game = game
        self.store = store
        self.coordinator = coordinator
        self.policy = policy
        self.episode_delay_s = max(0.0, episode_delay_s)
        self.progress_every = max(1, progress_every)
        self._logger = logging.getLogger(__name__)

    def log_context(self) -> Dict[str, Any]:
        return {"session_id": self.store.session.session_id}

    async def _pause(self, stop_event: asyncio.Event, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _collect(
        self,
        stop_event: asyncio.Event,
        *,
        max_episodes: Optional[int],
        deadline: Optional[float],
        retain: bool = False,
    ) -> CollectionSummary:
        started = time.monotonic()
        episodes = 0
        kept: List[Episode] = []
        experiences = 0
        self.log_constant(
            LOG_COLLECTOR_STARTED,
            extra={"max_episodes": max_episodes, "deadline_s": deadline},
        )

        def _more() -> bool:
            if stop_event.is_set():
                return False
            if max_episodes is not None and episodes >= max_episodes:
                return False
            if deadline is not None and time.monotonic() - started >= deadline:
                return False
            return True

        while _more():
            episode = await asyncio.to_thread(self.game.run_episode, self.policy, self.store)
            await self.coordinator.save_episode(episode)
            episodes += 1
            experiences += episode.length
            if retain:
                kept.append(episode)
            if episodes % self.progress_every == 0:
                self.log_constant(
                    LOG_COLLECTOR_PROGRESS,
                    extra={
                        "episodes": episodes,
                        "experiences": experiences,
                        "elapsed_s": round(time.monotonic() - started, 2),
                    },
                )
            await self._pause(stop_event, self.episode_delay_s)

        stopped_early = stop_event.is_set()
        summary = CollectionSummary(
            episodes=episodes,
            experiences=experiences,
            elapsed_s=time.monotonic() - started,
            stopped_early=stopped_early,
            batch=tuple(kept),
        )
        if stopped_early:
            self.log_constant(LOG_COLLECTOR_STOPPED, extra={"episodes": episodes})
        self.log_constant(
            LOG_COLLECTOR_COMPLETED,
            extra={
                "episodes": summary.episodes,
                "experiences": summary.experiences,
                "elapsed_s": round(summary.elapsed_s, 2),
                "experiences_per_hour": round(summary.experiences_per_hour, 1),
            },
        )
        return summary

    async def collect_episodes(
        self,
        count: int,
        stop_event: Optional[asyncio.Event] = None,
        *,
        retain: bool = False,
    ) -> CollectionSummary:
        """Generate and persist up to ``count`` episodes.

        With ``retain`` the persisted episodes are also returned in
        ``CollectionSummary.batch``.
        """

        if count < 0:
            raise ValueError("count must be >= 0")
        return await self._collect(stop_event or asyncio.Event(), max_episodes=count, deadline=None, retain=retain)

    async def run_for(self, duration_s: float, stop_event: Optional[asyncio.Event] = None) -> CollectionSummary:
        """Collect until ``duration_s`` elapses or ``stop_event`` is set."""

        if duration_s < 0:
            raise ValueError("duration_s must be >= 0")
        return await self._collect(stop_event or asyncio.Event(), max_episodes=None, deadline=duration_s)


__all__ = ["CollectionSummary", "EpisodeCollector"]
