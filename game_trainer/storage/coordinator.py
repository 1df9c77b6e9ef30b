"""Async single-writer gate in front of episode and registry storage."""

from __future__ import annotations

import asyncio
from functools import partial
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from game_trainer.core.data_model import Episode
from game_trainer.logging_config.helpers import log_constant
from game_trainer.logging_config.log_constants import LOG_COORDINATOR_WRITE_SHIELDED
from game_trainer.storage.episodes import EpisodePersistence
from game_trainer.storage.models import ModelRegistry

_LOGGER = logging.getLogger(__name__)
_log = partial(log_constant, _LOGGER)

T = TypeVar("T")


class StorageCoordinator:
    """Serializes writes for one storage root.

    Writes run in a worker thread while holding an ``asyncio.Lock``. A write
    already in flight when the awaiting task is cancelled is allowed to finish
    before ``CancelledError`` propagates, so a cancelled session never leaves a
    half-written episode or model behind.
    """

    def __init__(self, episodes: EpisodePersistence, registry: Optional[ModelRegistry] = None) -> None:
        self.episodes = episodes
        self.registry = registry
        self._lock = asyncio.Lock()

    async def _run_locked(self, label: str, func: Callable[[], T]) -> T:
        async def _locked() -> T:
            async with self._lock:
                return await asyncio.to_thread(func)

        task: asyncio.Future[T] = asyncio.ensure_future(_locked())
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                _log(LOG_COORDINATOR_WRITE_SHIELDED, extra={"operation": label})
                await _drain(task)
            raise

    async def save_episode(self, episode: Episode) -> Path:
        return await self._run_locked("save_episode", partial(self.episodes.save_episode, episode))

    async def save_best_model(
        self,
        name: str,
        model_data: Mapping[str, Any],
        performance_score: float,
    ) -> Optional[Path]:
        if self.registry is None:
            raise RuntimeError("StorageCoordinator has no model registry attached")
        return await self._run_locked(
            "save_best_model",
            partial(self.registry.save_best_model, name, model_data, performance_score),
        )

    async def prune(self, keep_recent: int) -> int:
        return await self._run_locked("prune", partial(self.episodes.prune, keep_recent))


async def _drain(task: Awaitable[Any]) -> None:
    # Cancellation still propagates once the write settles.
    try:
        await task
    except asyncio.CancelledError:
        raise
    except Exception:  # noqa: BLE001
        _LOGGER.debug("Shielded write failed after cancellation", exc_info=True)


__all__ = ["StorageCoordinator"]
