"""In-memory accumulation of experiences into finalized episodes.

``CollectionSession`` owns the per-session episode counter; ``ExperienceStore``
buffers the experiences of the episode currently being played and hands back an
immutable :class:`Episode` when the episode ends.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
import logging
import math
import threading
from typing import Callable, List, Optional, Sequence, Tuple
import uuid

from game_trainer import constants
from game_trainer.core.data_model import Episode, Experience, as_vector
from game_trainer.core.errors import EmptyEpisode, InvalidDimension
from game_trainer.logging_config.helpers import log_constant
from game_trainer.logging_config.log_constants import (
    LOG_EPISODE_EMPTY,
    LOG_EPISODE_FINALIZED,
    LOG_EXPERIENCE_REJECTED,
    LOG_SESSION_STARTED,
)

_LOGGER = logging.getLogger(__name__)
_log = partial(log_constant, _LOGGER)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id(clock: Clock = _utc_now) -> str:
    """Return an id of the form ``YYYYmmdd_HHMMSS_<6 hex>``."""

    return f"{clock().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"


class CollectionSession:
    """Monotonic episode counter scoped to one collection session.

    Numbering starts at 1 and is unique within the session only; files from
    different sessions are told apart by ``session_id``.
    """

    def __init__(self, session_id: Optional[str] = None, *, start_at: int = 1, clock: Clock = _utc_now) -> None:
        if start_at < 1:
            raise ValueError("start_at must be >= 1")
        self._session_id = session_id or new_session_id(clock)
        self._start = start_at
        self._next = start_at
        self._lock = threading.Lock()
        self.started_at = clock()
        _log(LOG_SESSION_STARTED, extra={"session_id": self._session_id})

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def episodes_issued(self) -> int:
        with self._lock:
            return self._next - self._start

    def peek_episode_number(self) -> int:
        with self._lock:
            return self._next

    def next_episode_number(self) -> int:
        """Consume and return the next episode number."""

        with self._lock:
            number = self._next
            self._next += 1
            return number


class ExperienceStore:
    """Buffer for the experiences of the current episode."""

    def __init__(
        self,
        session: Optional[CollectionSession] = None,
        *,
        state_size: int = constants.DEFAULT_STATE_SIZE,
        action_size: int = constants.DEFAULT_ACTION_SIZE,
        clock: Clock = _utc_now,
    ) -> None:
        if state_size < 1 or action_size < 1:
            raise ValueError("state_size and action_size must be positive")
        self.session = session or CollectionSession(clock=clock)
        self.state_size = state_size
        self.action_size = action_size
        self._clock = clock
        self._experiences: List[Experience] = []
        self._running_reward = 0.0
        self._episode_start: Optional[datetime] = None

    def _validate(
        self,
        state: Sequence[float],
        action: int,
        reward: float,
        next_state: Sequence[float],
        confidence: float,
    ) -> None:
        if len(state) != self.state_size:
            raise InvalidDimension(f"state has {len(state)} features, expected {self.state_size}")
        if len(next_state) != self.state_size:
            raise InvalidDimension(f"next_state has {len(next_state)} features, expected {self.state_size}")
        if not 0 <= int(action) < self.action_size:
            raise InvalidDimension(f"action {action} outside [0, {self.action_size})")
        if not math.isfinite(float(reward)):
            raise InvalidDimension(f"reward must be finite, got {reward}")
        if not math.isfinite(float(confidence)):
            raise InvalidDimension(f"confidence must be finite, got {confidence}")
        if not all(math.isfinite(float(v)) for v in (*state, *next_state)):
            raise InvalidDimension("state vectors must hold finite values")

    def record(
        self,
        state: Sequence[float],
        action: int,
        reward: float,
        next_state: Sequence[float],
        done: bool,
        confidence: float = 1.0,
    ) -> Experience:
        """Append one transition to the current episode.

        Raises ``InvalidDimension`` when a vector length differs from
        ``state_size``, ``action`` is out of range, or any number is NaN or
        infinite; nothing is appended then.
        """

        try:
            self._validate(state, action, reward, next_state, confidence)
        except InvalidDimension as exc:
            _log(
                LOG_EXPERIENCE_REJECTED,
                message=str(exc),
                extra={"session_id": self.session.session_id},
            )
            raise

        experience = Experience(
            state=as_vector(state),
            action=int(action),
            reward=float(reward),
            next_state=as_vector(next_state),
            done=bool(done),
            action_confidence=float(confidence),
        )
        if not self._experiences:
            self._episode_start = self._clock()
        self._experiences.append(experience)
        self._running_reward += experience.reward
        return experience

    def end_episode(self) -> Episode:
        """Finalize the buffered experiences into an :class:`Episode`.

        Raises ``EmptyEpisode`` when nothing was recorded; the session counter
        is left untouched in that case.
        """

        if not self._experiences:
            _log(LOG_EPISODE_EMPTY, extra={"session_id": self.session.session_id})
            raise EmptyEpisode("No experiences recorded for the current episode")

        episode = Episode.from_experiences(
            self.session.next_episode_number(),
            self._experiences,
            session_id=self.session.session_id,
            start_time=self._episode_start,
            end_time=self._clock(),
        )
        self.reset()
        _log(
            LOG_EPISODE_FINALIZED,
            extra={
                "session_id": episode.session_id,
                "episode_number": episode.episode_number,
                "experiences": episode.length,
                "total_reward": episode.total_reward,
            },
        )
        return episode

    def reset(self) -> None:
        """Discard the current episode without finalizing it."""

        self._experiences = []
        self._running_reward = 0.0
        self._episode_start = None

    def current_stats(self) -> Tuple[int, float]:
        """Return ``(experience_count, running_reward)`` for the open episode."""

        return len(self._experiences), self._running_reward


__all__ = ["CollectionSession", "ExperienceStore", "new_session_id"]
