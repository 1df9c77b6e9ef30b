from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

import pytest

from game_trainer.core.data_model import Episode, Experience

STATE_SIZE = 4
ACTION_SIZE = 9

_BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_experience(
    reward: float = 0.0,
    *,
    action: int = 0,
    state: Sequence[float] | None = None,
    next_state: Sequence[float] | None = None,
    done: bool = False,
    confidence: float = 1.0,
) -> Experience:
    return Experience(
        state=tuple(state if state is not None else [0.1] * STATE_SIZE),
        action=action,
        reward=reward,
        next_state=tuple(next_state if next_state is not None else [0.2] * STATE_SIZE),
        done=done,
        action_confidence=confidence,
    )


def make_episode(
    number: int,
    rewards: Sequence[float],
    *,
    session_id: str = "20260101_120000_abc123",
    actions: Sequence[int] | None = None,
) -> Episode:
    experiences = [
        make_experience(
            reward,
            action=actions[i] if actions is not None else 0,
            done=i == len(rewards) - 1,
        )
        for i, reward in enumerate(rewards)
    ]
    start = _BASE_TIME + timedelta(minutes=number)
    return Episode.from_experiences(
        number,
        experiences,
        session_id=session_id,
        start_time=start,
        end_time=start + timedelta(seconds=30),
    )


@pytest.fixture
def episode_factory() -> Callable[..., Episode]:
    return make_episode


@pytest.fixture
def experience_factory() -> Callable[..., Experience]:
    return make_experience
