"""Tests for in-memory experience capture and episode finalization."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from game_trainer.core.errors import EmptyEpisode, InvalidDimension
from game_trainer.core.experience_store import CollectionSession, ExperienceStore


def _store(state_size: int = 3) -> ExperienceStore:
    session = CollectionSession("20260101_120000_abc123")
    return ExperienceStore(session, state_size=state_size, action_size=9)


def test_end_episode_sums_rewards_and_numbers_from_one() -> None:
    store = _store()
    store.record([0, 0, 0], 1, 0.1, [0, 0, 1], False, 0.9)
    store.record([0, 0, 1], 2, 0.1, [0, 1, 1], False, 0.8)
    store.record([0, 1, 1], 8, -10.0, [1, 1, 1], True, 0.75)

    episode = store.end_episode()

    assert episode.episode_number == 1
    assert episode.length == 3
    assert episode.total_reward == pytest.approx(-9.8)
    assert episode.total_reward == sum(e.reward for e in episode.experiences)
    assert episode.session_id == "20260101_120000_abc123"
    assert episode.experiences[-1].done is True


def test_episode_numbers_increase_within_session() -> None:
    store = _store()
    numbers = []
    for _ in range(3):
        store.record([0, 0, 0], 0, 1.0, [0, 0, 0], True)
        numbers.append(store.end_episode().episode_number)

    assert numbers == [1, 2, 3]


def test_empty_episode_raises_and_does_not_consume_number() -> None:
    store = _store()

    with pytest.raises(EmptyEpisode):
        store.end_episode()

    store.record([0, 0, 0], 0, 1.0, [0, 0, 0], True)
    assert store.end_episode().episode_number == 1


def test_invalid_record_is_rejected_without_touching_buffer() -> None:
    store = _store()
    store.record([0, 0, 0], 0, 1.0, [0, 0, 0], False)

    with pytest.raises(InvalidDimension):
        store.record([0, 0], 0, 1.0, [0, 0, 0], False)
    with pytest.raises(InvalidDimension):
        store.record([0, 0, 0], 0, 1.0, [0, 0, 0, 0], False)
    with pytest.raises(InvalidDimension):
        store.record([0, 0, 0], 9, 1.0, [0, 0, 0], False)
    with pytest.raises(InvalidDimension):
        store.record([0, 0, 0], -1, 1.0, [0, 0, 0], False)

    assert store.current_stats() == (1, 1.0)


@pytest.mark.parametrize(
    "state, reward, next_state, confidence",
    [
        ([0, 0, 0], float("nan"), [0, 0, 0], 1.0),
        ([0, 0, 0], float("inf"), [0, 0, 0], 1.0),
        ([0, 0, 0], 1.0, [0, 0, 0], float("nan")),
        ([0, float("nan"), 0], 1.0, [0, 0, 0], 1.0),
        ([0, 0, 0], 1.0, [0, 0, float("-inf")], 1.0),
    ],
)
def test_non_finite_values_are_rejected(state, reward, next_state, confidence) -> None:
    store = _store()
    store.record([0, 0, 0], 0, 2.0, [0, 0, 0], False)

    with pytest.raises(InvalidDimension):
        store.record(state, 1, reward, next_state, False, confidence)

    assert store.current_stats() == (1, 2.0)
    assert store.end_episode().total_reward == 2.0


def test_invalid_dimension_is_a_value_error() -> None:
    store = _store()
    with pytest.raises(ValueError):
        store.record([0.0], 0, 0.0, [0.0], False)


def test_current_stats_tracks_open_episode_and_resets() -> None:
    store = _store()
    assert store.current_stats() == (0, 0.0)

    store.record([0, 0, 0], 0, 0.5, [0, 0, 0], False)
    store.record([0, 0, 0], 0, 0.25, [0, 0, 0], True)
    assert store.current_stats() == (2, 0.75)

    store.end_episode()
    assert store.current_stats() == (0, 0.0)


def test_episode_times_come_from_clock() -> None:
    ticks = iter(
        [
            datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc),  # session start
            datetime(2026, 1, 1, 9, 0, 5, tzinfo=timezone.utc),  # first record
            datetime(2026, 1, 1, 9, 1, 5, tzinfo=timezone.utc),  # end_episode
        ]
    )
    clock = lambda: next(ticks)  # noqa: E731
    store = ExperienceStore(CollectionSession("s1", clock=clock), state_size=1, action_size=2, clock=clock)

    store.record([0.0], 1, 1.0, [0.0], True)
    episode = store.end_episode()

    assert episode.end_time - episode.start_time == timedelta(minutes=1)


def test_session_ids_are_unique() -> None:
    assert CollectionSession().session_id != CollectionSession().session_id
