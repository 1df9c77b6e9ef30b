from __future__ import annotations

import random

import numpy as np
import pytest

from game_trainer import constants
from game_trainer.algorithms.qlearning import Q_TABLE_FORMAT, QLearningConfig, QLearningTrainer
from game_trainer.core.data_model import Episode
from game_trainer.core.errors import InvalidDimension, ParseFailure

STATE = (0.1, 0.1, 0.1, 0.1)
NEXT_STATE = (0.9, 0.9, 0.9, 0.9)


def _trainer(**overrides) -> QLearningTrainer:
    options = {
        "learning_rate": 0.1,
        "discount_factor": 0.99,
        "exploration_rate": 0.0,
        "action_space_size": 9,
        "state_space_size": 4,
        "state_bins": 4,
    }
    options.update(overrides)
    return QLearningTrainer(QLearningConfig.from_dict(options), rng=random.Random(0))


def _preload_next_state(trainer: QLearningTrainer, value: float) -> None:
    data = trainer.get_model_data()
    data["q_table"] = [{"state": list(trainer.bucket_key(NEXT_STATE)), "values": [value] * 9}]
    trainer.load_model_data(data)


def _single(experience_factory, *, done: bool, reward: float = 1.0, action: int = 2) -> Episode:
    exp = experience_factory(reward, action=action, state=STATE, next_state=NEXT_STATE, done=done)
    return Episode.from_experiences(1, [exp])


def test_terminal_update_ignores_next_state(experience_factory) -> None:
    trainer = _trainer()
    _preload_next_state(trainer, 10.0)

    trainer.train_on_episodes([_single(experience_factory, done=True)])

    assert trainer.q_values(STATE)[2] == pytest.approx(0.1)


def test_non_terminal_update_bootstraps_from_next_state(experience_factory) -> None:
    trainer = _trainer()
    _preload_next_state(trainer, 10.0)

    trainer.train_on_episodes([_single(experience_factory, done=False)])

    assert trainer.q_values(STATE)[2] == pytest.approx(0.1 * (1.0 + 0.99 * 10.0))


def test_terminal_update_is_isolated_from_neighbouring_episodes(experience_factory) -> None:
    first = _single(experience_factory, done=True, reward=1.0, action=2)
    follow_up = Episode.from_experiences(
        2,
        [
            experience_factory(50.0, action=2, state=NEXT_STATE, next_state=(0.5,) * 4),
            experience_factory(50.0, action=2, state=(0.5,) * 4, next_state=NEXT_STATE, done=True),
        ],
    )

    alone = _trainer()
    alone.train_on_episodes([first])
    followed = _trainer()
    followed.train_on_episodes([first, follow_up])
    preceded = _trainer()
    preceded.train_on_episodes([follow_up, first])

    assert followed.q_values(NEXT_STATE)[2] > 0.0
    np.testing.assert_allclose(followed.q_values(STATE), alone.q_values(STATE))
    np.testing.assert_allclose(preceded.q_values(STATE), alone.q_values(STATE))
    assert alone.q_values(STATE)[2] == pytest.approx(0.1)


def test_unseen_state_reads_as_zeros() -> None:
    trainer = _trainer()

    np.testing.assert_array_equal(trainer.q_values(STATE), np.zeros(9))
    assert trainer.table_size == 0


def test_predict_action_breaks_ties_to_lowest_index(experience_factory) -> None:
    trainer = _trainer()
    assert trainer.predict_action(STATE, explore=False) == 0

    trainer.train_on_episodes([_single(experience_factory, done=True, action=5)])
    assert trainer.predict_action(STATE, explore=False) == 5


def test_predict_action_does_not_modify_table() -> None:
    trainer = _trainer(exploration_rate=1.0)
    for _ in range(20):
        assert 0 <= trainer.predict_action(STATE) < 9
    assert trainer.table_size == 0


def test_strict_training_rejects_bad_episode_without_updates(experience_factory) -> None:
    trainer = _trainer()
    good = experience_factory(1.0, state=STATE, next_state=NEXT_STATE)
    bad = experience_factory(1.0, state=(0.1, 0.1), next_state=NEXT_STATE, done=True)

    with pytest.raises(InvalidDimension):
        trainer.train_on_episodes([Episode.from_experiences(1, [good, bad])])

    assert trainer.table_size == 0
    assert trainer.metrics.experiences_processed == 0


def test_lenient_training_skips_bad_experiences(experience_factory) -> None:
    trainer = _trainer()
    good = experience_factory(1.0, state=STATE, next_state=NEXT_STATE, done=True)
    bad = experience_factory(1.0, action=12, state=STATE, next_state=NEXT_STATE)

    metrics = trainer.train_on_episodes([Episode.from_experiences(1, [good, bad])], strict=False)

    assert metrics.experiences_processed == 1
    assert metrics.experiences_skipped == 1
    assert metrics.episodes_processed == 1


def test_metrics_track_rewards_and_loss(episode_factory) -> None:
    trainer = _trainer(batch_size=2)

    metrics = trainer.train_on_episodes([episode_factory(1, [1.0, 1.0, 1.0]), episode_factory(2, [-1.0])])

    assert metrics.episodes_processed == 2
    assert metrics.experiences_processed == 4
    assert list(metrics.reward_history) == [3.0, -1.0]
    assert metrics.average_episode_reward == pytest.approx(1.0)
    assert trainer.get_average_reward() == pytest.approx(0.5)
    assert metrics.average_loss > 0.0


def test_average_reward_is_zero_before_training() -> None:
    assert _trainer().get_average_reward() == 0.0


def test_reward_history_is_bounded(monkeypatch, episode_factory) -> None:
    monkeypatch.setattr(constants, "REWARD_HISTORY_LIMIT", 3)
    trainer = _trainer()

    metrics = trainer.train_on_episodes([episode_factory(n, [float(n)]) for n in range(1, 11)])

    assert list(metrics.reward_history) == [8.0, 9.0, 10.0]
    assert metrics.episodes_processed == 10
    assert metrics.average_episode_reward == pytest.approx(5.5)

    restored = _trainer()
    restored.load_model_data(trainer.get_model_data())
    restored.train_on_episodes([episode_factory(11, [11.0])])

    assert list(restored.metrics.reward_history) == [9.0, 10.0, 11.0]
    assert restored.metrics.average_episode_reward == pytest.approx(6.0)


def test_model_data_round_trip(episode_factory) -> None:
    trainer = _trainer()
    trainer.train_on_episodes([episode_factory(1, [0.5, 1.5]), episode_factory(2, [2.0])])
    data = trainer.get_model_data()

    restored = _trainer()
    restored.load_model_data(data)

    assert data["format"] == Q_TABLE_FORMAT
    assert restored.table_size == trainer.table_size
    np.testing.assert_allclose(restored.q_values((0.1,) * 4), trainer.q_values((0.1,) * 4))
    assert restored.metrics.experiences_processed == 3
    assert restored.get_average_reward() == pytest.approx(trainer.get_average_reward())


def test_load_rejects_dimension_mismatch(episode_factory) -> None:
    trainer = _trainer()
    trainer.train_on_episodes([episode_factory(1, [1.0])])
    data = trainer.get_model_data()

    with pytest.raises(InvalidDimension):
        _trainer(state_space_size=6).load_model_data(data)
    with pytest.raises(InvalidDimension):
        _trainer(action_space_size=4).load_model_data(data)


def test_load_rejects_unknown_format() -> None:
    with pytest.raises(ParseFailure):
        _trainer().load_model_data({"format": "something/else"})


def test_load_rejects_non_numeric_config() -> None:
    trainer = _trainer()
    data = trainer.get_model_data()
    data["config"]["state_space_size"] = "four"

    with pytest.raises(ParseFailure):
        trainer.load_model_data(data)
    assert trainer.table_size == 0


def test_load_rejects_malformed_row() -> None:
    trainer = _trainer()
    data = trainer.get_model_data()
    data["q_table"] = [{"state": [0, 0, 0, 0], "values": [1.0, 2.0]}]

    with pytest.raises(InvalidDimension):
        trainer.load_model_data(data)


@pytest.mark.parametrize(
    "options",
    [
        {"learning_rate": 0.0},
        {"discount_factor": 1.5},
        {"exploration_rate": -0.1},
        {"state_bins": 0},
    ],
)
def test_config_validates_ranges(options) -> None:
    with pytest.raises(ValueError):
        QLearningConfig(**options)


def test_config_from_dict_ignores_unknown_keys() -> None:
    config = QLearningConfig.from_dict({"learning_rate": 0.5, "unused": True})

    assert config.learning_rate == 0.5
    assert QLearningConfig.from_dict(config.to_dict()) == config
