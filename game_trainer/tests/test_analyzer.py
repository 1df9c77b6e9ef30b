from __future__ import annotations

import json
from pathlib import Path

import pytest

from game_trainer.core.data_model import Action, Episode
from game_trainer.core.errors import IOFailure
from game_trainer.services.analyzer import DataAnalyzer, LearningCurve
from game_trainer.storage.episodes import EpisodePersistence


@pytest.fixture
def storage(tmp_path: Path) -> EpisodePersistence:
    return EpisodePersistence(tmp_path / "data")


def test_learning_curve_emits_trailing_partial_window(storage, episode_factory) -> None:
    for number in range(1, 26):
        storage.save_episode(episode_factory(number, [float(number)]))

    curve = list(DataAnalyzer().generate_learning_curve(storage, 10))

    assert curve == [(1, pytest.approx(5.5)), (11, pytest.approx(15.5)), (21, pytest.approx(23.0))]


def test_learning_curve_is_restartable(episode_factory) -> None:
    episodes = [episode_factory(n, [1.0]) for n in range(1, 4)]
    curve = LearningCurve(lambda: iter(episodes), window=2)

    assert list(curve) == list(curve) == [(1, 1.0), (3, 1.0)]


def test_learning_curve_rejects_zero_window(storage) -> None:
    with pytest.raises(ValueError):
        DataAnalyzer().generate_learning_curve(storage, 0)


def test_analyze_data_without_episodes_is_all_zero(storage) -> None:
    metrics = DataAnalyzer().analyze_data(storage)

    assert metrics.total_episodes == 0
    assert metrics.total_experiences == 0
    assert metrics.average_reward == 0.0
    assert not metrics.has_data
    assert set(metrics.action_distribution) == {action.name for action in Action}
    assert all(count == 0 for count in metrics.action_distribution.values())
    assert DataAnalyzer.format_report(metrics) == "No training data found."


def test_analyze_data_statistics(storage, episode_factory) -> None:
    storage.save_episode(episode_factory(1, [1.0, 1.0], actions=[0, 8]))
    storage.save_episode(episode_factory(2, [2.0, 2.0, 2.0, 2.0], actions=[0, 0, 1, 1]))

    metrics = DataAnalyzer().analyze_data(storage)

    assert metrics.total_episodes == 2
    assert metrics.total_experiences == 6
    assert metrics.avg_episode_length == pytest.approx(3.0)
    assert metrics.average_reward == pytest.approx(5.0)
    assert metrics.max_reward == pytest.approx(8.0)
    assert metrics.min_reward == pytest.approx(2.0)
    assert metrics.reward_std_dev == pytest.approx(3.0)
    assert metrics.action_distribution["NORTH"] == 3
    assert metrics.action_distribution["SOUTH"] == 2
    assert metrics.action_distribution["STOP"] == 1
    assert metrics.action_distribution["EAST"] == 0
    assert metrics.confidence.high_confidence_pct == pytest.approx(100.0)


def test_analyze_data_ignores_non_utf8_files(storage, episode_factory) -> None:
    storage.save_episode(episode_factory(1, [1.0, 1.0], actions=[0, 8]))
    (storage.root / "training_data_ep000002_120000_broken.jsonl").write_bytes(b"\xff\xfe\x00garbage")

    metrics = DataAnalyzer().analyze_data(storage)

    assert metrics.total_episodes == 1
    assert metrics.total_experiences == 2
    assert metrics.average_reward == pytest.approx(2.0)


def test_high_confidence_percentage(storage, experience_factory) -> None:
    experiences = [experience_factory(0.0, confidence=c) for c in (0.5, 0.7, 0.9, 0.2)]
    episode = Episode.from_experiences(1, experiences, session_id="s")

    metrics = DataAnalyzer().analyze_data(storage, [episode])

    assert metrics.confidence.high_confidence_pct == pytest.approx(50.0)
    assert metrics.confidence.minimum == pytest.approx(0.2)
    assert metrics.confidence.maximum == pytest.approx(0.9)
    assert metrics.average_action_confidence == pytest.approx(0.575)


def test_action_rewards_and_ranking(storage, episode_factory) -> None:
    storage.save_episode(episode_factory(1, [1.0, 3.0, -1.0], actions=[0, 0, 8]))
    analyzer = DataAnalyzer()

    rewards = analyzer.analyze_action_rewards(storage)
    ranking = analyzer.rank_actions(rewards)

    assert rewards["NORTH"] == pytest.approx(2.0)
    assert rewards["STOP"] == pytest.approx(-1.0)
    assert rewards["EAST"] == 0.0
    assert ranking[0] == ("NORTH", pytest.approx(2.0))
    assert ranking[-1][0] == "STOP"


def test_export_report(tmp_path: Path, storage, episode_factory) -> None:
    storage.save_episode(episode_factory(1, [1.0, 2.0]))
    analyzer = DataAnalyzer()
    metrics = analyzer.analyze_data(storage)

    path = analyzer.export_report(
        metrics,
        tmp_path / "reports" / "report.json",
        analyzer.generate_learning_curve(storage),
        analyzer.analyze_action_rewards(storage),
    )
    report = json.loads(path.read_text(encoding="utf-8"))

    assert report["metrics"]["total_episodes"] == 1
    assert report["learning_curve"] == [{"episode": 1, "average_reward": 3.0}]
    assert report["action_ranking"][0] == "NORTH"
    assert "generated_at" in report


def test_export_report_failure_raises_io_failure(tmp_path: Path, storage) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")

    with pytest.raises(IOFailure):
        DataAnalyzer().export_report(DataAnalyzer().analyze_data(storage), blocker / "report.json")
