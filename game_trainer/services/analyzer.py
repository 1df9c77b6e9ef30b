from __future__ import annotations

"""Descriptive statistics, learning curves and reports over stored episodes."""

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from game_trainer import constants
from game_trainer.core.data_model import (
    ConfidenceStats,
    Episode,
    TrainingMetrics,
    action_name,
)
from game_trainer.core.errors import IOFailure
from game_trainer.logging_config.helpers import LogConstantMixin
from game_trainer.logging_config.log_constants import (
    LOG_ANALYZER_COMPLETED,
    LOG_ANALYZER_NO_DATA,
    LOG_ANALYZER_REPORT_EXPORTED,
)
from game_trainer.storage.atomic import atomic_write_text
from game_trainer.storage.episodes import EpisodePersistence

CurvePoint = Tuple[int, float]


class LearningCurve:
    """Restartable lazy iterable of ``(first_episode_number, window_average)``.

    Episodes are grouped into consecutive non-overlapping windows in discovery
    order. A trailing partial window is emitted as the average of whatever
    episodes remain. Every iteration rescans ``source``.
    """

    def __init__(self, source: Callable[[], Iterable[Episode]], window: int = constants.DEFAULT_LEARNING_CURVE_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self._source = source
        self.window = window

    def __iter__(self) -> Iterator[CurvePoint]:
        bucket: List[float] = []
        first_number = 0
        for episode in self._source():
            if not bucket:
                first_number = episode.episode_number
            bucket.append(episode.total_reward)
            if len(bucket) == self.window:
                yield first_number, float(np.mean(bucket))
                bucket = []
        if bucket:
            yield first_number, float(np.mean(bucket))


def _episode_source(store: EpisodePersistence, episodes: Optional[Sequence[Episode]]) -> Callable[[], Iterable[Episode]]:
    if episodes is not None:
        return lambda: iter(episodes)
    return store.load_all_episodes


class DataAnalyzer(LogConstantMixin):
    def __init__(self, action_size: int = constants.DEFAULT_ACTION_SIZE) -> None:
        self.action_size = action_size
        self._logger = logging.getLogger(__name__)

    def _action_names(self) -> List[str]:
        return [action_name(index) for index in range(self.action_size)]

    # ------------------------------------------------------------------
    def analyze_data(
        self,
        store: EpisodePersistence,
        episodes: Optional[Sequence[Episode]] = None,
    ) -> TrainingMetrics:
        """Compute :class:`TrainingMetrics` over all stored episodes.

        ``episodes`` restricts the analysis to an in-memory subset. With no
        episodes the all-zero metrics object is returned.
        """

        corpus = list(episodes) if episodes is not None else list(store.load_all_episodes())
        if not corpus:
            self.log_constant(LOG_ANALYZER_NO_DATA, extra={"root": str(store.root)})
            return TrainingMetrics(action_distribution={name: 0 for name in self._action_names()})

        rewards = np.array([ep.total_reward for ep in corpus], dtype=float)
        lengths = np.array([ep.length for ep in corpus], dtype=float)
        confidences = np.array(
            [exp.action_confidence for ep in corpus for exp in ep.experiences], dtype=float
        )

        distribution: Dict[str, int] = {name: 0 for name in self._action_names()}
        for ep in corpus:
            for exp in ep.experiences:
                name = action_name(exp.action)
                distribution[name] = distribution.get(name, 0) + 1

        high = int(np.count_nonzero(confidences >= constants.HIGH_CONFIDENCE_THRESHOLD))
        metrics = TrainingMetrics(
            total_episodes=len(corpus),
            total_experiences=int(lengths.sum()),
            avg_episode_length=float(lengths.mean()),
            average_reward=float(rewards.mean()),
            max_reward=float(rewards.max()),
            min_reward=float(rewards.min()),
            reward_std_dev=float(rewards.std()),
            action_distribution=distribution,
            confidence=ConfidenceStats(
                average=float(confidences.mean()),
                minimum=float(confidences.min()),
                maximum=float(confidences.max()),
                high_confidence_pct=100.0 * high / len(confidences),
            ),
        )
        self.log_constant(
            LOG_ANALYZER_COMPLETED,
            extra={
                "episodes": metrics.total_episodes,
                "experiences": metrics.total_experiences,
                "average_reward": metrics.average_reward,
            },
        )
        return metrics

    def generate_learning_curve(
        self,
        store: EpisodePersistence,
        window: int = constants.DEFAULT_LEARNING_CURVE_WINDOW,
        episodes: Optional[Sequence[Episode]] = None,
    ) -> LearningCurve:
        return LearningCurve(_episode_source(store, episodes), window)

    def analyze_action_rewards(
        self,
        store: EpisodePersistence,
        episodes: Optional[Sequence[Episode]] = None,
    ) -> Dict[str, float]:
        """Mean per-experience reward by action name; unused actions read 0.0."""

        sums: Dict[str, float] = {name: 0.0 for name in self._action_names()}
        counts: Dict[str, int] = {name: 0 for name in sums}
        for ep in _episode_source(store, episodes)():
            for exp in ep.experiences:
                name = action_name(exp.action)
                sums[name] = sums.get(name, 0.0) + exp.reward
                counts[name] = counts.get(name, 0) + 1
        return {name: (sums[name] / counts[name] if counts[name] else 0.0) for name in sums}

    @staticmethod
    def rank_actions(action_rewards: Mapping[str, float]) -> List[Tuple[str, float]]:
        """Actions ordered best first; ties keep the input order."""

        return sorted(action_rewards.items(), key=lambda item: item[1], reverse=True)

    # ------------------------------------------------------------------
    def export_report(
        self,
        stats: TrainingMetrics,
        path: Path,
        learning_curve: Optional[Iterable[CurvePoint]] = None,
        action_rewards: Optional[Mapping[str, float]] = None,
    ) -> Path:
        """Write a JSON report; parent directories are created as needed."""

        path = Path(path)
        report: Dict[str, object] = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "metrics": stats.to_dict(),
        }
        if learning_curve is not None:
            report["learning_curve"] = [
                {"episode": number, "average_reward": value} for number, value in learning_curve
            ]
        if action_rewards is not None:
            report["action_rewards"] = dict(action_rewards)
            report["action_ranking"] = [name for name, _ in self.rank_actions(action_rewards)]
        try:
            atomic_write_text(path, json.dumps(report, indent=2))
        except OSError as exc:
            raise IOFailure(f"Could not write report {path}: {exc}") from exc
        self.log_constant(LOG_ANALYZER_REPORT_EXPORTED, extra={"path": str(path)})
        return path

    @staticmethod
    def format_report(stats: TrainingMetrics) -> str:
        if not stats.has_data:
            return "No training data found."
        conf = stats.confidence
        lines = [
            "Training Data Analysis",
            f"  Total Episodes:         {stats.total_episodes}",
            f"  Total Experiences:      {stats.total_experiences}",
            f"  Avg Episode Length:     {stats.avg_episode_length:.1f}",
            f"  Avg Reward per Episode: {stats.average_reward:.3f}",
            f"  Max Reward:             {stats.max_reward:.3f}",
            f"  Min Reward:             {stats.min_reward:.3f}",
            f"  Reward Std Dev:         {stats.reward_std_dev:.3f}",
            f"  Avg Action Confidence:  {conf.average:.3f} (min {conf.minimum:.3f}, max {conf.maximum:.3f})",
            f"  High Confidence (>= {constants.HIGH_CONFIDENCE_THRESHOLD}): {conf.high_confidence_pct:.1f}%",
            "  Action Distribution:",
        ]
        total = max(1, stats.total_experiences)
        for name, count in stats.action_distribution.items():
            lines.append(f"    {name:<10} {count:>8} ({100.0 * count / total:5.1f}%)")
        return "\n".join(lines)


__all__ = ["DataAnalyzer", "LearningCurve", "CurvePoint"]
