"""Tabular Q-learning over discretized game-state feature vectors."""

from __future__ import annotations

from collections import deque
import logging
import math
import random
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from game_trainer import constants
from game_trainer.core.data_model import Episode, Experience
from game_trainer.core.errors import InvalidDimension, ParseFailure
from game_trainer.logging_config.helpers import LogConstantMixin
from game_trainer.logging_config.log_constants import (
    LOG_TRAINER_EXPERIENCE_SKIPPED,
    LOG_TRAINER_INITIALIZED,
    LOG_TRAINER_MODEL_LOADED,
    LOG_TRAINER_PROGRESS,
    LOG_TRAINER_TRAINING_COMPLETED,
    LOG_TRAINER_TRAINING_STARTED,
)

Q_TABLE_FORMAT = "q_table/v1"

BucketKey = Tuple[int, ...]


@dataclass(frozen=True)
class QLearningConfig:
    """Hyper-parameters and table dimensions for :class:`QLearningTrainer`."""

    learning_rate: float = constants.DEFAULT_Q_ALPHA
    discount_factor: float = constants.DEFAULT_Q_GAMMA
    exploration_rate: float = constants.DEFAULT_Q_EPSILON
    batch_size: int = constants.DEFAULT_BATCH_SIZE
    action_space_size: int = constants.DEFAULT_ACTION_SIZE
    state_space_size: int = constants.DEFAULT_STATE_SIZE
    state_bins: int = constants.DEFAULT_STATE_BINS

    def __post_init__(self) -> None:
        if not 0.0 < self.learning_rate <= 1.0:
            raise ValueError("learning_rate must be in (0, 1]")
        if not 0.0 <= self.discount_factor <= 1.0:
            raise ValueError("discount_factor must be in [0, 1]")
        if not 0.0 <= self.exploration_rate <= 1.0:
            raise ValueError("exploration_rate must be in [0, 1]")
        for name in ("batch_size", "action_space_size", "state_space_size", "state_bins"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be >= 1")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "QLearningConfig":
        """Build a config from a mapping; unknown keys are ignored."""

        if not data:
            return cls()
        known = {f.name: f.type for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            kwargs[key] = int(value) if known[key] == "int" else float(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrainerMetrics:
    """Running counters for everything a trainer has consumed."""

    episodes_processed: int = 0
    experiences_processed: int = 0
    experiences_skipped: int = 0
    total_reward: float = 0.0
    average_episode_reward: float = 0.0
    average_loss: float = 0.0
    reward_history: Deque[float] = field(default_factory=lambda: deque(maxlen=constants.REWARD_HISTORY_LIMIT))
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    _loss_sum: float = 0.0
    _loss_batches: int = 0
    _episode_reward_sum: float = 0.0

    def record_loss(self, loss: float) -> None:
        self._loss_sum += loss
        self._loss_batches += 1
        self.average_loss = self._loss_sum / self._loss_batches

    def record_episode(self, total_reward: float) -> None:
        self.episodes_processed += 1
        self._episode_reward_sum += total_reward
        self.reward_history.append(total_reward)
        self.average_episode_reward = self._episode_reward_sum / self.episodes_processed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "episodes_processed": self.episodes_processed,
            "experiences_processed": self.experiences_processed,
            "experiences_skipped": self.experiences_skipped,
            "total_reward": self.total_reward,
            "average_episode_reward": self.average_episode_reward,
            "average_loss": self.average_loss,
            "loss_batches": self._loss_batches,
            "reward_history": list(self.reward_history),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainerMetrics":
        def _time(raw: Any) -> Optional[datetime]:
            return datetime.fromisoformat(raw) if raw else None

        metrics = cls(
            episodes_processed=int(data.get("episodes_processed", 0)),
            experiences_processed=int(data.get("experiences_processed", 0)),
            experiences_skipped=int(data.get("experiences_skipped", 0)),
            total_reward=float(data.get("total_reward", 0.0)),
            average_episode_reward=float(data.get("average_episode_reward", 0.0)),
            average_loss=float(data.get("average_loss", 0.0)),
            reward_history=deque(
                (float(v) for v in data.get("reward_history", [])),
                maxlen=constants.REWARD_HISTORY_LIMIT,
            ),
            start_time=_time(data.get("start_time")),
            end_time=_time(data.get("end_time")),
        )
        batches = int(data.get("loss_batches", 0))
        metrics._loss_batches = batches
        metrics._loss_sum = metrics.average_loss * batches
        metrics._episode_reward_sum = metrics.average_episode_reward * metrics.episodes_processed
        return metrics


class QLearningTrainer(LogConstantMixin):
    """Offline Q-learning trainer fed with recorded episodes.

    States are continuous feature vectors; each one is mapped to a bucket key
    ``tuple(floor(feature * state_bins))`` which indexes a row of action
    values. Rows are created lazily on first update and unseen keys read as
    zeros.
    """

    def __init__(
        self,
        config: Optional[QLearningConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        name: str = "default",
    ) -> None:
        self.config = config or QLearningConfig()
        self.name = name
        self._rng = rng or random.Random()
        self._q_table: Dict[BucketKey, np.ndarray] = {}
        self.metrics = TrainerMetrics()
        self._logger = logging.getLogger(__name__)
        self.log_constant(
            LOG_TRAINER_INITIALIZED,
            extra=self.config.to_dict(),
        )

    def log_context(self) -> Dict[str, Any]:
        return {"model_name": self.name}

    # ------------------------------------------------------------------
    @property
    def table_size(self) -> int:
        return len(self._q_table)

    def bucket_key(self, state: Sequence[float]) -> BucketKey:
        bins = self.config.state_bins
        return tuple(int(math.floor(float(value) * bins)) for value in state)

    def q_values(self, state: Sequence[float]) -> np.ndarray:
        """Return a copy of the action values for ``state`` (zeros when unseen)."""

        self._check_state(state, "state")
        row = self._q_table.get(self.bucket_key(state))
        if row is None:
            return np.zeros(self.config.action_space_size, dtype=float)
        return row.copy()

    def _row(self, key: BucketKey) -> np.ndarray:
        row = self._q_table.get(key)
        if row is None:
            row = np.zeros(self.config.action_space_size, dtype=float)
            self._q_table[key] = row
        return row

    def _check_state(self, state: Sequence[float], label: str) -> None:
        if len(state) != self.config.state_space_size:
            raise InvalidDimension(
                f"{label} has {len(state)} features, expected {self.config.state_space_size}"
            )

    def _check_experience(self, exp: Experience) -> None:
        self._check_state(exp.state, "state")
        self._check_state(exp.next_state, "next_state")
        if not 0 <= exp.action < self.config.action_space_size:
            raise InvalidDimension(
                f"action {exp.action} outside [0, {self.config.action_space_size})"
            )

    def _valid_experiences(self, episode: Episode, strict: bool) -> List[Experience]:
        valid: List[Experience] = []
        for index, exp in enumerate(episode.experiences):
            try:
                self._check_experience(exp)
            except InvalidDimension as exc:
                if strict:
                    raise InvalidDimension(
                        f"episode {episode.episode_number} experience {index}: {exc}"
                    ) from exc
                self.metrics.experiences_skipped += 1
                self.log_constant(
                    LOG_TRAINER_EXPERIENCE_SKIPPED,
                    message=str(exc),
                    extra={"episode_number": episode.episode_number, "index": index},
                )
                continue
            valid.append(exp)
        return valid

    def _update(self, exp: Experience) -> float:
        """Apply one temporal-difference update and return the TD error."""

        row = self._row(self.bucket_key(exp.state))
        if exp.done:
            target = exp.reward
        else:
            next_row = self._q_table.get(self.bucket_key(exp.next_state))
            next_max = float(np.max(next_row)) if next_row is not None else 0.0
            target = exp.reward + self.config.discount_factor * next_max
        td_error = target - row[exp.action]
        row[exp.action] += self.config.learning_rate * td_error
        return float(td_error)

    # ------------------------------------------------------------------
    def train_on_episodes(self, episodes: Iterable[Episode], *, strict: bool = True) -> TrainerMetrics:
        """Run TD updates over ``episodes`` in order.

        Each episode is validated before any of its experiences touch the
        table. With ``strict`` an invalid experience raises ``InvalidDimension``;
        otherwise it is skipped and counted in ``metrics.experiences_skipped``.
        Experiences are consumed in chunks of ``batch_size`` and the mean
        squared TD error of each chunk feeds ``metrics.average_loss``.
        """

        metrics = self.metrics
        if metrics.start_time is None:
            metrics.start_time = datetime.now(timezone.utc)
        self.log_constant(LOG_TRAINER_TRAINING_STARTED)

        batch_size = self.config.batch_size
        for episode in episodes:
            experiences = self._valid_experiences(episode, strict)
            for start in range(0, len(experiences), batch_size):
                chunk = experiences[start : start + batch_size]
                errors = np.array([self._update(exp) for exp in chunk], dtype=float)
                metrics.record_loss(float(np.mean(errors**2)))
                metrics.experiences_processed += len(chunk)
                metrics.total_reward += sum(exp.reward for exp in chunk)

            metrics.record_episode(episode.total_reward)
            if metrics.episodes_processed % 10 == 0:
                self.log_constant(
                    LOG_TRAINER_PROGRESS,
                    extra={
                        "episodes": metrics.episodes_processed,
                        "average_loss": metrics.average_loss,
                        "average_reward": self.get_average_reward(),
                    },
                )

        metrics.end_time = datetime.now(timezone.utc)
        self.log_constant(
            LOG_TRAINER_TRAINING_COMPLETED,
            extra={
                "episodes": metrics.episodes_processed,
                "experiences": metrics.experiences_processed,
                "skipped": metrics.experiences_skipped,
                "states": self.table_size,
            },
        )
        return metrics

    def get_average_reward(self) -> float:
        """Mean reward per experience over everything trained so far."""

        if self.metrics.experiences_processed == 0:
            return 0.0
        return self.metrics.total_reward / self.metrics.experiences_processed

    def predict_action(self, state: Sequence[float], explore: bool = True) -> int:
        """Epsilon-greedy action choice; the table is never modified.

        Ties between equal action values resolve to the lowest index.
        """

        values = self.q_values(state)
        if explore and self._rng.random() < self.config.exploration_rate:
            return self._rng.randrange(self.config.action_space_size)
        return int(np.argmax(values))

    # ------------------------------------------------------------------
    def get_model_data(self) -> Dict[str, Any]:
        """Serialize the table, config and metrics into a JSON-safe mapping."""

        rows = [
            {"state": list(key), "values": row.tolist()}
            for key, row in sorted(self._q_table.items())
        ]
        return {
            "format": Q_TABLE_FORMAT,
            "config": self.config.to_dict(),
            "q_table": rows,
            "metrics": self.metrics.to_dict(),
        }

    def load_model_data(self, data: Mapping[str, Any]) -> None:
        """Replace the table and metrics with ``data`` from :meth:`get_model_data`."""

        if data.get("format") != Q_TABLE_FORMAT:
            raise ParseFailure(f"Unsupported model format: {data.get('format')}")

        table: Dict[BucketKey, np.ndarray] = {}
        try:
            stored = data.get("config") or {}
            for key in ("state_space_size", "action_space_size", "state_bins"):
                if key in stored and int(stored[key]) != getattr(self.config, key):
                    raise InvalidDimension(
                        f"model {key}={stored[key]} does not match trainer {key}={getattr(self.config, key)}"
                    )
            for row in data.get("q_table", []):
                key = tuple(int(v) for v in row["state"])
                values = np.asarray(row["values"], dtype=float)
                if len(key) != self.config.state_space_size:
                    raise InvalidDimension(
                        f"stored state key has {len(key)} features, expected {self.config.state_space_size}"
                    )
                if values.shape != (self.config.action_space_size,):
                    raise InvalidDimension(
                        f"stored row has shape {values.shape}, expected ({self.config.action_space_size},)"
                    )
                table[key] = values
            metrics = TrainerMetrics.from_dict(data.get("metrics") or {})
        except InvalidDimension:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ParseFailure(f"Malformed model data: {exc}") from exc

        self._q_table = table
        self.metrics = metrics
        self.log_constant(
            LOG_TRAINER_MODEL_LOADED,
            extra={"states": len(table)},
        )


__all__ = ["QLearningConfig", "QLearningTrainer", "TrainerMetrics", "Q_TABLE_FORMAT"]
