from __future__ import annotations

"""Experience, episode and metrics records shared across the trainer."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Iterable, Mapping, Sequence

from game_trainer.core.errors import ParseFailure


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Action(IntEnum):
    """Discrete movement actions understood by the game."""

    NORTH = 0
    SOUTH = 1
    EAST = 2
    WEST = 3
    NORTHEAST = 4
    NORTHWEST = 5
    SOUTHEAST = 6
    SOUTHWEST = 7
    STOP = 8


def action_name(index: int) -> str:
    """Return the action name for ``index`` or ``ACTION_<index>`` when unnamed."""

    try:
        return Action(index).name
    except ValueError:
        return f"ACTION_{index}"


def action_from_name(name: str) -> int:
    """Inverse of :func:`action_name`."""

    candidate = name.strip().upper()
    if candidate in Action.__members__:
        return int(Action[candidate])
    if candidate.startswith("ACTION_"):
        try:
            return int(candidate[len("ACTION_"):])
        except ValueError:
            pass
    raise ValueError(f"Unknown action name '{name}'")


@dataclass(frozen=True, slots=True)
class Experience:
    """A single (state, action, reward, next_state, done) transition."""

    state: tuple[float, ...]
    action: int
    reward: float
    next_state: tuple[float, ...]
    done: bool
    action_confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": list(self.state),
            "action": self.action,
            "reward": self.reward,
            "next_state": list(self.next_state),
            "done": self.done,
            "action_confidence": self.action_confidence,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Experience":
        try:
            return cls(
                state=tuple(float(v) for v in payload["state"]),
                action=int(payload["action"]),
                reward=float(payload["reward"]),
                next_state=tuple(float(v) for v in payload["next_state"]),
                done=bool(payload["done"]),
                action_confidence=float(payload.get("action_confidence", 1.0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseFailure(f"Malformed experience record: {exc}") from exc


@dataclass(frozen=True, slots=True)
class Episode:
    """A finalized, ordered sequence of experiences."""

    episode_number: int
    experiences: tuple[Experience, ...]
    total_reward: float
    start_time: datetime
    end_time: datetime
    session_id: str = ""

    @classmethod
    def from_experiences(
        cls,
        episode_number: int,
        experiences: Iterable[Experience],
        *,
        session_id: str = "",
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> "Episode":
        items = tuple(experiences)
        now = _utc_now()
        return cls(
            episode_number=episode_number,
            experiences=items,
            total_reward=sum(e.reward for e in items),
            start_time=start_time or now,
            end_time=end_time or now,
            session_id=session_id,
        )

    @property
    def length(self) -> int:
        return len(self.experiences)

    @property
    def duration_s(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


@dataclass(frozen=True, slots=True)
class ConfidenceStats:
    """Summary of ``action_confidence`` over a set of experiences."""

    average: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    high_confidence_pct: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "avg": self.average,
            "min": self.minimum,
            "max": self.maximum,
            "high_confidence_pct": self.high_confidence_pct,
        }


@dataclass(frozen=True, slots=True)
class TrainingMetrics:
    """Aggregate statistics over a corpus of episodes.

    An all-zero instance stands for "no data"; it is never an error.
    """

    total_episodes: int = 0
    total_experiences: int = 0
    avg_episode_length: float = 0.0
    average_reward: float = 0.0
    max_reward: float = 0.0
    min_reward: float = 0.0
    reward_std_dev: float = 0.0
    action_distribution: Mapping[str, int] = field(default_factory=dict)
    confidence: ConfidenceStats = field(default_factory=ConfidenceStats)

    @property
    def episode_count(self) -> int:
        return self.total_episodes

    @property
    def average_action_confidence(self) -> float:
        return self.confidence.average

    @property
    def has_data(self) -> bool:
        return self.total_episodes > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_episodes": self.total_episodes,
            "total_experiences": self.total_experiences,
            "avg_episode_length": self.avg_episode_length,
            "average_reward": self.average_reward,
            "max_reward": self.max_reward,
            "min_reward": self.min_reward,
            "reward_std_dev": self.reward_std_dev,
            "average_action_confidence": self.average_action_confidence,
            "action_distribution": dict(self.action_distribution),
            "confidence": self.confidence.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class ModelArtifact:
    """A named model payload together with its performance score."""

    model_name: str
    model_data: Mapping[str, Any]
    performance_score: float
    created_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_name,
            "model_data": dict(self.model_data),
            "performance_score": self.performance_score,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ModelArtifact":
        try:
            created_raw = payload.get("created_at")
            created_at = datetime.fromisoformat(created_raw) if created_raw else _utc_now()
            data = payload["model_data"]
            if not isinstance(data, Mapping):
                raise TypeError("model_data must be a mapping")
            return cls(
                model_name=str(payload["model_name"]),
                model_data=data,
                performance_score=float(payload["performance_score"]),
                created_at=created_at,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseFailure(f"Malformed model artifact: {exc}") from exc


def as_vector(values: Sequence[float]) -> tuple[float, ...]:
    """Coerce a numeric sequence into the immutable tuple form used by ``Experience``."""

    return tuple(float(v) for v in values)


__all__ = [
    "Action",
    "action_name",
    "action_from_name",
    "Experience",
    "Episode",
    "ConfidenceStats",
    "TrainingMetrics",
    "ModelArtifact",
    "as_vector",
]
