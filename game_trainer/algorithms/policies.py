from __future__ import annotations

"""Action policies used to drive the simulated game.

- RandomPolicy: uniform over the action space
- HeuristicPolicy: weighted draw favouring movement over ``STOP``
- GreedyPolicy: argmax of a trained :class:`QLearningTrainer`
"""

from enum import Enum
from functools import partial
import logging
import random
from typing import Optional, Protocol, Sequence

from game_trainer import constants
from game_trainer.algorithms.qlearning import QLearningTrainer
from game_trainer.core.data_model import Action
from game_trainer.logging_config.helpers import log_constant
from game_trainer.logging_config.log_constants import LOG_POLICY_CREATED

_LOGGER = logging.getLogger(__name__)
_log = partial(log_constant, _LOGGER)


class PolicyKind(str, Enum):
    RANDOM = "random"
    GREEDY = "greedy"
    HEURISTIC = "heuristic"


class ActionPolicy(Protocol):
    """Protocol every policy implementation must follow."""

    def select(self, state: Sequence[float]) -> int:
        """Return the action index to play in ``state``."""


class RandomPolicy:
    def __init__(self, action_size: int = constants.DEFAULT_ACTION_SIZE, *, rng: Optional[random.Random] = None) -> None:
        self.action_size = action_size
        self._rng = rng or random.Random()

    def select(self, state: Sequence[float]) -> int:
        return self._rng.randrange(self.action_size)


class HeuristicPolicy:
    """Weighted random choice; ``STOP`` is drawn at ``stop_weight`` relative odds."""

    def __init__(
        self,
        action_size: int = constants.DEFAULT_ACTION_SIZE,
        *,
        stop_weight: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.action_size = action_size
        self._rng = rng or random.Random()
        self._actions = list(range(action_size))
        self._weights = [
            stop_weight if index == int(Action.STOP) else 1.0 for index in self._actions
        ]

    def select(self, state: Sequence[float]) -> int:
        return self._rng.choices(self._actions, weights=self._weights, k=1)[0]


class GreedyPolicy:
    """Plays the trainer's best known action; ``explore`` keeps epsilon-greedy."""

    def __init__(self, trainer: QLearningTrainer, *, explore: bool = False) -> None:
        self.trainer = trainer
        self.explore = explore

    def select(self, state: Sequence[float]) -> int:
        return self.trainer.predict_action(state, explore=self.explore)


def create_policy(
    kind: PolicyKind | str,
    *,
    action_size: int = constants.DEFAULT_ACTION_SIZE,
    trainer: Optional[QLearningTrainer] = None,
    rng: Optional[random.Random] = None,
) -> ActionPolicy:
    """Factory for the policies above; ``greedy`` requires ``trainer``."""

    kind = PolicyKind(kind)
    policy: ActionPolicy
    if kind is PolicyKind.RANDOM:
        policy = RandomPolicy(action_size, rng=rng)
    elif kind is PolicyKind.HEURISTIC:
        policy = HeuristicPolicy(action_size, rng=rng)
    else:
        if trainer is None:
            raise ValueError("greedy policy requires a trainer")
        policy = GreedyPolicy(trainer)
    _log(LOG_POLICY_CREATED, extra={"policy": kind.value})
    return policy


__all__ = [
    "ActionPolicy",
    "PolicyKind",
    "RandomPolicy",
    "HeuristicPolicy",
    "GreedyPolicy",
    "create_policy",
]
