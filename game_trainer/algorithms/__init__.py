"""Q-learning trainer and action policies."""

from .policies import (
    ActionPolicy,
    GreedyPolicy,
    HeuristicPolicy,
    PolicyKind,
    RandomPolicy,
    create_policy,
)
from .qlearning import QLearningConfig, QLearningTrainer, TrainerMetrics

__all__ = [
    "ActionPolicy",
    "GreedyPolicy",
    "HeuristicPolicy",
    "PolicyKind",
    "RandomPolicy",
    "create_policy",
    "QLearningConfig",
    "QLearningTrainer",
    "TrainerMetrics",
]
