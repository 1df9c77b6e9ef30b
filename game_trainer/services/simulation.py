from __future__ import annotations

"""Headless stand-in for the game loop.

``SimulatedGame`` produces plausible feature vectors, shaped rewards and
terminal flags so collection and orchestration can run without the real
game. It makes no attempt at faithful game dynamics.
"""

from dataclasses import dataclass
import math
import random
from typing import List, Optional, Tuple

from game_trainer import constants
from game_trainer.algorithms.policies import ActionPolicy
from game_trainer.core.data_model import Action, Episode
from game_trainer.core.experience_store import ExperienceStore

_WIDTH = 800.0
_HEIGHT = 600.0
_PLAYER_SPEED = 5.0
_START_LIVES = 3

_DIRECTIONS = {
    Action.NORTH: (0.0, -1.0),
    Action.SOUTH: (0.0, 1.0),
    Action.EAST: (1.0, 0.0),
    Action.WEST: (-1.0, 0.0),
    Action.NORTHEAST: (math.sqrt(0.5), -math.sqrt(0.5)),
    Action.NORTHWEST: (-math.sqrt(0.5), -math.sqrt(0.5)),
    Action.SOUTHEAST: (math.sqrt(0.5), math.sqrt(0.5)),
    Action.SOUTHWEST: (-math.sqrt(0.5), math.sqrt(0.5)),
    Action.STOP: (0.0, 0.0),
}


@dataclass(slots=True)
class _Frame:
    """Mutable per-step world snapshot."""

    x: float
    y: float
    vx: float
    vy: float
    lives: int
    enemies: List[Tuple[float, float]]
    lasers: int


def shaped_reward(action: int, enemy_count: int, *, final_step: bool) -> float:
    """Survival bonus minus proximity and stop penalties, plus an end bonus."""

    reward = constants.SURVIVAL_REWARD
    reward -= constants.PROXIMITY_PENALTY * enemy_count
    if action == int(Action.STOP):
        reward -= constants.STOP_PENALTY
    if final_step:
        reward += constants.EPISODE_END_BONUS
    return reward


class SimulatedGame:
    def __init__(
        self,
        *,
        state_size: int = constants.DEFAULT_STATE_SIZE,
        action_size: int = constants.DEFAULT_ACTION_SIZE,
        rng: Optional[random.Random] = None,
        min_steps: int = constants.DEFAULT_MIN_EPISODE_STEPS,
        max_steps: int = constants.DEFAULT_MAX_EPISODE_STEPS,
        life_loss_probability: float = constants.DEFAULT_LIFE_LOSS_PROBABILITY,
    ) -> None:
        if min_steps < 1 or max_steps < min_steps:
            raise ValueError("require 1 <= min_steps <= max_steps")
        self.state_size = state_size
        self.action_size = action_size
        self.min_steps = min_steps
        self.max_steps = max_steps
        self.life_loss_probability = life_loss_probability
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    def _spawn_enemies(self) -> List[Tuple[float, float]]:
        count = self._rng.randint(3, 5)
        return [(self._rng.uniform(0.0, _WIDTH), self._rng.uniform(0.0, _HEIGHT)) for _ in range(count)]

    def _encode(self, frame: _Frame) -> List[float]:
        """Encode ``frame`` as a vector of exactly ``state_size`` features."""

        features: List[float] = [
            frame.x / _WIDTH,
            frame.y / _HEIGHT,
            frame.vx / _PLAYER_SPEED,
            frame.vy / _PLAYER_SPEED,
            frame.lives / _START_LIVES,
            1.0 if frame.lives <= 0 else 0.0,
            len(frame.enemies) / 10.0,
            frame.lasers / 10.0,
        ]
        diagonal = math.hypot(_WIDTH, _HEIGHT)
        by_distance = sorted(frame.enemies, key=lambda e: math.hypot(e[0] - frame.x, e[1] - frame.y))
        for ex, ey in by_distance:
            features.extend(
                [
                    (ex - frame.x) / _WIDTH,
                    (ey - frame.y) / _HEIGHT,
                    math.hypot(ex - frame.x, ey - frame.y) / diagonal,
                ]
            )
        if len(features) < self.state_size:
            features.extend([0.0] * (self.state_size - len(features)))
        return features[: self.state_size]

    def _move(self, frame: _Frame, action: int) -> None:
        try:
            dx, dy = _DIRECTIONS[Action(action)]
        except ValueError:
            dx, dy = 0.0, 0.0
        frame.vx = dx * _PLAYER_SPEED
        frame.vy = dy * _PLAYER_SPEED
        frame.x = min(_WIDTH, max(0.0, frame.x + frame.vx))
        frame.y = min(_HEIGHT, max(0.0, frame.y + frame.vy))

    # ------------------------------------------------------------------
    def run_episode(self, policy: ActionPolicy, store: ExperienceStore) -> Episode:
        """Play one episode with ``policy`` into ``store`` and finalize it."""

        rng = self._rng
        steps = rng.randint(self.min_steps, self.max_steps)
        frame = _Frame(
            x=rng.uniform(100.0, _WIDTH - 100.0),
            y=rng.uniform(100.0, _HEIGHT - 100.0),
            vx=0.0,
            vy=0.0,
            lives=_START_LIVES,
            enemies=self._spawn_enemies(),
            lasers=rng.randint(1, 4),
        )
        store.reset()
        for step in range(steps):
            state = self._encode(frame)
            action = policy.select(state)
            final_step = step == steps - 1
            reward = shaped_reward(action, len(frame.enemies), final_step=final_step)

            self._move(frame, action)
            if rng.random() < self.life_loss_probability:
                frame.lives -= 1
            frame.enemies = self._spawn_enemies()
            frame.lasers = rng.randint(1, 4)
            done = final_step or frame.lives <= 0

            store.record(
                state,
                action,
                reward,
                self._encode(frame),
                done,
                confidence=rng.uniform(0.7, 1.0),
            )
            if done:
                break
        return store.end_episode()


__all__ = ["SimulatedGame", "shaped_reward"]
