"""Trainer-level defaults and internal configuration constants.

These values seed ``Settings``, ``QLearningConfig`` and ``OrchestratorConfig``
when nothing more specific is supplied. Keep numeric defaults here so the CLI
and the services agree on them.
"""

# ---------------------------------------------------------------------------
# Encoding dimensions
# ---------------------------------------------------------------------------

# Length of the pre-encoded game-state feature vector
DEFAULT_STATE_SIZE = 30

# Number of discrete actions (8 movement directions + STOP)
DEFAULT_ACTION_SIZE = 9

# ---------------------------------------------------------------------------
# Q-Learning algorithm defaults
# ---------------------------------------------------------------------------

# Learning rate (alpha)
DEFAULT_Q_ALPHA = 0.1

# Discount factor (gamma)
DEFAULT_Q_GAMMA = 0.99

# Exploration rate (epsilon) used by predict_action
DEFAULT_Q_EPSILON = 0.1

# Experiences per loss-reporting chunk
DEFAULT_BATCH_SIZE = 32

# Buckets per unit of feature value when discretizing states
DEFAULT_STATE_BINS = 4
# Episode totals kept in TrainerMetrics.reward_history (oldest dropped first)
REWARD_HISTORY_LIMIT = 1000

# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

# Confidence at or above which an action counts as "high confidence"
HIGH_CONFIDENCE_THRESHOLD = 0.7

# Episodes per learning-curve window
DEFAULT_LEARNING_CURVE_WINDOW = 10

# ---------------------------------------------------------------------------
# Simulated game
# ---------------------------------------------------------------------------

DEFAULT_MIN_EPISODE_STEPS = 50
DEFAULT_MAX_EPISODE_STEPS = 500

# Probability of losing a life on any step
DEFAULT_LIFE_LOSS_PROBABILITY = 0.05

SURVIVAL_REWARD = 0.15
PROXIMITY_PENALTY = 0.05
STOP_PENALTY = 0.03
EPISODE_END_BONUS = 1.0

# ---------------------------------------------------------------------------
# Collection / orchestration
# ---------------------------------------------------------------------------

# Pause between simulated episodes (seconds)
DEFAULT_EPISODE_DELAY_S = 0.01

# Log collection progress every N episodes
DEFAULT_COLLECTOR_PROGRESS_EVERY = 10

DEFAULT_EPISODES_PER_CYCLE = 5
DEFAULT_COOLDOWN_S = 2.0
DEFAULT_BACKOFF_S = 5.0
DEFAULT_NOOP_PHASE_S = 2.0

# Log orchestrator progress every N completed cycles
DEFAULT_ORCHESTRATOR_PROGRESS_EVERY = 5

# Model slots trained during the GAME_AI phase, with the reward scale each
# slot learns from (the adversary learns from the negated reward)
DEFAULT_MODEL_SLOTS = (("player", 1.0), ("adversary", -1.0), ("auxiliary", 0.5))

# Episode files kept by the retention prune
DEFAULT_KEEP_RECENT = 50

__all__ = [
    "DEFAULT_STATE_SIZE",
    "DEFAULT_ACTION_SIZE",
    "DEFAULT_Q_ALPHA",
    "DEFAULT_Q_GAMMA",
    "DEFAULT_Q_EPSILON",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_STATE_BINS",
    "REWARD_HISTORY_LIMIT",
    "HIGH_CONFIDENCE_THRESHOLD",
    "DEFAULT_LEARNING_CURVE_WINDOW",
    "DEFAULT_MIN_EPISODE_STEPS",
    "DEFAULT_MAX_EPISODE_STEPS",
    "DEFAULT_LIFE_LOSS_PROBABILITY",
    "SURVIVAL_REWARD",
    "PROXIMITY_PENALTY",
    "STOP_PENALTY",
    "EPISODE_END_BONUS",
    "DEFAULT_EPISODE_DELAY_S",
    "DEFAULT_COLLECTOR_PROGRESS_EVERY",
    "DEFAULT_EPISODES_PER_CYCLE",
    "DEFAULT_COOLDOWN_S",
    "DEFAULT_BACKOFF_S",
    "DEFAULT_NOOP_PHASE_S",
    "DEFAULT_ORCHESTRATOR_PROGRESS_EVERY",
    "DEFAULT_MODEL_SLOTS",
    "DEFAULT_KEEP_RECENT",
]
