"""Structured log constants shared across the game trainer.

Every event the package logs is declared here as a :class:`LogConstant`
carrying a stable code, a level, a base message and component metadata.
Emitters attach the constant through :func:`game_trainer.logging_config.helpers.log_constant`
so that log inspectors can filter on ``log_code``/``component`` instead of
parsing free text.

## Usage

    from functools import partial
    from game_trainer.logging_config.helpers import log_constant
    from game_trainer.logging_config.log_constants import LOG_STORAGE_EPISODE_SAVED

    _log = partial(log_constant, _LOGGER)
    _log(LOG_STORAGE_EPISODE_SAVED, extra={"episode_number": 3})

## Lookup & Validation

    const = get_constant_by_code("LOG203")
    errors = validate_log_constants()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Set, Tuple
import logging


@dataclass(frozen=True, slots=True)
class LogConstant:
    """Container describing a structured log record template."""

    code: str
    level: int | str
    message: str
    component: str
    subcomponent: str
    tags: tuple[str, ...] = ()


def _tags(*values: str) -> tuple[str, ...]:
    return tuple(v for v in values if v)


def _constant(
    code: str,
    level: int | str,
    message: str,
    *,
    component: str,
    subcomponent: str,
    tags: Iterable[str] = (),
) -> LogConstant:
    return LogConstant(
        code=code,
        level=level,
        message=message,
        component=component,
        subcomponent=subcomponent,
        tags=tuple(tags),
    )


# ---------------------------------------------------------------------------
# Core constants (LOG101–LOG119)
# ---------------------------------------------------------------------------
LOG_SESSION_STARTED = _constant(
    "LOG101",
    "INFO",
    "Collection session started",
    component="Core",
    subcomponent="CollectionSession",
    tags=_tags("session", "counter"),
)

LOG_EXPERIENCE_REJECTED = _constant(
    "LOG102",
    "WARNING",
    "Experience rejected",
    component="Core",
    subcomponent="ExperienceStore",
    tags=_tags("experience", "validation"),
)

LOG_EPISODE_FINALIZED = _constant(
    "LOG103",
    "DEBUG",
    "Episode finalized",
    component="Core",
    subcomponent="ExperienceStore",
    tags=_tags("episode", "finalize"),
)

LOG_EPISODE_EMPTY = _constant(
    "LOG104",
    "WARNING",
    "End of episode requested with no recorded experiences",
    component="Core",
    subcomponent="ExperienceStore",
    tags=_tags("episode", "empty"),
)

# ---------------------------------------------------------------------------
# Storage constants (LOG201–LOG239)
# ---------------------------------------------------------------------------
LOG_STORAGE_EPISODE_SAVED = _constant(
    "LOG201",
    "DEBUG",
    "Episode written to storage",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("episode", "write"),
)

LOG_STORAGE_EPISODE_SAVE_FAILED = _constant(
    "LOG202",
    "ERROR",
    "Episode write failed",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("episode", "write", "error"),
)

LOG_STORAGE_EPISODE_PARSE_SKIPPED = _constant(
    "LOG203",
    "WARNING",
    "Skipped unreadable episode file",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("episode", "parse", "skip"),
)

LOG_STORAGE_EXPORT_COMPLETED = _constant(
    "LOG204",
    "INFO",
    "Consolidated training dataset exported",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("export"),
)

LOG_STORAGE_EXPORT_FAILED = _constant(
    "LOG205",
    "ERROR",
    "Consolidated dataset export failed",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("export", "error"),
)

LOG_STORAGE_CLEARED = _constant(
    "LOG206",
    "INFO",
    "Training data cleared",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("clear"),
)

LOG_STORAGE_PRUNED = _constant(
    "LOG207",
    "INFO",
    "Old episode files pruned",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("retention", "prune"),
)

LOG_STORAGE_HEADER_UNREADABLE = _constant(
    "LOG208",
    "WARNING",
    "Episode header unreadable; excluded from stats",
    component="Storage",
    subcomponent="Episodes",
    tags=_tags("episode", "stats", "skip"),
)

LOG_REGISTRY_MODEL_SAVED = _constant(
    "LOG221",
    "INFO",
    "Model artifact stored as new best",
    component="Storage",
    subcomponent="ModelRegistry",
    tags=_tags("model", "write"),
)

LOG_REGISTRY_MODEL_KEPT = _constant(
    "LOG222",
    "INFO",
    "Existing model artifact retained",
    component="Storage",
    subcomponent="ModelRegistry",
    tags=_tags("model", "keep"),
)

LOG_REGISTRY_MODEL_UNREADABLE = _constant(
    "LOG223",
    "WARNING",
    "Stored model artifact unreadable; treating score as -inf",
    component="Storage",
    subcomponent="ModelRegistry",
    tags=_tags("model", "parse"),
)

LOG_REGISTRY_SAVE_FAILED = _constant(
    "LOG224",
    "ERROR",
    "Model artifact write failed",
    component="Storage",
    subcomponent="ModelRegistry",
    tags=_tags("model", "write", "error"),
)

LOG_COORDINATOR_WRITE_SHIELDED = _constant(
    "LOG231",
    "INFO",
    "Cancellation deferred until in-flight write completes",
    component="Storage",
    subcomponent="Coordinator",
    tags=_tags("cancel", "write"),
)

# ---------------------------------------------------------------------------
# Trainer constants (LOG301–LOG319)
# ---------------------------------------------------------------------------
LOG_TRAINER_INITIALIZED = _constant(
    "LOG301",
    "INFO",
    "Q-learning trainer initialized",
    component="Trainer",
    subcomponent="QLearning",
    tags=_tags("trainer", "init"),
)

LOG_TRAINER_TRAINING_STARTED = _constant(
    "LOG302",
    "INFO",
    "Training pass started",
    component="Trainer",
    subcomponent="QLearning",
    tags=_tags("trainer", "train"),
)

LOG_TRAINER_PROGRESS = _constant(
    "LOG303",
    "DEBUG",
    "Training progress",
    component="Trainer",
    subcomponent="QLearning",
    tags=_tags("trainer", "progress"),
)

LOG_TRAINER_TRAINING_COMPLETED = _constant(
    "LOG304",
    "INFO",
    "Training pass completed",
    component="Trainer",
    subcomponent="QLearning",
    tags=_tags("trainer", "train", "summary"),
)

LOG_TRAINER_EXPERIENCE_SKIPPED = _constant(
    "LOG305",
    "WARNING",
    "Malformed experience skipped during training",
    component="Trainer",
    subcomponent="QLearning",
    tags=_tags("trainer", "validation", "skip"),
)

LOG_TRAINER_MODEL_LOADED = _constant(
    "LOG306",
    "INFO",
    "Q-table restored from model data",
    component="Trainer",
    subcomponent="QLearning",
    tags=_tags("trainer", "load"),
)

LOG_POLICY_CREATED = _constant(
    "LOG311",
    "DEBUG",
    "Action policy created",
    component="Trainer",
    subcomponent="Policy",
    tags=_tags("policy"),
)

# ---------------------------------------------------------------------------
# Service constants (LOG401–LOG439)
# ---------------------------------------------------------------------------
LOG_ANALYZER_NO_DATA = _constant(
    "LOG401",
    "WARNING",
    "No training data found",
    component="Service",
    subcomponent="Analyzer",
    tags=_tags("analysis", "empty"),
)

LOG_ANALYZER_COMPLETED = _constant(
    "LOG402",
    "INFO",
    "Data analysis completed",
    component="Service",
    subcomponent="Analyzer",
    tags=_tags("analysis"),
)

LOG_ANALYZER_REPORT_EXPORTED = _constant(
    "LOG403",
    "INFO",
    "Analysis report exported",
    component="Service",
    subcomponent="Analyzer",
    tags=_tags("analysis", "report"),
)

LOG_COLLECTOR_STARTED = _constant(
    "LOG421",
    "INFO",
    "Episode collection started",
    component="Service",
    subcomponent="Collector",
    tags=_tags("collect", "start"),
)

LOG_COLLECTOR_PROGRESS = _constant(
    "LOG422",
    "INFO",
    "Episode collection progress",
    component="Service",
    subcomponent="Collector",
    tags=_tags("collect", "progress"),
)

LOG_COLLECTOR_STOPPED = _constant(
    "LOG423",
    "INFO",
    "Episode collection stopped by request",
    component="Service",
    subcomponent="Collector",
    tags=_tags("collect", "cancel"),
)

LOG_COLLECTOR_COMPLETED = _constant(
    "LOG424",
    "INFO",
    "Episode collection session complete",
    component="Service",
    subcomponent="Collector",
    tags=_tags("collect", "summary"),
)

# ---------------------------------------------------------------------------
# Orchestrator constants (LOG501–LOG529)
# ---------------------------------------------------------------------------
LOG_ORCHESTRATOR_STARTED = _constant(
    "LOG501",
    "INFO",
    "Phase orchestrator started",
    component="Orchestrator",
    subcomponent="Supervisor",
    tags=_tags("orchestrator", "start"),
)

LOG_ORCHESTRATOR_TRANSITION = _constant(
    "LOG502",
    "DEBUG",
    "Orchestrator state transition",
    component="Orchestrator",
    subcomponent="StateMachine",
    tags=_tags("orchestrator", "transition"),
)

LOG_ORCHESTRATOR_PHASE_STARTED = _constant(
    "LOG503",
    "INFO",
    "Phase started",
    component="Orchestrator",
    subcomponent="Phase",
    tags=_tags("orchestrator", "phase", "start"),
)

LOG_ORCHESTRATOR_PHASE_COMPLETED = _constant(
    "LOG504",
    "INFO",
    "Phase completed",
    component="Orchestrator",
    subcomponent="Phase",
    tags=_tags("orchestrator", "phase", "complete"),
)

LOG_ORCHESTRATOR_PHASE_FAILED = _constant(
    "LOG505",
    "ERROR",
    "Phase failed; abandoning cycle",
    component="Orchestrator",
    subcomponent="Phase",
    tags=_tags("orchestrator", "phase", "error"),
)

LOG_ORCHESTRATOR_BACKOFF = _constant(
    "LOG506",
    "WARNING",
    "Backing off before next cycle",
    component="Orchestrator",
    subcomponent="Supervisor",
    tags=_tags("orchestrator", "backoff"),
)

LOG_ORCHESTRATOR_CYCLE_COMPLETED = _constant(
    "LOG507",
    "INFO",
    "Training cycle completed",
    component="Orchestrator",
    subcomponent="Supervisor",
    tags=_tags("orchestrator", "cycle"),
)

LOG_ORCHESTRATOR_PROGRESS = _constant(
    "LOG508",
    "INFO",
    "Orchestrator progress",
    component="Orchestrator",
    subcomponent="Supervisor",
    tags=_tags("orchestrator", "progress"),
)

LOG_ORCHESTRATOR_STOP_REQUESTED = _constant(
    "LOG509",
    "INFO",
    "Stop requested",
    component="Orchestrator",
    subcomponent="Supervisor",
    tags=_tags("orchestrator", "cancel"),
)

LOG_ORCHESTRATOR_STOPPED = _constant(
    "LOG510",
    "INFO",
    "Orchestrator stopped",
    component="Orchestrator",
    subcomponent="Supervisor",
    tags=_tags("orchestrator", "summary"),
)

LOG_ORCHESTRATOR_SLOT_TRAINED = _constant(
    "LOG511",
    "INFO",
    "Model slot trained",
    component="Orchestrator",
    subcomponent="Phase",
    tags=_tags("orchestrator", "train", "slot"),
)

# ---------------------------------------------------------------------------
# Config / CLI constants (LOG601–LOG719)
# ---------------------------------------------------------------------------
LOG_CONFIG_LOADED = _constant(
    "LOG601",
    "DEBUG",
    "Configuration loaded",
    component="Config",
    subcomponent="Settings",
    tags=_tags("config"),
)

LOG_CONFIG_WARNING = _constant(
    "LOG602",
    "WARNING",
    "Configuration value ignored",
    component="Config",
    subcomponent="Settings",
    tags=_tags("config", "warning"),
)

LOG_CLI_COMMAND_STARTED = _constant(
    "LOG701",
    "INFO",
    "Command started",
    component="CLI",
    subcomponent="Command",
    tags=_tags("cli"),
)

LOG_CLI_COMMAND_FAILED = _constant(
    "LOG702",
    "ERROR",
    "Command failed",
    component="CLI",
    subcomponent="Command",
    tags=_tags("cli", "error"),
)

LOG_CLI_CONFIRMATION_DECLINED = _constant(
    "LOG703",
    "WARNING",
    "Destructive command not confirmed",
    component="CLI",
    subcomponent="Command",
    tags=_tags("cli", "confirm"),
)


# =========================================================================
# Helper Functions for Runtime Discovery & Validation
# =========================================================================


def get_constant_by_code(code: str) -> LogConstant | None:
    """Retrieve a log constant by its code identifier, or ``None``."""
    for const in ALL_LOG_CONSTANTS:
        if const.code == code:
            return const
    return None


def list_known_components() -> list[str]:
    """Return the sorted unique component names."""
    return sorted(set(const.component for const in ALL_LOG_CONSTANTS))


def get_component_snapshot() -> Dict[str, Set[str]]:
    """Map each component to the set of its known subcomponents."""
    snapshot: Dict[str, Set[str]] = {}
    for const in ALL_LOG_CONSTANTS:
        snapshot.setdefault(const.component, set()).add(const.subcomponent)
    return snapshot


def validate_log_constants() -> list[str]:
    """Validate that all log constants conform to logging standards.

    Checks that every constant has non-empty fields, a level known to
    :mod:`logging`, and a unique code.

    Returns:
        A list of error messages. Empty list if all constants are valid.
    """
    errors: list[str] = []
    seen_codes: set[str] = set()

    for const in ALL_LOG_CONSTANTS:
        if not const.code:
            errors.append(f"LogConstant has empty code: {const}")
        if not const.message:
            errors.append(f"LogConstant {const.code} has empty message")
        if not const.component:
            errors.append(f"LogConstant {const.code} has empty component")
        if not const.subcomponent:
            errors.append(f"LogConstant {const.code} has empty subcomponent")

        if isinstance(const.level, str):
            if const.level not in logging._nameToLevel:
                errors.append(f"LogConstant {const.code} has invalid level: {const.level}")
        elif not isinstance(const.level, int):
            errors.append(
                f"LogConstant {const.code} has invalid level type: {type(const.level)}"
            )

        if const.code in seen_codes:
            errors.append(f"Duplicate constant code: {const.code}")
        seen_codes.add(const.code)

    return errors


# Aggregate tuple for quick iteration during tests or tooling.
ALL_LOG_CONSTANTS: Tuple[LogConstant, ...] = (
    LOG_SESSION_STARTED,
    LOG_EXPERIENCE_REJECTED,
    LOG_EPISODE_FINALIZED,
    LOG_EPISODE_EMPTY,
    LOG_STORAGE_EPISODE_SAVED,
    LOG_STORAGE_EPISODE_SAVE_FAILED,
    LOG_STORAGE_EPISODE_PARSE_SKIPPED,
    LOG_STORAGE_EXPORT_COMPLETED,
    LOG_STORAGE_EXPORT_FAILED,
    LOG_STORAGE_CLEARED,
    LOG_STORAGE_PRUNED,
    LOG_STORAGE_HEADER_UNREADABLE,
    LOG_REGISTRY_MODEL_SAVED,
    LOG_REGISTRY_MODEL_KEPT,
    LOG_REGISTRY_MODEL_UNREADABLE,
    LOG_REGISTRY_SAVE_FAILED,
    LOG_COORDINATOR_WRITE_SHIELDED,
    LOG_TRAINER_INITIALIZED,
    LOG_TRAINER_TRAINING_STARTED,
    LOG_TRAINER_PROGRESS,
    LOG_TRAINER_TRAINING_COMPLETED,
    LOG_TRAINER_EXPERIENCE_SKIPPED,
    LOG_TRAINER_MODEL_LOADED,
    LOG_POLICY_CREATED,
    LOG_ANALYZER_NO_DATA,
    LOG_ANALYZER_COMPLETED,
    LOG_ANALYZER_REPORT_EXPORTED,
    LOG_COLLECTOR_STARTED,
    LOG_COLLECTOR_PROGRESS,
    LOG_COLLECTOR_STOPPED,
    LOG_COLLECTOR_COMPLETED,
    LOG_ORCHESTRATOR_STARTED,
    LOG_ORCHESTRATOR_TRANSITION,
    LOG_ORCHESTRATOR_PHASE_STARTED,
    LOG_ORCHESTRATOR_PHASE_COMPLETED,
    LOG_ORCHESTRATOR_PHASE_FAILED,
    LOG_ORCHESTRATOR_BACKOFF,
    LOG_ORCHESTRATOR_CYCLE_COMPLETED,
    LOG_ORCHESTRATOR_PROGRESS,
    LOG_ORCHESTRATOR_STOP_REQUESTED,
    LOG_ORCHESTRATOR_STOPPED,
    LOG_ORCHESTRATOR_SLOT_TRAINED,
    LOG_CONFIG_LOADED,
    LOG_CONFIG_WARNING,
    LOG_CLI_COMMAND_STARTED,
    LOG_CLI_COMMAND_FAILED,
    LOG_CLI_CONFIRMATION_DECLINED,
)


__all__ = (
    "LogConstant",
    "ALL_LOG_CONSTANTS",
    "get_constant_by_code",
    "list_known_components",
    "get_component_snapshot",
    "validate_log_constants",
) + tuple(name for name in list(globals()) if name.startswith("LOG_"))
