from __future__ import annotations

"""Runtime configuration management for the game trainer."""

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path
from typing import Any
import yaml  # type: ignore[import-untyped]

from dotenv import load_dotenv

from game_trainer import constants
from game_trainer.config.paths import (
    VAR_MODELS_DIR,
    VAR_REPORTS_DIR,
    VAR_TRAINING_DATA_DIR,
)

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _PACKAGE_ROOT.parent
_ENV_FILE = _PROJECT_ROOT / ".env"
_ORCHESTRATOR_PROFILE_FILE = _PACKAGE_ROOT / "config" / "orchestrator_profiles.yaml"

# Load environment variables from the project root if present. Done once at
# import time so every module importing settings sees the values.
load_dotenv(_ENV_FILE, override=False)


def _normalize_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(raw: str | None, default: int, *, minimum: int = 1) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _parse_float(raw: str | None, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _resolve_dir(raw_path: str | None, default: Path) -> Path:
    if not raw_path:
        return default
    return Path(raw_path).expanduser().resolve()


@dataclass(frozen=True, slots=True)
class Settings:
    """Typed view over the environment configuration."""

    data_dir: Path = VAR_TRAINING_DATA_DIR
    models_dir: Path = VAR_MODELS_DIR
    reports_dir: Path = VAR_REPORTS_DIR
    log_level: str = "INFO"
    log_to_file: bool = False
    state_size: int = constants.DEFAULT_STATE_SIZE
    action_size: int = constants.DEFAULT_ACTION_SIZE
    learning_rate: float = constants.DEFAULT_Q_ALPHA
    discount_factor: float = constants.DEFAULT_Q_GAMMA
    exploration_rate: float = constants.DEFAULT_Q_EPSILON
    state_bins: int = constants.DEFAULT_STATE_BINS
    seed: int | None = None

    def qlearning_options(self) -> dict[str, Any]:
        """Return keyword options understood by ``QLearningConfig.from_dict``."""

        return {
            "learning_rate": self.learning_rate,
            "discount_factor": self.discount_factor,
            "exploration_rate": self.exploration_rate,
            "action_space_size": self.action_size,
            "state_space_size": self.state_size,
            "state_bins": self.state_bins,
        }


_DEFAULT_SETTINGS = Settings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables and cache the result."""

    defaults = _DEFAULT_SETTINGS

    seed_raw = os.getenv("GAME_TRAINER_SEED")
    try:
        seed = int(seed_raw) if seed_raw else None
    except ValueError:
        seed = None

    return Settings(
        data_dir=_resolve_dir(os.getenv("GAME_TRAINER_DATA_DIR"), defaults.data_dir),
        models_dir=_resolve_dir(os.getenv("GAME_TRAINER_MODELS_DIR"), defaults.models_dir),
        reports_dir=_resolve_dir(os.getenv("GAME_TRAINER_REPORTS_DIR"), defaults.reports_dir),
        log_level=os.getenv("GAME_TRAINER_LOG_LEVEL", os.getenv("LOG_LEVEL", defaults.log_level)),
        log_to_file=_normalize_bool(os.getenv("GAME_TRAINER_LOG_TO_FILE"), default=defaults.log_to_file),
        state_size=_parse_int(os.getenv("GAME_TRAINER_STATE_SIZE"), defaults.state_size),
        action_size=_parse_int(os.getenv("GAME_TRAINER_ACTION_SIZE"), defaults.action_size),
        learning_rate=_parse_float(os.getenv("GAME_TRAINER_LEARNING_RATE"), defaults.learning_rate),
        discount_factor=_parse_float(os.getenv("GAME_TRAINER_DISCOUNT_FACTOR"), defaults.discount_factor),
        exploration_rate=_parse_float(os.getenv("GAME_TRAINER_EXPLORATION_RATE"), defaults.exploration_rate),
        state_bins=_parse_int(os.getenv("GAME_TRAINER_STATE_BINS"), defaults.state_bins),
        seed=seed,
    )


def reload_settings() -> Settings:
    """Clear the settings cache and reload from the environment."""

    get_settings.cache_clear()
    load_dotenv(_ENV_FILE, override=True)
    return get_settings()


def load_orchestrator_profile(
    name: str = "default",
    *,
    path: Path | None = None,
) -> dict[str, Any]:
    """Load the named orchestrator profile from a YAML mapping of profiles.

    Missing files yield an empty mapping so callers fall back to defaults. A
    file that cannot be read or parsed, does not hold a mapping, or lacks
    ``name`` raises ``ValueError``.
    """

    source = path or _ORCHESTRATOR_PROFILE_FILE
    if not source.exists():
        return {}

    try:
        with source.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"{source.name} is not valid YAML: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ValueError(f"Could not read {source}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"{source.name} must define a mapping of profiles")

    profile = data.get(name)
    if profile is None:
        raise ValueError(f"Unknown orchestrator profile '{name}' in {source.name}")
    if not isinstance(profile, dict):
        raise ValueError(f"Orchestrator profile '{name}' must be a mapping")
    return dict(profile)


__all__ = ["Settings", "get_settings", "reload_settings", "load_orchestrator_profile"]
