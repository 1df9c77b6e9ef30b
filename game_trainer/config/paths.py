from __future__ import annotations

"""Centralized filesystem paths used across the game trainer."""

import os
from pathlib import Path


_PACKAGE_ROOT = Path(__file__).resolve().parent.parent
_REPO_ROOT = _PACKAGE_ROOT.parent

# Writable runtime artifacts. GAME_TRAINER_VAR_DIR relocates the whole tree.
VAR_ROOT = Path(os.getenv("GAME_TRAINER_VAR_DIR") or (_REPO_ROOT / "var")).expanduser().resolve()
VAR_TRAINING_DATA_DIR = VAR_ROOT / "training_data"  # one JSONL file per episode
VAR_MODELS_DIR = VAR_ROOT / "models"
VAR_REPORTS_DIR = VAR_ROOT / "reports"
VAR_LOGS_DIR = VAR_ROOT / "logs"


__all__ = [
    "VAR_ROOT",
    "VAR_TRAINING_DATA_DIR",
    "VAR_MODELS_DIR",
    "VAR_REPORTS_DIR",
    "VAR_LOGS_DIR",
]
