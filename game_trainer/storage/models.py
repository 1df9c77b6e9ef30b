from __future__ import annotations

"""Best-only model registry backed by JSON artifacts."""

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import math
from pathlib import Path
import re
import shutil
from typing import Any, List, Mapping, Optional

from game_trainer.core.data_model import ModelArtifact
from game_trainer.core.errors import IOFailure, ParseFailure
from game_trainer.logging_config.helpers import LogConstantMixin
from game_trainer.logging_config.log_constants import (
    LOG_REGISTRY_MODEL_KEPT,
    LOG_REGISTRY_MODEL_SAVED,
    LOG_REGISTRY_MODEL_UNREADABLE,
    LOG_REGISTRY_SAVE_FAILED,
)
from game_trainer.storage.atomic import atomic_write_text

_MODEL_SUFFIX = "_model.json"
_BACKUP_SUFFIX = "_model_backup.json"
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


@dataclass(frozen=True, slots=True)
class ModelSummary:
    """Listing entry for a stored model."""

    model_name: str
    performance_score: float
    created_at: datetime
    updated_at: datetime
    path: Path


class ModelRegistry(LogConstantMixin):
    """Keeps, per model name, only the artifact with the best score.

    A candidate replaces the stored artifact only when its score is strictly
    greater; ties keep the existing one. The replaced artifact survives as a
    single ``<name>_model_backup.json``.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._logger = logging.getLogger(__name__)

    @staticmethod
    def _validate_name(name: str) -> str:
        if not _NAME_PATTERN.match(name or ""):
            raise ValueError(f"Invalid model name '{name}'")
        return name

    def model_path(self, name: str) -> Path:
        return self.root / f"{self._validate_name(name)}{_MODEL_SUFFIX}"

    def backup_path(self, name: str) -> Path:
        return self.root / f"{self._validate_name(name)}{_BACKUP_SUFFIX}"

    def _read_artifact(self, path: Path) -> ModelArtifact:
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseFailure(f"Invalid JSON in model artifact: {exc}", path=path) from exc
        except OSError as exc:
            raise IOFailure(f"Could not read model artifact {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ParseFailure("Model artifact is not a JSON object", path=path)
        return ModelArtifact.from_dict(payload)

    def _existing_score(self, name: str, path: Path) -> float:
        if not path.exists():
            return -math.inf
        try:
            return self._read_artifact(path).performance_score
        except (ParseFailure, IOFailure) as exc:
            self.log_constant(
                LOG_REGISTRY_MODEL_UNREADABLE,
                message=str(exc),
                extra={"model_name": name, "path": str(path)},
            )
            return -math.inf

    # ------------------------------------------------------------------
    def save_best_model(
        self,
        name: str,
        model_data: Mapping[str, Any],
        performance_score: float,
    ) -> Optional[Path]:
        """Store ``model_data`` if ``performance_score`` beats the stored best.

        Returns the path of the stored best artifact, new or existing, and
        ``None`` only when nothing is stored under ``name`` afterwards.
        """

        score = float(performance_score)
        if math.isnan(score):
            raise ValueError("performance_score must not be NaN")
        path = self.model_path(name)
        existing = self._existing_score(name, path)
        if not score > existing:
            self.log_constant(
                LOG_REGISTRY_MODEL_KEPT,
                extra={"model_name": name, "score": score, "existing_score": existing},
            )
            return path if path.exists() else None

        artifact = ModelArtifact(
            model_name=name,
            model_data=dict(model_data),
            performance_score=score,
            created_at=datetime.now(timezone.utc),
        )
        try:
            text = json.dumps(artifact.to_dict(), indent=2)
            if path.exists():
                shutil.copy2(path, self.backup_path(name))
            atomic_write_text(path, text)
        except (OSError, TypeError, ValueError) as exc:
            self.log_constant(
                LOG_REGISTRY_SAVE_FAILED,
                message=str(exc),
                extra={"model_name": name, "path": str(path)},
                exc_info=exc,
            )
            if isinstance(exc, OSError):
                raise IOFailure(f"Could not write model artifact {path}: {exc}") from exc
            raise

        self.log_constant(
            LOG_REGISTRY_MODEL_SAVED,
            extra={"model_name": name, "score": score, "previous_score": existing, "path": str(path)},
        )
        return path

    def get_best_model_path(self, name: str) -> Optional[Path]:
        path = self.model_path(name)
        return path if path.exists() else None

    def load_best_model(self, name: str) -> Optional[ModelArtifact]:
        """Return the stored artifact, ``None`` when absent.

        A present but malformed artifact raises ``ParseFailure``.
        """

        path = self.get_best_model_path(name)
        if path is None:
            return None
        return self._read_artifact(path)

    def list_models(self) -> List[ModelSummary]:
        """Summaries of every readable stored model, sorted by name."""

        if not self.root.is_dir():
            return []
        summaries: List[ModelSummary] = []
        for path in sorted(self.root.glob(f"*{_MODEL_SUFFIX}")):
            if path.name.startswith("."):
                continue
            try:
                artifact = self._read_artifact(path)
            except (ParseFailure, IOFailure) as exc:
                self.log_constant(LOG_REGISTRY_MODEL_UNREADABLE, message=str(exc), extra={"path": str(path)})
                continue
            summaries.append(
                ModelSummary(
                    model_name=artifact.model_name,
                    performance_score=artifact.performance_score,
                    created_at=artifact.created_at,
                    updated_at=datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc),
                    path=path,
                )
            )
        return summaries


__all__ = ["ModelRegistry", "ModelSummary"]
