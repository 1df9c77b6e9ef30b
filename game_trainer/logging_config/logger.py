"""Central logging configuration for the game trainer."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple

from game_trainer.config.paths import VAR_LOGS_DIR

_DEFAULT_FORMAT = (
    "%(asctime)s | %(levelname)-7s | %(name)s | "
    "[comp=%(component)s sub=%(subcomponent)s session=%(session_id)s code=%(log_code)s tags=%(tags)s] | %(message)s"
)

_COMPONENT_PREFIXES: Dict[str, str] = {
    "game_trainer.core": "Core",
    "game_trainer.storage": "Storage",
    "game_trainer.algorithms": "Trainer",
    "game_trainer.services.orchestrator": "Orchestrator",
    "game_trainer.services": "Service",
    "game_trainer.config": "Config",
    "game_trainer.cli": "CLI",
}


def resolve_component(logger_name: str) -> str:
    """Return the component registered for the longest matching prefix."""

    best_len = -1
    component = "Unknown"
    for prefix, candidate in _COMPONENT_PREFIXES.items():
        if logger_name.startswith(prefix) and len(prefix) > best_len:
            component = candidate
            best_len = len(prefix)
    return component


class CorrelationIdFilter(logging.Filter):
    """Ensure ``session_id``, ``log_code`` and ``tags`` exist on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = "-"
        if not hasattr(record, "log_code"):
            record.log_code = None
        if not hasattr(record, "tags"):
            record.tags = "-"
        return True


class ComponentFilter(logging.Filter):
    """Annotate records with component/subcomponent metadata."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "component", None) is None:
            record.component = resolve_component(record.name)
        if getattr(record, "subcomponent", None) is None:
            record.subcomponent = "-"
        return True


_ACTIVE_CONFIG: Tuple[bool, Path | None] | None = None


def _project_loggers() -> Iterable[str]:
    return ("game_trainer",)


def configure_logging(
    level: int | str = logging.INFO,
    *,
    stream: bool = True,
    log_to_file: bool = False,
    log_dir: Path | None = None,
    force: bool = False,
) -> None:
    """Configure logging once per process using dictConfig.

    ``level`` controls the verbosity of ``game_trainer`` loggers while the root
    logger stays at WARNING unless ``level`` is DEBUG. Calling again with the
    same handler layout only adjusts the level.
    """

    global _ACTIVE_CONFIG

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    level_name = logging.getLevelName(level)

    target_dir = (log_dir or VAR_LOGS_DIR) if log_to_file else None
    config_key = (stream, target_dir)
    if _ACTIVE_CONFIG == config_key and not force:
        for name in _project_loggers():
            logging.getLogger(name).setLevel(level)
        return

    handlers: Dict[str, Dict[str, Any]] = {}
    if stream:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": level_name,
            "formatter": "structured",
            "filters": ["correlation", "component"],
        }
    if target_dir is not None:
        target_dir.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level_name,
            "formatter": "structured",
            "filters": ["correlation", "component"],
            "filename": str(target_dir / "game_trainer.log"),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"format": _DEFAULT_FORMAT},
            },
            "filters": {
                "correlation": {"()": "game_trainer.logging_config.logger.CorrelationIdFilter"},
                "component": {"()": "game_trainer.logging_config.logger.ComponentFilter"},
            },
            "handlers": handlers,
            "root": {
                "level": logging.getLevelName(root_level),
                "handlers": list(handlers),
            },
        }
    )

    for name in _project_loggers():
        logging.getLogger(name).setLevel(level)

    _ACTIVE_CONFIG = config_key


__all__ = [
    "configure_logging",
    "CorrelationIdFilter",
    "ComponentFilter",
    "resolve_component",
]
