"""Exception hierarchy shared by the game trainer components."""

from __future__ import annotations


class GameTrainerError(Exception):
    """Base class for all recoverable game trainer failures."""


class InvalidDimension(GameTrainerError, ValueError):
    """A state vector or action index does not match the configured sizes."""


class EmptyEpisode(GameTrainerError):
    """An episode was finalized or saved without any experiences."""


class IOFailure(GameTrainerError, OSError):
    """Persistent storage could not be read or written."""


class ParseFailure(GameTrainerError):
    """A stored artifact exists but its content is malformed."""

    def __init__(self, message: str, *, path: object | None = None) -> None:
        super().__init__(message)
        self.path = path


class PhaseFailure(GameTrainerError):
    """An orchestrator phase raised; carries the phase name and cycle."""

    def __init__(self, phase: str, cycle: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Phase {phase} failed in cycle {cycle}{detail}")
        self.phase = phase
        self.cycle = cycle
        self.cause = cause


__all__ = [
    "GameTrainerError",
    "InvalidDimension",
    "EmptyEpisode",
    "IOFailure",
    "ParseFailure",
    "PhaseFailure",
]
