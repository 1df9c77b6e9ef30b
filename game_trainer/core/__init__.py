"""Core data model and in-memory experience capture."""

from .data_model import (
    Action,
    ConfidenceStats,
    Episode,
    Experience,
    ModelArtifact,
    TrainingMetrics,
    action_from_name,
    action_name,
)
from .errors import (
    EmptyEpisode,
    GameTrainerError,
    InvalidDimension,
    IOFailure,
    ParseFailure,
    PhaseFailure,
)
from .experience_store import CollectionSession, ExperienceStore

__all__ = [
    "Action",
    "ConfidenceStats",
    "Episode",
    "Experience",
    "ModelArtifact",
    "TrainingMetrics",
    "action_from_name",
    "action_name",
    "EmptyEpisode",
    "GameTrainerError",
    "InvalidDimension",
    "IOFailure",
    "ParseFailure",
    "PhaseFailure",
    "CollectionSession",
    "ExperienceStore",
]
