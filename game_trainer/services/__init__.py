"""Services built on the core: simulation, collection, analysis, orchestration."""

from .analyzer import DataAnalyzer, LearningCurve
from .collector import CollectionSummary, EpisodeCollector
from .orchestrator import (
    OrchestratorConfig,
    OrchestratorState,
    OrchestratorSummary,
    Phase,
    PhaseKind,
    PhaseOrchestrator,
)
from .simulation import SimulatedGame

__all__ = [
    "DataAnalyzer",
    "LearningCurve",
    "CollectionSummary",
    "EpisodeCollector",
    "OrchestratorConfig",
    "OrchestratorState",
    "OrchestratorSummary",
    "Phase",
    "PhaseKind",
    "PhaseOrchestrator",
    "SimulatedGame",
]
