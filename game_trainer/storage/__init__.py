"""Episode files, model artifacts and the async write coordinator."""

from .coordinator import StorageCoordinator
from .episodes import EpisodePersistence
from .models import ModelRegistry, ModelSummary

__all__ = ["EpisodePersistence", "ModelRegistry", "ModelSummary", "StorageCoordinator"]
