"""Persistence and lifecycle of generated artifacts."""

from .coordinator import GenerationCoordinator
from .repository import DiffRepository
from .store import ArtifactStore
from .watchdog import Watchdog

__all__ = ["ArtifactStore", "DiffRepository", "GenerationCoordinator", "Watchdog"]
