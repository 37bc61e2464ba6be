"""Visual diffs between two versions of a document."""

from __future__ import annotations

from .app_factory import create_coordinator
from .backend import ArtifactStore, DiffRepository, GenerationCoordinator, Watchdog
from .core import ComparisonKey, DiffArtifact, DiffResult, WordSummary, compute_diff, compute_summary
from .core.types import GenerationOutcome
from .errors import DiffError, MaxRetriesExceeded, StorageUnavailable
from .settings import DiffSettings

__all__ = [
    "compute_diff",
    "compute_summary",
    "create_coordinator",
    "ArtifactStore",
    "ComparisonKey",
    "DiffArtifact",
    "DiffError",
    "DiffRepository",
    "DiffResult",
    "DiffSettings",
    "GenerationCoordinator",
    "GenerationOutcome",
    "MaxRetriesExceeded",
    "StorageUnavailable",
    "Watchdog",
    "WordSummary",
]

__version__ = "0.3.0"
