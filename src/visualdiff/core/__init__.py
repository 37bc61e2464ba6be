"""Pure comparison logic and the shared data model."""

from .diff import compute_diff, compute_summary, describe_summary
from .types import ComparisonKey, DiffArtifact, DiffLine, DiffResult, LineSummary, WordSummary

__all__ = [
    "compute_diff",
    "compute_summary",
    "describe_summary",
    "ComparisonKey",
    "DiffArtifact",
    "DiffLine",
    "DiffResult",
    "LineSummary",
    "WordSummary",
]
