"""End to end generation of one visual diff attempt."""

from .generate import DiffPipeline

__all__ = ["DiffPipeline"]
