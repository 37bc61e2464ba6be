"""Utility functions used across the project."""

from .file_io import DocumentResolver, atomic_write_bytes, is_url
from .normalize import DEFAULT_WATERMARK_PATTERNS, clean_lines, clean_watermark_text, is_watermark_line

__all__ = [
    "DocumentResolver",
    "atomic_write_bytes",
    "is_url",
    "DEFAULT_WATERMARK_PATTERNS",
    "clean_lines",
    "clean_watermark_text",
    "is_watermark_line",
]
