"""Clean extracted text before it is compared."""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Sequence

from ..core.types import TextLine

logger = logging.getLogger(__name__)

# Stamped onto downloaded copies of an article; never part of the content.
DEFAULT_WATERMARK_PATTERNS: tuple[str, ...] = (
    "DOWNLOADED FROM",
    "View online:",
    "http://localhost:3000",
    "https://localhost:3000",
)

_SEPARATOR_RE = re.compile(r"^[═\-_=\s]+$")


def is_watermark_line(line: str, patterns: Sequence[str] = DEFAULT_WATERMARK_PATTERNS) -> bool:
    """Return ``True`` for watermark stamps and separator-only lines."""

    stripped = line.strip()
    if not stripped:
        return False
    if any(pattern in stripped for pattern in patterns):
        return True
    return bool(_SEPARATOR_RE.match(stripped))


def clean_watermark_text(text: str, patterns: Sequence[str] = DEFAULT_WATERMARK_PATTERNS) -> str:
    kept = [line for line in text.split("\n") if not is_watermark_line(line, patterns)]
    return "\n".join(kept)


def clean_lines(lines: Iterable[TextLine], patterns: Sequence[str] = DEFAULT_WATERMARK_PATTERNS) -> List[TextLine]:
    """Drop watermark lines from positioned text, keeping the rest in order."""

    kept: List[TextLine] = []
    dropped = 0
    for line in lines:
        if is_watermark_line(line.text, patterns):
            dropped += 1
            continue
        kept.append(line)
    if dropped:
        logger.debug("dropped %s watermark line(s)", dropped)
    return kept
