from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

from ..errors import DiffError

ArtifactStatus = Literal["PENDING", "GENERATING", "READY", "FAILED"]
Classification = Literal["added", "removed", "modified", "unchanged"]
RenderMode = Literal["burned_in", "overlay"]
DocumentSide = Literal["source", "target"]
BBox = Tuple[float, float, float, float]

PENDING: ArtifactStatus = "PENDING"
GENERATING: ArtifactStatus = "GENERATING"
READY: ArtifactStatus = "READY"
FAILED: ArtifactStatus = "FAILED"
STATUSES: Tuple[ArtifactStatus, ...] = (PENDING, GENERATING, READY, FAILED)

RENDER_MODES: Tuple[RenderMode, ...] = ("burned_in", "overlay")

_SLUG_RE = re.compile(r"[^A-Za-z0-9_.-]+")
_SAFE_ID_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9_.-]*[A-Za-z0-9])?")


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class ComparisonKey:
    article_id: str
    source_version: int
    target_version: int

    def __post_init__(self) -> None:
        if not str(self.article_id).strip():
            raise ValueError("article_id must not be empty")
        if self.source_version < 0 or self.target_version < 0:
            raise ValueError("versions must be non-negative")

    @property
    def fingerprint(self) -> str:
        return f"{self.article_id}:v{self.source_version}-v{self.target_version}"

    @property
    def slug(self) -> str:
        """Article id as a file name component, distinct for distinct ids.

        Ids that are already file name safe and contain no ``--`` are used
        as-is.  Anything else is reduced to safe characters and suffixed with
        ``--`` and a hash of the raw id, so it cannot match a plain id.
        """

        article_id = str(self.article_id)
        if _SAFE_ID_RE.fullmatch(article_id) and "--" not in article_id:
            return article_id
        digest = hashlib.sha256(article_id.encode("utf-8")).hexdigest()[:12]
        base = _SLUG_RE.sub("_", article_id).strip("._-") or "article"
        return f"{base}--{digest}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "article_id": self.article_id,
            "source_version": self.source_version,
            "target_version": self.target_version,
        }


@dataclass(frozen=True)
class DiffArtifact:
    """Snapshot of the persisted state row for one comparison."""

    key: ComparisonKey
    status: ArtifactStatus
    attempt_count: int = 0
    artifact_location: Optional[str] = None
    last_error: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: bool = True
    generation_started_at: Optional[float] = None
    created_at: Optional[float] = None
    updated_at: Optional[float] = None

    def is_timed_out(self, now: float, timeout_s: float) -> bool:
        if self.status != GENERATING or self.generation_started_at is None:
            return False
        return now - self.generation_started_at >= timeout_s

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key.to_dict(),
            "fingerprint": self.key.fingerprint,
            "status": self.status,
            "attempt_count": self.attempt_count,
            "artifact_location": self.artifact_location,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "generation_started_at": _iso(self.generation_started_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class DiffLine:
    old_line: Optional[int]
    new_line: Optional[int]
    content: str
    classification: Classification
    previous: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "old_line": self.old_line,
            "new_line": self.new_line,
            "content": self.content,
            "classification": self.classification,
        }
        if self.previous is not None:
            data["previous"] = self.previous
        return data


@dataclass(frozen=True)
class LineSummary:
    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    def to_dict(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "removed": self.removed,
            "modified": self.modified,
            "unchanged": self.unchanged,
        }


@dataclass(frozen=True)
class WordSummary:
    """Word level change counts.

    ``modified_words`` pairs additions with removals purely by count
    (``min(added_words, removed_words)``); it does not mean the words
    correspond to each other.
    """

    added_words: int = 0
    removed_words: int = 0
    modified_words: int = 0
    total_changed_words: int = 0

    @property
    def actual_added(self) -> int:
        return self.added_words - self.modified_words

    @property
    def actual_removed(self) -> int:
        return self.removed_words - self.modified_words

    def to_dict(self) -> Dict[str, int]:
        return {
            "added_words": self.added_words,
            "removed_words": self.removed_words,
            "modified_words": self.modified_words,
            "actual_added": self.actual_added,
            "actual_removed": self.actual_removed,
            "total_changed_words": self.total_changed_words,
        }


@dataclass(frozen=True)
class DiffResult:
    lines: Tuple[DiffLine, ...]
    summary: LineSummary
    words: WordSummary

    def to_dict(self) -> Dict[str, object]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "summary": self.summary.to_dict(),
            "words": self.words.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, separators=(",", ":"))


@dataclass(frozen=True)
class TextLine:
    """One extracted line of text and, for paged documents, where it sits."""

    text: str
    page_index: Optional[int] = None
    bbox: Optional[BBox] = None


@dataclass
class ExtractedDocument:
    path: str
    lines: List[TextLine] = field(default_factory=list)
    page_count: int = 0
    is_pdf: bool = False

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


@dataclass(frozen=True)
class Highlight:
    document: DocumentSide
    classification: Classification
    text: str
    page_index: Optional[int]
    bbox: Optional[BBox]

    def to_dict(self) -> Dict[str, object]:
        return {
            "document": self.document,
            "classification": self.classification,
            "text": self.text,
            "page_index": self.page_index,
            "bbox": [round(float(v), 2) for v in self.bbox] if self.bbox else None,
        }


@dataclass(frozen=True)
class Artifact:
    mode: RenderMode
    data: bytes
    extension: str
    highlights: Tuple[Highlight, ...] = ()


@dataclass(frozen=True)
class GenerationOutcome:
    """What :meth:`GenerationCoordinator.get_or_generate` hands back.

    ``in_progress`` outcomes are a normal answer, not an error: another
    caller holds the generation and this one chose not to (or could no
    longer) wait.
    """

    status: ArtifactStatus
    artifact_location: Optional[str] = None
    error: Optional[DiffError] = None
    artifact: Optional[DiffArtifact] = None

    @property
    def ok(self) -> bool:
        return self.status == READY and self.artifact_location is not None

    @property
    def in_progress(self) -> bool:
        return self.status in (PENDING, GENERATING) and self.error is None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"status": self.status}
        if self.artifact_location is not None:
            data["artifact_location"] = self.artifact_location
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data
