"""Error kinds reported by the visual diff subsystem."""
from __future__ import annotations

from typing import Dict, Optional, Type

__all__ = [
    "DiffError",
    "SourceUnavailable",
    "UnsupportedFormat",
    "ExtractionFailed",
    "RenderFailed",
    "GenerationTimeout",
    "MaxRetriesExceeded",
    "StorageUnavailable",
    "error_from_record",
]


class DiffError(Exception):
    """Base class for failures of a generation attempt.

    ``kind`` is the stable name stored alongside a failed artifact and
    ``retryable`` tells the coordinator whether another attempt is worthwhile.
    Both are class level defaults; ``retryable`` may be overridden per
    instance (e.g. a download that failed on a connection reset).
    """

    kind = "DiffError"
    retryable = False

    def __init__(self, message: str = "", *, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> Dict[str, object]:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class SourceUnavailable(DiffError):
    """A document is missing or could not be fetched."""

    kind = "SourceUnavailable"


class UnsupportedFormat(DiffError):
    """The document type cannot be extracted or rendered."""

    kind = "UnsupportedFormat"


class ExtractionFailed(DiffError):
    """The parser failed to read text from a document."""

    kind = "ExtractionFailed"
    retryable = True


class RenderFailed(DiffError):
    """The rendering tool failed while producing the artifact."""

    kind = "RenderFailed"
    retryable = True


class GenerationTimeout(DiffError):
    """The attempt ran longer than the generation timeout."""

    kind = "Timeout"
    retryable = True


class MaxRetriesExceeded(DiffError):
    """The retry budget is spent; an operator has to reset the comparison."""

    kind = "MaxRetriesExceeded"

    def __init__(self, message: str = "", *, last_error: Optional[str] = None) -> None:
        super().__init__(message)
        self.last_error = last_error

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data["last_error"] = self.last_error
        return data


class StorageUnavailable(Exception):
    """The state database or artifact storage cannot be used.

    Unlike :class:`DiffError` this is raised to the caller: nothing sensible
    can be returned when the source of truth itself is gone.
    """


_KINDS: Dict[str, Type[DiffError]] = {
    cls.kind: cls
    for cls in (
        DiffError,
        SourceUnavailable,
        UnsupportedFormat,
        ExtractionFailed,
        RenderFailed,
        GenerationTimeout,
        MaxRetriesExceeded,
    )
}


def error_from_record(kind: Optional[str], message: Optional[str], retryable: Optional[bool] = None) -> DiffError:
    """Rebuild an error instance from the values stored on a failed row."""

    cls = _KINDS.get(kind or "", DiffError)
    if cls is MaxRetriesExceeded:
        return MaxRetriesExceeded(message or "", last_error=message)
    return cls(message or "", retryable=retryable)
