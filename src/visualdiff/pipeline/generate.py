"""One generation attempt: resolve, extract, clean, diff, render, store.

The pipeline knows nothing about state rows or retries; the coordinator
decides when it runs and records what comes out of it.  Long running stages
call the checkpoint between pages so an attempt whose deadline passed stops
instead of finishing work nobody will record.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from ..backend.store import ArtifactStore
from ..core.diff import compute_diff
from ..core.extraction import Checkpoint, DocumentExtractor, TextExtractor
from ..core.types import ComparisonKey, ExtractedDocument, RenderMode, WordSummary
from ..errors import GenerationTimeout
from ..overlay import ArtifactRenderer
from ..utils.file_io import DocumentResolver
from ..utils.normalize import DEFAULT_WATERMARK_PATTERNS, clean_lines

logger = logging.getLogger(__name__)


def _checkpoint_for(cancel_event: Optional[threading.Event]) -> Checkpoint:
    def checkpoint() -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationTimeout("timeout")

    return checkpoint


class DiffPipeline:
    def __init__(
        self,
        resolver: DocumentResolver,
        store: ArtifactStore,
        *,
        extractor: Optional[TextExtractor] = None,
        renderer: Optional[ArtifactRenderer] = None,
        watermark_patterns: Sequence[str] = DEFAULT_WATERMARK_PATTERNS,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.extractor = extractor or DocumentExtractor()
        self.renderer = renderer or ArtifactRenderer()
        self.watermark_patterns = tuple(watermark_patterns)

    def extract(self, path: Path, checkpoint: Optional[Checkpoint] = None) -> ExtractedDocument:
        """Extract a local document and drop watermark lines."""

        document = self.extractor.extract(path, checkpoint)
        return replace(document, lines=clean_lines(document.lines, self.watermark_patterns))

    def _load(self, ref: str, checkpoint: Checkpoint) -> ExtractedDocument:
        with self.resolver.open(ref, checkpoint) as path:
            return self.extract(path, checkpoint)

    def run(
        self,
        key: ComparisonKey,
        source_ref: str,
        target_ref: str,
        *,
        mode: RenderMode = "burned_in",
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Produce and store the artifact for ``key``; return its location."""

        checkpoint = _checkpoint_for(cancel_event)
        checkpoint()
        source = self._load(source_ref, checkpoint)
        checkpoint()
        with self.resolver.open(target_ref, checkpoint) as target_path:
            target = self.extract(target_path, checkpoint)
            checkpoint()
            result = compute_diff(source.text, target.text)
            logger.info(
                "%s: +%s -%s ~%s line(s)",
                key.fingerprint,
                result.summary.added,
                result.summary.removed,
                result.summary.modified,
            )
            # The target file must still be readable while a burned-in copy is drawn.
            artifact = self.renderer.render(result, source, target, mode, checkpoint, target_ref=target_ref)
        checkpoint()
        location = self.store.location_for(key, artifact.extension)
        self.store.write(location, artifact.data)
        return location

    def summarize(self, source_ref: str, target_ref: str) -> WordSummary:
        """Word level change counts between two documents, without rendering."""

        checkpoint = _checkpoint_for(None)
        source = self._load(source_ref, checkpoint)
        target = self._load(target_ref, checkpoint)
        return compute_diff(source.text, target.text).words
