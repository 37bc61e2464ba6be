"""Turn a diff result into a highlighted artifact.

Both render modes share :func:`build_highlights`; they only differ in what
is done with the regions.  ``burned_in`` draws them into a copy of the
target PDF, ``overlay`` serialises them for a client-side viewer and leaves
the target untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import fitz

from .core.types import (
    RENDER_MODES,
    Artifact,
    BBox,
    DiffLine,
    DiffResult,
    ExtractedDocument,
    Highlight,
    RenderMode,
    TextLine,
)
from .errors import DiffError, RenderFailed, SourceUnavailable, UnsupportedFormat
from .presets import Color, Preset, get_preset
from .report import overlay_to_json

logger = logging.getLogger(__name__)

# Fixed PDF date so re-rendering the same comparison yields the same annotations.
_ANNOT_DATE = "D:20000101000000Z"
_ANNOT_TITLE = "visual-diff"


@dataclass(frozen=True)
class AnnotationStyle:
    stroke_color: tuple[float, float, float]
    stroke_width: float = 0.8
    fill_color: tuple[float, float, float] = (0.93, 0.93, 0.93)
    fill_opacity: float = 0.15


def _clamp(value: float, minimum: float = 0.0, maximum: float = 1.0) -> float:
    return max(minimum, min(value, maximum))


def tint_color(color: tuple[float, float, float], *, blend: float = 0.6) -> tuple[float, float, float]:
    """Blend an RGB colour with white to create a softer highlight fill."""

    blend = _clamp(blend)
    return tuple(_clamp(channel + (1.0 - channel) * blend) for channel in color)


def make_annotation_style(
    base_color: Color,
    *,
    stroke_width: float,
    fill_opacity: float,
    fill_tint: float = 0.6,
) -> AnnotationStyle:
    """Create an annotation style using the given base colour for strokes.

    The fill colour is lightened to keep highlighted text legible while
    keeping the colour association (green added, amber modified, red removed).
    """

    return AnnotationStyle(
        stroke_color=base_color,
        stroke_width=stroke_width,
        fill_color=tint_color(base_color, blend=fill_tint),
        fill_opacity=fill_opacity,
    )


def _line_at(doc: ExtractedDocument, number: Optional[int]) -> Optional[TextLine]:
    if number is None or number < 1 or number > len(doc.lines):
        return None
    return doc.lines[number - 1]


def _highlight(side: str, line: DiffLine, text_line: Optional[TextLine], text: str) -> Highlight:
    return Highlight(
        document=side,  # type: ignore[arg-type]
        classification=line.classification,
        text=text,
        page_index=text_line.page_index if text_line else None,
        bbox=text_line.bbox if text_line else None,
    )


def build_highlights(
    result: DiffResult,
    source: ExtractedDocument,
    target: ExtractedDocument,
) -> List[Highlight]:
    """Map changed diff lines to regions of the source or target document.

    Added and modified lines point into the target; removed lines and the
    old side of modified lines point into the source.  Line numbers in the
    diff are 1-based positions in ``document.text``.
    """

    highlights: List[Highlight] = []
    for line in result.lines:
        if line.classification == "added":
            highlights.append(_highlight("target", line, _line_at(target, line.new_line), line.content))
        elif line.classification == "modified":
            highlights.append(_highlight("target", line, _line_at(target, line.new_line), line.content))
            highlights.append(
                _highlight("source", line, _line_at(source, line.old_line), line.previous or "")
            )
        elif line.classification == "removed":
            highlights.append(_highlight("source", line, _line_at(source, line.old_line), line.content))
    return highlights


@dataclass
class _RemovalNote:
    page_index: int
    point: tuple[float, float]
    texts: List[str]


def _removal_notes(result: DiffResult, target: ExtractedDocument) -> List[_RemovalNote]:
    """Anchor runs of removed lines at the next target line that survives.

    Removals after the last surviving line hang off that last line; when the
    target has no positioned text at all they go to the top of page one.
    """

    notes: List[_RemovalNote] = []
    pending: List[str] = []
    last_anchor: Optional[TextLine] = None

    def anchor_note(anchor: Optional[TextLine]) -> None:
        if not pending:
            return
        if anchor is not None and anchor.bbox is not None and anchor.page_index is not None:
            note = _RemovalNote(anchor.page_index, (anchor.bbox[0], anchor.bbox[1]), list(pending))
        else:
            note = _RemovalNote(0, (36.0, 36.0), list(pending))
        notes.append(note)
        pending.clear()

    for line in result.lines:
        if line.classification == "removed":
            pending.append(line.content)
            continue
        anchor = _line_at(target, line.new_line)
        if anchor is not None and anchor.bbox is not None:
            anchor_note(anchor)
            last_anchor = anchor
    anchor_note(last_anchor)
    return notes


def _pad(bbox: BBox, padding: float) -> fitz.Rect:
    x0, y0, x1, y1 = bbox
    return fitz.Rect(x0 - padding, y0 - padding, x1 + padding, y1 + padding)


class ArtifactRenderer:
    """Render a :class:`DiffResult` in one of the supported modes."""

    def __init__(self, preset: Optional[Preset] = None) -> None:
        self.preset = preset or get_preset("default")
        self.styles: Dict[str, AnnotationStyle] = {
            name: make_annotation_style(
                self.preset.colors.for_classification(name),
                stroke_width=self.preset.stroke_width,
                fill_opacity=self.preset.fill_opacity,
            )
            for name in ("added", "removed", "modified")
        }

    def render(
        self,
        result: DiffResult,
        source: ExtractedDocument,
        target: ExtractedDocument,
        mode: RenderMode = "burned_in",
        checkpoint: Optional[Callable[[], None]] = None,
        *,
        target_ref: Optional[str] = None,
    ) -> Artifact:
        """Render ``result`` in ``mode``.

        Overlay payloads name the document they sit on as ``target_ref``,
        falling back to the extracted target's path.
        """
        if mode not in RENDER_MODES:
            raise ValueError(f"Unknown render mode '{mode}'. Available: {', '.join(RENDER_MODES)}")
        highlights = build_highlights(result, source, target)
        if checkpoint:
            checkpoint()
        if mode == "overlay":
            payload = overlay_to_json(result, highlights, target, target_ref=target_ref).encode("utf-8")
            return Artifact(mode=mode, data=payload, extension="json", highlights=tuple(highlights))
        data = self._burn_in(result, target, highlights, checkpoint)
        return Artifact(mode=mode, data=data, extension="pdf", highlights=tuple(highlights))

    def _burn_in(
        self,
        result: DiffResult,
        target: ExtractedDocument,
        highlights: Sequence[Highlight],
        checkpoint: Optional[Callable[[], None]],
    ) -> bytes:
        if not target.is_pdf:
            raise UnsupportedFormat(f"Burned-in rendering needs a PDF target, got {Path(target.path).name}")
        if not Path(target.path).is_file():
            raise SourceUnavailable(f"Target document vanished before rendering: {target.path}")

        by_page: Dict[int, List[Highlight]] = {}
        for item in highlights:
            if item.document == "target" and item.page_index is not None and item.bbox is not None:
                by_page.setdefault(item.page_index, []).append(item)
        notes = _removal_notes(result, target)

        try:
            doc = fitz.open(target.path)
        except Exception as exc:
            raise RenderFailed(f"Failed to open target PDF: {exc}") from exc
        try:
            for page_index in sorted(by_page):
                if page_index >= len(doc):
                    continue
                if checkpoint:
                    checkpoint()
                self._draw_regions(doc[page_index], by_page[page_index])
            for note in notes:
                if note.page_index < len(doc):
                    self._add_removal_note(doc[note.page_index], note)
            data = doc.tobytes(garbage=3, deflate=True, no_new_id=True)
        except DiffError:
            raise
        except Exception as exc:
            raise RenderFailed(f"Failed to render highlights: {exc}") from exc
        finally:
            doc.close()
        logger.info(
            "burned %s highlight(s) and %s removal note(s) into %s",
            sum(len(items) for items in by_page.values()),
            len(notes),
            Path(target.path).name,
        )
        return data

    def _draw_regions(self, page: fitz.Page, items: Sequence[Highlight]) -> None:
        shape = page.new_shape()
        for item in items:
            style = self.styles[item.classification]
            shape.draw_rect(_pad(item.bbox, self.preset.padding_pts))  # type: ignore[arg-type]
            shape.finish(
                color=style.stroke_color if style.stroke_width > 0 else None,
                width=style.stroke_width,
                fill=style.fill_color,
                fill_opacity=style.fill_opacity,
            )
        shape.commit()

    def _add_removal_note(self, page: fitz.Page, note: _RemovalNote) -> None:
        style = self.styles["removed"]
        x, y = note.point
        # Red bar in the left margin of the anchor line.
        shape = page.new_shape()
        shape.draw_rect(fitz.Rect(max(x - 6, 0), y, max(x - 4, 1), y + 10))
        shape.finish(color=style.stroke_color, fill=style.stroke_color, width=0)
        shape.commit()

        annot = page.add_text_annot(fitz.Point(max(x - 18, 0), y), "Removed:\n" + "\n".join(note.texts))
        annot.set_colors(stroke=style.stroke_color)
        annot.update()
        annot.set_info(title=_ANNOT_TITLE, creationDate=_ANNOT_DATE, modDate=_ANNOT_DATE)
