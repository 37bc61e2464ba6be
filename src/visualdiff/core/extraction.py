"""Text extraction for the documents being compared.

PDF pages are read with PyMuPDF word by word so every extracted line keeps
its page index and bounding box; the renderer needs those to place
highlights.  Word documents are read paragraph by paragraph with python-docx
and plain text files as-is; neither carries positions.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import docx
import fitz  # PyMuPDF
from docx.table import Table

from ..errors import ExtractionFailed, SourceUnavailable, UnsupportedFormat
from .types import BBox, ExtractedDocument, TextLine

logger = logging.getLogger(__name__)

PDF_SUFFIXES = {".pdf"}
TEXT_SUFFIXES = {".txt", ".text", ".md"}
WORD_SUFFIXES = {".docx"}

Checkpoint = Callable[[], None]


class TextExtractor(Protocol):
    def extract(self, path: Path, checkpoint: Optional[Checkpoint] = None) -> ExtractedDocument:
        ...


def _noop() -> None:
    return None


def _looks_like_pdf(path: Path) -> bool:
    try:
        with path.open("rb") as fh:
            return fh.read(5) == b"%PDF-"
    except OSError:
        return False


def _union(a: BBox, b: BBox) -> BBox:
    return (min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))


def _page_lines(page: fitz.Page, page_index: int) -> List[TextLine]:
    """Group ``page.get_text("words")`` output into lines.

    Words arrive in content order with their block and line numbers, so a
    change of ``(block_no, line_no)`` starts a new line.
    """

    lines: List[TextLine] = []
    current_key = None
    words: List[str] = []
    bbox: Optional[BBox] = None
    for word in page.get_text("words"):
        if len(word) < 7:
            continue
        x0, y0, x1, y1, text, block_no, line_no = word[:7]
        text = str(text).strip()
        if not text:
            continue
        key = (block_no, line_no)
        rect: BBox = (float(x0), float(y0), float(x1), float(y1))
        if key != current_key and words:
            lines.append(TextLine(" ".join(words), page_index, bbox))
            words = []
            bbox = None
        current_key = key
        words.append(text)
        bbox = rect if bbox is None else _union(bbox, rect)
    if words:
        lines.append(TextLine(" ".join(words), page_index, bbox))
    return lines


class PdfTextExtractor:
    def extract(self, path: Path, checkpoint: Optional[Checkpoint] = None) -> ExtractedDocument:
        checkpoint = checkpoint or _noop
        if not path.exists():
            raise SourceUnavailable(f"PDF file not found: {path}")
        try:
            doc = fitz.open(str(path))
        except Exception as exc:
            raise ExtractionFailed(f"Failed to open PDF {path.name}: {exc}") from exc
        try:
            lines: List[TextLine] = []
            for index, page in enumerate(doc):
                checkpoint()
                try:
                    lines.extend(_page_lines(page, index))
                except Exception as exc:
                    raise ExtractionFailed(f"Failed to read page {index + 1} of {path.name}: {exc}") from exc
            page_count = len(doc)
        finally:
            doc.close()
        logger.debug("extracted %s line(s) from %s page(s) of %s", len(lines), page_count, path)
        return ExtractedDocument(path=str(path), lines=lines, page_count=page_count, is_pdf=True)


class PlainTextExtractor:
    def extract(self, path: Path, checkpoint: Optional[Checkpoint] = None) -> ExtractedDocument:
        (checkpoint or _noop)()
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError as exc:
            raise SourceUnavailable(f"Text file not found: {path}") from exc
        except OSError as exc:
            raise ExtractionFailed(f"Failed to read {path.name}: {exc}") from exc
        lines = [TextLine(raw.rstrip("\r")) for raw in text.split("\n")]
        return ExtractedDocument(path=str(path), lines=lines, page_count=0, is_pdf=False)


def _block_texts(document) -> List[str]:
    """Paragraph texts in body order; table cells contribute one entry per paragraph."""

    texts: List[str] = []
    for block in document.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                for cell in row.cells:
                    texts.extend(paragraph.text for paragraph in cell.paragraphs)
        else:
            texts.append(block.text)
    return texts


class WordTextExtractor:
    def extract(self, path: Path, checkpoint: Optional[Checkpoint] = None) -> ExtractedDocument:
        checkpoint = checkpoint or _noop
        checkpoint()
        if not path.exists():
            raise SourceUnavailable(f"Word file not found: {path}")
        try:
            texts = _block_texts(docx.Document(str(path)))
        except Exception as exc:
            raise ExtractionFailed(f"Failed to read Word document {path.name}: {exc}") from exc
        checkpoint()
        lines = [TextLine(part.rstrip("\r")) for text in texts for part in text.split("\n")]
        logger.debug("extracted %s line(s) from %s", len(lines), path)
        return ExtractedDocument(path=str(path), lines=lines, page_count=0, is_pdf=False)


class DocumentExtractor:
    """Pick an extractor from the file suffix, falling back to a PDF sniff."""

    def __init__(
        self,
        pdf: Optional[TextExtractor] = None,
        text: Optional[TextExtractor] = None,
        word: Optional[TextExtractor] = None,
    ) -> None:
        self.pdf = pdf or PdfTextExtractor()
        self.text = text or PlainTextExtractor()
        self.word = word or WordTextExtractor()

    def extract(self, path: Path, checkpoint: Optional[Checkpoint] = None) -> ExtractedDocument:
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix in PDF_SUFFIXES:
            return self.pdf.extract(path, checkpoint)
        if suffix in TEXT_SUFFIXES:
            return self.text.extract(path, checkpoint)
        if suffix in WORD_SUFFIXES:
            return self.word.extract(path, checkpoint)
        if not path.exists():
            raise SourceUnavailable(f"Document not found: {path}")
        if _looks_like_pdf(path):
            return self.pdf.extract(path, checkpoint)
        raise UnsupportedFormat(f"Unsupported file type: {suffix or path.name}")


def extract_text(path: str | Path) -> str:
    """Plain text of a document; convenience wrapper for callers without positions."""

    return DocumentExtractor().extract(Path(path)).text
