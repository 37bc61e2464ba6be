"""JSON report helpers."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional, Sequence

from .core.types import DiffResult, ExtractedDocument, Highlight


def _dumps(data: object, *, pretty: bool) -> str:
    if pretty:
        return json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
    return json.dumps(data, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def overlay_payload(
    result: DiffResult,
    highlights: Sequence[Highlight],
    target: ExtractedDocument,
    *,
    target_ref: Optional[str] = None,
) -> Dict[str, object]:
    """Highlights plus the untouched document a viewer should draw them on."""

    return {
        "target": {
            "document": target_ref or target.path,
            "is_pdf": target.is_pdf,
            "page_count": target.page_count,
        },
        "summary": result.summary.to_dict(),
        "words": result.words.to_dict(),
        "highlights": [h.to_dict() for h in highlights],
    }


def overlay_to_json(
    result: DiffResult,
    highlights: Sequence[Highlight],
    target: ExtractedDocument,
    *,
    target_ref: Optional[str] = None,
    pretty: bool = False,
) -> str:
    return _dumps(overlay_payload(result, highlights, target, target_ref=target_ref), pretty=pretty)


def diff_result_to_json(result: DiffResult, *, pretty: bool = True) -> str:
    return _dumps(result.to_dict(), pretty=pretty)


def write_json_report(result: DiffResult, path: str | Path) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(diff_result_to_json(result), encoding="utf-8")
