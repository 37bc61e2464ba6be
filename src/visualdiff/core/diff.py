"""Line and word level text comparison.

Everything in this module is pure: no I/O, no clock, no randomness.  The
same pair of texts always produces an identical :class:`DiffResult`.
"""
from __future__ import annotations

import difflib
import re
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .types import DiffLine, DiffResult, LineSummary, WordSummary

__all__ = ["compute_diff", "compute_summary", "describe_summary", "split_lines"]

_LINE_SPLIT_RE = re.compile(r"\r?\n")

# (old_index, new_index) into the filtered line lists; None on one side
# marks an unmatched entry.
_Op = Tuple[Optional[int], Optional[int]]


def split_lines(text: str) -> List[Tuple[int, str]]:
    """Return ``(line_number, display_text)`` for every non-blank line.

    Line numbers are 1-based positions in the raw text, so blank lines still
    advance the counter even though they never take part in the alignment.
    """

    if not text:
        return []
    lines: List[Tuple[int, str]] = []
    for number, raw in enumerate(_LINE_SPLIT_RE.split(text), start=1):
        display = raw.rstrip()
        if display.strip():
            lines.append((number, display))
    return lines


def _suffix_lcs_table(a: Sequence[str], b: Sequence[str]) -> np.ndarray:
    """``table[i, j]`` is the LCS length of ``a[i:]`` and ``b[j:]``."""

    n, m = len(a), len(b)
    table = np.zeros((n + 1, m + 1), dtype=np.int32)
    below = [0] * (m + 1)
    for i in range(n - 1, -1, -1):
        row = [0] * (m + 1)
        item = a[i]
        for j in range(m - 1, -1, -1):
            if item == b[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = below[j] if below[j] >= row[j + 1] else row[j + 1]
        table[i] = row
        below = row
    return table


def _align(a: Sequence[str], b: Sequence[str]) -> List[_Op]:
    """Walk an LCS alignment, taking the earliest possible match.

    A common prefix is consumed directly; it is always part of the
    earliest-match alignment.  When heads differ and both skips keep the
    optimum, the old side is skipped first.
    """

    ops: List[_Op] = []
    start = 0
    limit = min(len(a), len(b))
    while start < limit and a[start] == b[start]:
        ops.append((start, start))
        start += 1

    rest_a, rest_b = a[start:], b[start:]
    table = _suffix_lcs_table(rest_a, rest_b)
    i = j = 0
    n, m = len(rest_a), len(rest_b)
    while i < n and j < m:
        if rest_a[i] == rest_b[j]:
            ops.append((start + i, start + j))
            i += 1
            j += 1
        elif table[i + 1, j] >= table[i, j + 1]:
            ops.append((start + i, None))
            i += 1
        else:
            ops.append((None, start + j))
            j += 1
    ops.extend((start + k, None) for k in range(i, n))
    ops.extend((None, start + k) for k in range(j, m))
    return ops


def _classify(
    ops: List[_Op],
    old_lines: List[Tuple[int, str]],
    new_lines: List[Tuple[int, str]],
) -> List[DiffLine]:
    result: List[DiffLine] = []
    pending_old: List[int] = []
    pending_new: List[int] = []

    def flush() -> None:
        paired = min(len(pending_old), len(pending_new))
        for k in range(paired):
            old_no, old_text = old_lines[pending_old[k]]
            new_no, new_text = new_lines[pending_new[k]]
            result.append(DiffLine(old_no, new_no, new_text, "modified", previous=old_text))
        for idx in pending_old[paired:]:
            old_no, old_text = old_lines[idx]
            result.append(DiffLine(old_no, None, old_text, "removed"))
        for idx in pending_new[paired:]:
            new_no, new_text = new_lines[idx]
            result.append(DiffLine(None, new_no, new_text, "added"))
        pending_old.clear()
        pending_new.clear()

    for old_idx, new_idx in ops:
        if old_idx is not None and new_idx is not None:
            flush()
            old_no, _ = old_lines[old_idx]
            new_no, new_text = new_lines[new_idx]
            result.append(DiffLine(old_no, new_no, new_text, "unchanged"))
        elif old_idx is not None:
            pending_old.append(old_idx)
        elif new_idx is not None:
            pending_new.append(new_idx)
    flush()
    return result


def compute_summary(original_text: str, modified_text: str) -> WordSummary:
    """Word level counts for change-history displays.

    Additions and removals are paired by count only: ``modified_words`` is
    ``min(added_words, removed_words)``.  This is a known approximation that
    existing summaries depend on, not a semantic pairing of words.
    """

    old_words = original_text.split()
    new_words = modified_text.split()
    matcher = difflib.SequenceMatcher(None, old_words, new_words, autojunk=False)
    added = removed = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            removed += i2 - i1
        if tag in ("replace", "insert"):
            added += j2 - j1
    modified = min(added, removed)
    return WordSummary(
        added_words=added,
        removed_words=removed,
        modified_words=modified,
        total_changed_words=(added - modified) + (removed - modified) + modified,
    )


def compute_diff(original_text: str, modified_text: str) -> DiffResult:
    """Compute the line diff and word summary between two texts."""

    old_lines = split_lines(original_text)
    new_lines = split_lines(modified_text)
    ops = _align([text.strip() for _, text in old_lines], [text.strip() for _, text in new_lines])
    lines = _classify(ops, old_lines, new_lines)

    counts = {"added": 0, "removed": 0, "modified": 0, "unchanged": 0}
    for line in lines:
        counts[line.classification] += 1

    return DiffResult(
        lines=tuple(lines),
        summary=LineSummary(**counts),
        words=compute_summary(original_text, modified_text),
    )


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def describe_summary(result: DiffResult) -> str:
    """Short human readable description, e.g. ``"2 lines added, 1 line removed"``."""

    summary = result.summary
    parts = []
    if summary.added:
        parts.append(f"{_plural(summary.added, 'line')} added")
    if summary.removed:
        parts.append(f"{_plural(summary.removed, 'line')} removed")
    if summary.modified:
        parts.append(f"{_plural(summary.modified, 'line')} modified")
    if not parts:
        return "No changes detected"
    return ", ".join(parts)
