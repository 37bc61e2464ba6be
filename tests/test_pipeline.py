import json
import threading

import pytest

fitz = pytest.importorskip("fitz")

from visualdiff.app_factory import create_coordinator, create_pipeline, create_watchdog
from visualdiff.core.types import ComparisonKey
from visualdiff.errors import GenerationTimeout, SourceUnavailable, UnsupportedFormat
from visualdiff.settings import DiffSettings


def _make_pdf(path, lines):
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line)
        y += 24
    doc.save(path)
    doc.close()


@pytest.fixture
def settings(tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    _make_pdf(uploads / "v1.pdf", ["Policy 12", "Staff must sign in.", "DOWNLOADED FROM portal", "Contact HR."])
    _make_pdf(uploads / "v2.pdf", ["Policy 12", "Staff must always sign in.", "Contact HR.", "Effective May."])
    (uploads / "v1.txt").write_text("alpha\nbeta\n", encoding="utf-8")
    (uploads / "v2.txt").write_text("alpha\ngamma\n", encoding="utf-8")
    return DiffSettings(storage_root=tmp_path, retry_delay_ms=0, poll_interval_ms=10)


@pytest.fixture
def coordinator(settings):
    coordinator = create_coordinator(settings)
    yield coordinator
    coordinator.close()


def test_generate_burned_in_artifact(coordinator, settings, tmp_path):
    key = ComparisonKey("policy-12", 1, 2)

    outcome = coordinator.get_or_generate(key, "/uploads/v1.pdf", "/uploads/v2.pdf")

    assert outcome.ok, outcome.error
    assert outcome.artifact_location == "visual-diffs/diff-v1-v2-policy-12.pdf"
    stored = tmp_path / "visual-diffs" / "diff-v1-v2-policy-12.pdf"
    doc = fitz.open(stored)
    try:
        assert doc[0].get_drawings()
    finally:
        doc.close()
    assert coordinator.get_status(key).status == "READY"


def test_generate_overlay_from_text_documents(coordinator, tmp_path):
    key = ComparisonKey("notes", 1, 2)

    outcome = coordinator.get_or_generate(key, "/uploads/v1.txt", "/uploads/v2.txt", mode="overlay")

    assert outcome.artifact_location == "visual-diffs/diff-v1-v2-notes.json"
    payload = json.loads((tmp_path / outcome.artifact_location).read_text(encoding="utf-8"))
    assert payload["summary"]["modified"] == 1
    assert payload["highlights"][0]["bbox"] is None
    assert payload["target"] == {"document": "/uploads/v2.txt", "is_pdf": False, "page_count": 0}


def test_burned_in_text_target_is_terminal(coordinator):
    key = ComparisonKey("notes", 1, 2)

    outcome = coordinator.get_or_generate(key, "/uploads/v1.txt", "/uploads/v2.txt", mode="burned_in")

    assert isinstance(outcome.error, UnsupportedFormat)
    assert coordinator.get_status(key).attempt_count == 1


def test_missing_source_document(coordinator):
    outcome = coordinator.get_or_generate(ComparisonKey("x", 1, 2), "/uploads/nope.pdf", "/uploads/v2.pdf")

    assert isinstance(outcome.error, SourceUnavailable)
    assert outcome.to_dict()["error"]["kind"] == "SourceUnavailable"


def test_watermarks_do_not_count_as_changes(coordinator):
    summary = coordinator.summarize("/uploads/v1.pdf", "/uploads/v2.pdf")

    assert summary.added_words == 3
    assert summary.removed_words == 0


def test_cancelled_run_stops_before_storing(settings, tmp_path):
    pipeline = create_pipeline(settings)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(GenerationTimeout):
        pipeline.run(ComparisonKey("policy-12", 1, 2), "/uploads/v1.pdf", "/uploads/v2.pdf", cancel_event=cancel)
    assert not (tmp_path / "visual-diffs").exists()


def test_watchdog_uses_configured_interval(coordinator):
    watchdog = create_watchdog(coordinator, DiffSettings(watchdog_interval_ms=250))

    assert watchdog.interval_s == 0.25
    assert watchdog.run_once() == 0


def test_word_documents_generate_overlay(coordinator, tmp_path):
    docx = pytest.importorskip("docx")
    for name, text in (("v1.docx", "Refunds within 14 days."), ("v2.docx", "Refunds within 30 days.")):
        document = docx.Document()
        document.add_paragraph("Returns")
        document.add_paragraph(text)
        document.save(str(tmp_path / "uploads" / name))

    outcome = coordinator.get_or_generate(ComparisonKey("returns", 1, 2), "/uploads/v1.docx", "/uploads/v2.docx", mode="overlay")

    assert outcome.ok, outcome.error
    payload = json.loads((tmp_path / outcome.artifact_location).read_text(encoding="utf-8"))
    assert payload["summary"] == {"added": 0, "removed": 0, "modified": 1, "unchanged": 1}
    assert payload["target"]["document"] == "/uploads/v2.docx"
