import hashlib

import pytest

from visualdiff.backend.store import ArtifactStore
from visualdiff.core.types import ComparisonKey


def test_location_is_deterministic_and_versioned(tmp_path):
    store = ArtifactStore(tmp_path)
    key = ComparisonKey("article-42", 1, 2)

    assert store.location_for(key) == "visual-diffs/diff-v1-v2-article-42.pdf"
    assert store.location_for(key, "json") == "visual-diffs/diff-v1-v2-article-42.json"
    assert store.location_for(key) == ArtifactStore(tmp_path).location_for(ComparisonKey("article-42", 1, 2))


def test_location_uses_configured_names(tmp_path):
    store = ArtifactStore(tmp_path, base_dir="/diffs/", file_prefix="cmp-")
    digest = hashlib.sha256("a/b c".encode("utf-8")).hexdigest()[:12]

    assert store.location_for(ComparisonKey("a/b c", 3, 4)) == f"diffs/cmp-3-v4-a_b_c--{digest}.pdf"


def test_distinct_article_ids_never_share_a_location(tmp_path):
    store = ArtifactStore(tmp_path)
    ids = ["a/b", "a_b", "a b", "a_b--x", "_a_b", "a_b_"]

    locations = [store.location_for(ComparisonKey(article_id, 1, 2)) for article_id in ids]

    assert len(set(locations)) == len(ids)
    assert locations[1] == "visual-diffs/diff-v1-v2-a_b.pdf"
    for location in locations:
        assert store.path_for(location).parent == tmp_path / "visual-diffs"


def test_colliding_ids_keep_their_own_artifacts(tmp_path):
    store = ArtifactStore(tmp_path)
    first = store.location_for(ComparisonKey("a/b", 1, 2))
    second = store.location_for(ComparisonKey("a b", 1, 2))

    store.write(first, b"first")
    store.write(second, b"second")

    assert store.read(first) == b"first"
    assert store.read(second) == b"second"


def test_write_read_and_overwrite(tmp_path):
    store = ArtifactStore(tmp_path)
    location = store.location_for(ComparisonKey("doc", 1, 2))

    path = store.write(location, b"first")
    assert path == tmp_path / "visual-diffs" / "diff-v1-v2-doc.pdf"
    assert store.exists(location)
    assert store.read(location) == b"first"

    store.write(location, b"second")
    assert store.read(location) == b"second"
    # No temporary files are left next to the artifact.
    assert [p.name for p in path.parent.iterdir()] == [path.name]


def test_missing_artifact(tmp_path):
    store = ArtifactStore(tmp_path)

    assert not store.exists("visual-diffs/nothing.pdf")


@pytest.mark.parametrize("location", ["/etc/passwd", "../outside.pdf", "visual-diffs/../../x.pdf"])
def test_locations_cannot_escape_root(tmp_path, location):
    with pytest.raises(ValueError):
        ArtifactStore(tmp_path).path_for(location)
