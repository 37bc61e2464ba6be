"""Filesystem storage for rendered artifacts."""
from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from ..core.types import ComparisonKey
from ..errors import StorageUnavailable
from ..utils.file_io import atomic_write_bytes

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Artifacts live under ``root / base_dir`` at paths derived from the key.

    Locations handed out are relative POSIX paths such as
    ``visual-diffs/diff-v1-v2-article42.pdf`` so they can be stored in the
    state row and served by whatever exposes ``root``.
    """

    def __init__(self, root: str | Path, *, base_dir: str = "visual-diffs", file_prefix: str = "diff-v") -> None:
        self.root = Path(root)
        self.base_dir = base_dir.strip("/") or "visual-diffs"
        self.file_prefix = file_prefix

    def location_for(self, key: ComparisonKey, extension: str = "pdf") -> str:
        name = f"{self.file_prefix}{key.source_version}-v{key.target_version}-{key.slug}.{extension.lstrip('.')}"
        return str(PurePosixPath(self.base_dir) / name)

    def path_for(self, location: str) -> Path:
        relative = PurePosixPath(location)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Artifact location escapes the storage root: {location}")
        return self.root.joinpath(*relative.parts)

    def write(self, location: str, data: bytes) -> Path:
        path = self.path_for(location)
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise StorageUnavailable(f"Failed to write artifact {location}: {exc}") from exc
        logger.debug("stored %s bytes at %s", len(data), location)
        return path

    def read(self, location: str) -> bytes:
        return self.path_for(location).read_bytes()

    def exists(self, location: str) -> bool:
        return self.path_for(location).is_file()
