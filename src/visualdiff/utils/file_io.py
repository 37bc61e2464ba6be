"""Resolve document references and write files atomically."""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, Optional
from urllib.parse import urlparse

import requests

from ..errors import SourceUnavailable

logger = logging.getLogger(__name__)

# Web-style prefixes that point into the storage root rather than the
# filesystem root.
WEB_ROOT_PREFIXES = ("/uploads", "/temp", "/pdfs", "/words")

_CHUNK = 64 * 1024


def is_url(ref: str) -> bool:
    return ref.startswith("http://") or ref.startswith("https://")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` so readers never see partial content.

    The bytes go to a temporary file in the same directory which is then
    renamed over ``path``.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class DocumentResolver:
    """Turn a document reference into a readable local file.

    References may be absolute paths, paths relative to ``storage_root``,
    web-style paths such as ``/uploads/a.pdf`` (also relative to
    ``storage_root``) or ``http(s)`` URLs, which are downloaded to a
    temporary file for the duration of the ``open`` block.

    Without a ``session`` every download uses a fresh ``requests.Session``,
    since attempts for different keys download on different threads.  A
    session passed in is shared by all of them and must tolerate that.
    """

    def __init__(
        self,
        storage_root: str | Path,
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.storage_root = Path(storage_root)
        self.timeout = timeout
        self.session = session

    def resolve_local(self, ref: str) -> Path:
        if any(ref == prefix or ref.startswith(prefix + "/") for prefix in WEB_ROOT_PREFIXES):
            return self.storage_root / ref.lstrip("/")
        path = Path(ref)
        if path.is_absolute():
            return path
        return self.storage_root / path

    @contextmanager
    def open(self, ref: str, checkpoint: Optional[Callable[[], None]] = None) -> Iterator[Path]:
        if not ref or not ref.strip():
            raise SourceUnavailable("Empty document reference")
        if is_url(ref):
            with self._download(ref, checkpoint) as path:
                yield path
            return
        path = self.resolve_local(ref)
        if not path.is_file():
            raise SourceUnavailable(f"Document not found: {ref}")
        yield path

    @contextmanager
    def _download(self, url: str, checkpoint: Optional[Callable[[], None]] = None) -> Iterator[Path]:
        suffix = PurePosixPath(urlparse(url).path).suffix
        tmp_dir = Path(tempfile.mkdtemp(prefix="visualdiff-"))
        target = tmp_dir / f"document{suffix}"
        session = self.session or requests.Session()
        try:
            logger.info("Downloading %s", url)
            try:
                with session.get(url, stream=True, timeout=self.timeout) as resp:
                    if 400 <= resp.status_code < 500:
                        raise SourceUnavailable(f"Failed to download {url}: HTTP {resp.status_code}")
                    resp.raise_for_status()
                    with target.open("wb") as handle:
                        for chunk in resp.iter_content(chunk_size=_CHUNK):
                            if checkpoint:
                                checkpoint()
                            if chunk:
                                handle.write(chunk)
            except requests.RequestException as exc:
                raise SourceUnavailable(f"Failed to download {url}: {exc}", retryable=True) from exc
            yield target
        finally:
            if session is not self.session:
                session.close()
            shutil.rmtree(tmp_dir, ignore_errors=True)
