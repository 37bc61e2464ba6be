"""SQLite backed state rows for visual diffs.

The row for a comparison key is the single source of truth and the lock:
the transition to ``GENERATING`` is one conditional ``UPDATE`` run inside
``BEGIN IMMEDIATE``, so only one caller (thread or process) can win it.
Transitions out of ``GENERATING`` are fenced with the attempt number that
won the claim; a worker whose attempt was already reclaimed by the
watchdog cannot overwrite the newer state.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from ..core.types import FAILED, GENERATING, PENDING, READY, STATUSES, ArtifactStatus, ComparisonKey, DiffArtifact
from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS visual_diffs (
    fingerprint TEXT PRIMARY KEY,
    article_id TEXT NOT NULL,
    source_version INTEGER NOT NULL,
    target_version INTEGER NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('PENDING', 'GENERATING', 'READY', 'FAILED')),
    attempt_count INTEGER NOT NULL DEFAULT 0,
    artifact_location TEXT DEFAULT NULL,
    last_error TEXT DEFAULT NULL,
    error_kind TEXT DEFAULT NULL,
    retryable INTEGER NOT NULL DEFAULT 1,
    generation_started_at REAL DEFAULT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_visual_diffs_status ON visual_diffs (status, generation_started_at);"


def _row_to_artifact(row: sqlite3.Row) -> DiffArtifact:
    return DiffArtifact(
        key=ComparisonKey(row["article_id"], int(row["source_version"]), int(row["target_version"])),
        status=row["status"],
        attempt_count=int(row["attempt_count"]),
        artifact_location=row["artifact_location"],
        last_error=row["last_error"],
        error_kind=row["error_kind"],
        retryable=bool(row["retryable"]),
        generation_started_at=row["generation_started_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DiffRepository:
    def __init__(self, db_path: str | Path, *, busy_timeout: float = 30.0) -> None:
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open state database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"State database error: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def ensure_schema(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(_SCHEMA)
            conn.execute(_INDEX)

    def get(self, key: ComparisonKey) -> Optional[DiffArtifact]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM visual_diffs WHERE fingerprint = ?", (key.fingerprint,)).fetchone()
        return _row_to_artifact(row) if row else None

    def get_or_create(self, key: ComparisonKey, now: float) -> DiffArtifact:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO visual_diffs
                    (fingerprint, article_id, source_version, target_version, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (key.fingerprint, key.article_id, key.source_version, key.target_version, PENDING, now, now),
            )
            row = conn.execute("SELECT * FROM visual_diffs WHERE fingerprint = ?", (key.fingerprint,)).fetchone()
        return _row_to_artifact(row)

    def list_artifacts(self, status: Optional[ArtifactStatus] = None) -> List[DiffArtifact]:
        if status is not None and status not in STATUSES:
            raise ValueError(f"Unknown status '{status}'")
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM visual_diffs ORDER BY created_at, fingerprint").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM visual_diffs WHERE status = ? ORDER BY created_at, fingerprint", (status,)
                ).fetchall()
        return [_row_to_artifact(row) for row in rows]

    def claim(self, key: ComparisonKey, now: float, max_attempts: int) -> Optional[DiffArtifact]:
        """Atomically move the row to ``GENERATING``.

        Returns the claimed row, or ``None`` when someone else holds it, the
        row is terminal, or the retry budget is spent.
        """

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE visual_diffs
                   SET status = ?, attempt_count = attempt_count + 1, generation_started_at = ?,
                       last_error = NULL, error_kind = NULL, retryable = 1, updated_at = ?
                 WHERE fingerprint = ?
                   AND attempt_count < ?
                   AND (status = ? OR (status = ? AND retryable = 1))
                """,
                (GENERATING, now, now, key.fingerprint, max_attempts, PENDING, FAILED),
            )
            if cursor.rowcount != 1:
                return None
            row = conn.execute("SELECT * FROM visual_diffs WHERE fingerprint = ?", (key.fingerprint,)).fetchone()
        return _row_to_artifact(row)

    def mark_ready(self, key: ComparisonKey, attempt: int, location: str, now: float) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE visual_diffs
                   SET status = ?, artifact_location = ?, last_error = NULL, error_kind = NULL,
                       updated_at = ?
                 WHERE fingerprint = ? AND status = ? AND attempt_count = ?
                """,
                (READY, location, now, key.fingerprint, GENERATING, attempt),
            )
            return cursor.rowcount == 1

    def mark_failed(
        self,
        key: ComparisonKey,
        attempt: int,
        *,
        error: str,
        error_kind: str,
        retryable: bool,
        now: float,
    ) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE visual_diffs
                   SET status = ?, last_error = ?, error_kind = ?, retryable = ?,
                       updated_at = ?
                 WHERE fingerprint = ? AND status = ? AND attempt_count = ?
                """,
                (FAILED, error, error_kind, int(retryable), now, key.fingerprint, GENERATING, attempt),
            )
            return cursor.rowcount == 1

    def expire_stale(self, cutoff: float, now: float, key: Optional[ComparisonKey] = None) -> int:
        """Fail ``GENERATING`` rows whose attempt started at or before ``cutoff``."""

        sql = """
            UPDATE visual_diffs
               SET status = ?, last_error = ?, error_kind = 'Timeout', retryable = 1,
                   updated_at = ?
             WHERE status = ? AND generation_started_at <= ?
        """
        params: List[object] = [FAILED, TIMEOUT_ERROR, now, GENERATING, cutoff]
        if key is not None:
            sql += " AND fingerprint = ?"
            params.append(key.fingerprint)
        with self._transaction() as conn:
            count = conn.execute(sql, params).rowcount
        if count:
            logger.warning("expired %s stale generation(s)", count)
        return count

    def delete(self, key: ComparisonKey) -> bool:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM visual_diffs WHERE fingerprint = ?", (key.fingerprint,)).rowcount == 1
