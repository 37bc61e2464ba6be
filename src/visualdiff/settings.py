"""Configuration for the visual diff subsystem.

Values come from ``VISUAL_DIFF_*`` environment variables, optionally loaded
from a ``.env`` file first.  Nothing here is read at import time; callers
build a :class:`DiffSettings` once during startup and pass it down.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from .core.types import RENDER_MODES, RenderMode
from .utils.normalize import DEFAULT_WATERMARK_PATTERNS

ENV_PREFIX = "VISUAL_DIFF_"

DEFAULT_BASE_DIR = "visual-diffs"
DEFAULT_FILE_PREFIX = "diff-v"
DEFAULT_GENERATION_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_MAX_RETRY_ATTEMPTS = 3
DEFAULT_DB_NAME = "visual_diffs.sqlite3"


@dataclass(frozen=True)
class DiffSettings:
    storage_root: Path = Path(".")
    base_dir: str = DEFAULT_BASE_DIR
    file_prefix: str = DEFAULT_FILE_PREFIX
    generation_timeout_ms: int = DEFAULT_GENERATION_TIMEOUT_MS
    max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS
    db_path: Optional[Path] = None
    render_mode: RenderMode = "burned_in"
    preset: str = "default"
    poll_interval_ms: int = 500
    retry_delay_ms: int = 1000
    watchdog_interval_ms: int = 30_000
    fetch_timeout_s: float = 30.0
    max_workers: int = 4
    watermark_patterns: Tuple[str, ...] = field(default=DEFAULT_WATERMARK_PATTERNS)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.generation_timeout_ms <= 0:
            raise ValueError("generation_timeout_ms must be positive")
        if self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be at least 1")
        if self.render_mode not in RENDER_MODES:
            raise ValueError(f"render_mode must be one of {', '.join(RENDER_MODES)}")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @property
    def generation_timeout_s(self) -> float:
        return self.generation_timeout_ms / 1000.0

    @property
    def database_path(self) -> Path:
        return self.db_path or (self.storage_root / DEFAULT_DB_NAME)

    def copy(self, **overrides: object) -> "DiffSettings":
        return replace(self, **overrides)  # type: ignore[arg-type]

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        dotenv_path: Optional[str | Path] = None,
    ) -> "DiffSettings":
        """Build settings from the environment.

        When ``environ`` is omitted ``os.environ`` is used, after loading
        ``dotenv_path`` (or a ``.env`` found from the working directory)
        without overriding variables that are already set.
        """

        if environ is None:
            load_dotenv(dotenv_path=dotenv_path, override=False)
            environ = os.environ
        reader = _EnvReader(environ)

        storage_root = Path(reader.text("STORAGE_ROOT", ".")).expanduser()
        db_raw = reader.text("DB_PATH", "")
        patterns_raw = reader.text("WATERMARK_PATTERNS", "")
        patterns = (
            tuple(p.strip() for p in patterns_raw.split("|") if p.strip())
            if patterns_raw
            else DEFAULT_WATERMARK_PATTERNS
        )

        return cls(
            storage_root=storage_root,
            base_dir=reader.text("BASE_DIR", DEFAULT_BASE_DIR),
            file_prefix=reader.text("FILE_PREFIX", DEFAULT_FILE_PREFIX),
            generation_timeout_ms=reader.integer("GENERATION_TIMEOUT_MS", DEFAULT_GENERATION_TIMEOUT_MS),
            max_retry_attempts=reader.integer("MAX_RETRY_ATTEMPTS", DEFAULT_MAX_RETRY_ATTEMPTS),
            db_path=Path(db_raw).expanduser() if db_raw else None,
            render_mode=reader.text("RENDER_MODE", "burned_in"),  # type: ignore[arg-type]
            preset=reader.text("PRESET", "default"),
            poll_interval_ms=reader.integer("POLL_INTERVAL_MS", 500),
            retry_delay_ms=reader.integer("RETRY_DELAY_MS", 1000),
            watchdog_interval_ms=reader.integer("WATCHDOG_INTERVAL_MS", 30_000),
            fetch_timeout_s=reader.number("FETCH_TIMEOUT_S", 30.0),
            max_workers=reader.integer("MAX_WORKERS", 4),
            watermark_patterns=patterns,
            log_level=reader.text("LOG_LEVEL", "INFO").upper(),
        )


class _EnvReader:
    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ

    def text(self, name: str, default: str) -> str:
        raw = (self._environ.get(ENV_PREFIX + name) or "").strip()
        return raw or default

    def integer(self, name: str, default: int) -> int:
        raw = self.text(name, "")
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc

    def number(self, name: str, default: float) -> float:
        raw = self.text(name, "")
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc
