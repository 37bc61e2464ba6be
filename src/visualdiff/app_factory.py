"""Composition root: build the coordinator and its collaborators from settings."""
from __future__ import annotations

from typing import Optional

import requests

from .backend.coordinator import GenerationCoordinator
from .backend.repository import DiffRepository
from .backend.store import ArtifactStore
from .backend.watchdog import Watchdog
from .overlay import ArtifactRenderer
from .pipeline.generate import DiffPipeline
from .presets import get_preset
from .settings import DiffSettings
from .utils.file_io import DocumentResolver


def create_pipeline(settings: DiffSettings, *, session: Optional[requests.Session] = None) -> DiffPipeline:
    store = ArtifactStore(settings.storage_root, base_dir=settings.base_dir, file_prefix=settings.file_prefix)
    resolver = DocumentResolver(settings.storage_root, timeout=settings.fetch_timeout_s, session=session)
    return DiffPipeline(
        resolver,
        store,
        renderer=ArtifactRenderer(get_preset(settings.preset)),
        watermark_patterns=settings.watermark_patterns,
    )


def create_coordinator(
    settings: Optional[DiffSettings] = None,
    *,
    session: Optional[requests.Session] = None,
) -> GenerationCoordinator:
    settings = settings or DiffSettings.from_env()
    repository = DiffRepository(settings.database_path)
    repository.ensure_schema()
    return GenerationCoordinator(
        repository,
        create_pipeline(settings, session=session),
        generation_timeout_s=settings.generation_timeout_s,
        max_attempts=settings.max_retry_attempts,
        poll_interval_s=settings.poll_interval_ms / 1000.0,
        retry_delay_s=settings.retry_delay_ms / 1000.0,
        default_mode=settings.render_mode,
        max_workers=settings.max_workers,
    )


def create_watchdog(coordinator: GenerationCoordinator, settings: DiffSettings) -> Watchdog:
    return Watchdog(coordinator, interval_s=settings.watchdog_interval_ms / 1000.0)
