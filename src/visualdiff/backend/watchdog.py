from __future__ import annotations

import logging
import threading
from typing import Optional

from .coordinator import GenerationCoordinator
from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)


class Watchdog:
    """Background thread that periodically reclaims stuck generations."""

    def __init__(self, coordinator: GenerationCoordinator, *, interval_s: float = 30.0) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.coordinator = coordinator
        self.interval_s = interval_s
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="visualdiff-watchdog", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> int:
        return self.coordinator.sweep()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except StorageUnavailable as exc:
                # Keep sweeping; the database may come back.
                logger.error("watchdog sweep failed: %s", exc)
            self._stop.wait(self.interval_s)
