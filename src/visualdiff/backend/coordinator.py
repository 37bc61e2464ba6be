"""Lifecycle of visual diff artifacts.

Every comparison key owns one row in :class:`DiffRepository` that moves
``PENDING -> GENERATING -> READY | FAILED``.  Whoever wins the atomic claim
on the row runs the pipeline; everyone else waits for the row to change or
is told the artifact is still being generated.  Stale ``GENERATING`` rows
are failed with ``"timeout"`` by :meth:`GenerationCoordinator.sweep`, which
the watchdog runs periodically and every request runs for its own key.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Dict, Optional, Protocol

from ..core.types import (
    FAILED,
    GENERATING,
    READY,
    RENDER_MODES,
    ComparisonKey,
    DiffArtifact,
    GenerationOutcome,
    RenderMode,
    WordSummary,
)
from ..errors import (
    DiffError,
    GenerationTimeout,
    MaxRetriesExceeded,
    StorageUnavailable,
    error_from_record,
)
from .repository import TIMEOUT_ERROR, DiffRepository

logger = logging.getLogger(__name__)


class GenerationPipeline(Protocol):
    def run(
        self,
        key: ComparisonKey,
        source_ref: str,
        target_ref: str,
        *,
        mode: RenderMode = "burned_in",
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        ...

    def summarize(self, source_ref: str, target_ref: str) -> WordSummary:
        ...


class GenerationCoordinator:
    def __init__(
        self,
        repository: DiffRepository,
        pipeline: GenerationPipeline,
        *,
        generation_timeout_s: float = 300.0,
        max_attempts: int = 3,
        poll_interval_s: float = 0.5,
        retry_delay_s: float = 1.0,
        default_mode: RenderMode = "burned_in",
        max_workers: int = 4,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if default_mode not in RENDER_MODES:
            raise ValueError(f"Unknown render mode '{default_mode}'")
        self.repository = repository
        self.pipeline = pipeline
        self.generation_timeout_s = generation_timeout_s
        self.max_attempts = max_attempts
        self.poll_interval_s = poll_interval_s
        self.retry_delay_s = retry_delay_s
        self.default_mode = default_mode
        self._clock = clock
        self._sleep = sleep
        self._changed = threading.Condition()
        self._attempts_lock = threading.Lock()
        self._attempts: Dict[threading.Thread, threading.Event] = {}
        self._background = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="visualdiff-submit")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def register(self, key: ComparisonKey) -> DiffArtifact:
        """Create the ``PENDING`` row for ``key`` if it does not exist yet."""

        return self.repository.get_or_create(key, self._clock())

    def get_status(self, key: ComparisonKey) -> Optional[DiffArtifact]:
        self._expire(key)
        return self.repository.get(key)

    def summarize(self, source_ref: str, target_ref: str) -> WordSummary:
        return self.pipeline.summarize(source_ref, target_ref)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def sweep(self) -> int:
        """Fail every ``GENERATING`` row older than the generation timeout."""

        now = self._clock()
        count = self.repository.expire_stale(now - self.generation_timeout_s, now)
        if count:
            self._notify()
        return count

    def reset(self, key: ComparisonKey) -> bool:
        """Forget ``key`` entirely so the next request starts from scratch."""

        removed = self.repository.delete(key)
        if removed:
            logger.info("reset %s", key.fingerprint)
            self._notify()
        return removed

    def close(self) -> None:
        """Stop background submissions and cancel attempts still running."""

        self._background.shutdown(wait=True)
        with self._attempts_lock:
            running = list(self._attempts.items())
        for thread, cancel_event in running:
            cancel_event.set()
            thread.join(self.generation_timeout_s)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def submit(
        self,
        key: ComparisonKey,
        source_ref: str,
        target_ref: str,
        *,
        mode: Optional[RenderMode] = None,
    ) -> "Future[GenerationOutcome]":
        """Start generation in the background and return immediately."""

        return self._background.submit(self.get_or_generate, key, source_ref, target_ref, wait=False, mode=mode)

    def get_or_generate(
        self,
        key: ComparisonKey,
        source_ref: str,
        target_ref: str,
        *,
        wait: bool = True,
        wait_timeout: Optional[float] = None,
        mode: Optional[RenderMode] = None,
    ) -> GenerationOutcome:
        """Return the artifact for ``key``, generating it if nobody has yet.

        A ``READY`` row is answered from the row alone.  When another caller
        is generating, ``wait=False`` returns an in-progress outcome at once
        and ``wait=True`` blocks until the row settles or ``wait_timeout``
        seconds pass.  Failures come back as ``outcome.error``; only a broken
        state database raises.
        """

        mode = mode or self.default_mode
        if mode not in RENDER_MODES:
            raise ValueError(f"Unknown render mode '{mode}'. Available: {', '.join(RENDER_MODES)}")
        deadline = None if wait_timeout is None else time.monotonic() + wait_timeout

        artifact = self.repository.get_or_create(key, self._clock())
        while True:
            if artifact.is_timed_out(self._clock(), self.generation_timeout_s) and self._expire(key):
                artifact = self.repository.get(key) or self.repository.get_or_create(key, self._clock())

            settled = self._settled_outcome(artifact)
            if settled is not None:
                return settled

            if artifact.status != GENERATING:
                claimed = self.repository.claim(key, self._clock(), self.max_attempts)
                if claimed is None:
                    logger.debug("%s was claimed by another caller", key.fingerprint)
                else:
                    artifact = self._attempt(claimed, source_ref, target_ref, mode)
                    settled = self._settled_outcome(artifact)
                    if settled is not None:
                        return settled
                    logger.info(
                        "%s failed attempt %s/%s (%s), retrying",
                        key.fingerprint,
                        artifact.attempt_count,
                        self.max_attempts,
                        artifact.error_kind,
                    )
                    self._sleep(self.retry_delay_s)
                artifact = self.repository.get(key) or self.repository.get_or_create(key, self._clock())
                continue

            if not wait:
                return GenerationOutcome(status=artifact.status, artifact=artifact)
            timeout = self.poll_interval_s
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return GenerationOutcome(status=artifact.status, artifact=artifact)
                timeout = min(timeout, remaining)
            with self._changed:
                self._changed.wait(timeout)
            artifact = self.repository.get(key) or self.repository.get_or_create(key, self._clock())

    def _settled_outcome(self, artifact: DiffArtifact) -> Optional[GenerationOutcome]:
        if artifact.status == READY:
            return GenerationOutcome(status=READY, artifact_location=artifact.artifact_location, artifact=artifact)
        if artifact.status != FAILED:
            return None
        if not artifact.retryable:
            error = error_from_record(artifact.error_kind, artifact.last_error, False)
            return GenerationOutcome(status=FAILED, error=error, artifact=artifact)
        if artifact.attempt_count >= self.max_attempts:
            error = MaxRetriesExceeded(
                f"{artifact.key.fingerprint} failed {artifact.attempt_count} time(s): {artifact.last_error}",
                last_error=artifact.last_error,
            )
            return GenerationOutcome(status=FAILED, error=error, artifact=artifact)
        return None

    def _attempt(self, claimed: DiffArtifact, source_ref: str, target_ref: str, mode: RenderMode) -> DiffArtifact:
        key = claimed.key
        attempt = claimed.attempt_count
        logger.info("%s generating (attempt %s/%s, %s)", key.fingerprint, attempt, self.max_attempts, mode)
        cancel_event = threading.Event()
        future = self._start_worker(key, source_ref, target_ref, mode, cancel_event)
        try:
            location = future.result(timeout=self.generation_timeout_s)
        except FutureTimeout:
            cancel_event.set()
            future.cancel()
            logger.warning("%s attempt %s timed out after %ss", key.fingerprint, attempt, self.generation_timeout_s)
            self._record_failure(key, attempt, GenerationTimeout(TIMEOUT_ERROR))
        except DiffError as exc:
            logger.warning("%s attempt %s failed: %s: %s", key.fingerprint, attempt, exc.kind, exc.message)
            self._record_failure(key, attempt, exc)
        except StorageUnavailable as exc:
            self._record_failure(key, attempt, DiffError(str(exc), retryable=True))
            raise
        except Exception as exc:
            logger.error("%s attempt %s crashed", key.fingerprint, attempt, exc_info=True)
            self._record_failure(key, attempt, DiffError(f"{type(exc).__name__}: {exc}", retryable=True))
        else:
            if self.repository.mark_ready(key, attempt, location, self._clock()):
                logger.info("%s ready at %s", key.fingerprint, location)
            else:
                logger.warning("%s attempt %s finished after it was reclaimed", key.fingerprint, attempt)
        self._notify()
        return self.repository.get(key) or self.repository.get_or_create(key, self._clock())

    def _start_worker(
        self,
        key: ComparisonKey,
        source_ref: str,
        target_ref: str,
        mode: RenderMode,
        cancel_event: threading.Event,
    ) -> "Future[str]":
        """Run one attempt on its own thread.

        Attempts never queue behind other keys, so the generation timeout
        measures the attempt itself.  A worker that ignores its cancel event
        only holds its own thread.
        """

        future: "Future[str]" = Future()

        def work() -> None:
            try:
                if not future.set_running_or_notify_cancel():
                    return
                try:
                    location = self.pipeline.run(key, source_ref, target_ref, mode=mode, cancel_event=cancel_event)
                except Exception as exc:
                    future.set_exception(exc)
                else:
                    future.set_result(location)
            finally:
                with self._attempts_lock:
                    self._attempts.pop(threading.current_thread(), None)

        thread = threading.Thread(target=work, name=f"visualdiff-render-{key.fingerprint}", daemon=True)
        with self._attempts_lock:
            self._attempts[thread] = cancel_event
        thread.start()
        return future

    def _record_failure(self, key: ComparisonKey, attempt: int, error: DiffError) -> None:
        self.repository.mark_failed(
            key,
            attempt,
            error=error.message or error.kind,
            error_kind=error.kind,
            retryable=error.retryable,
            now=self._clock(),
        )

    def _expire(self, key: ComparisonKey) -> int:
        now = self._clock()
        return self.repository.expire_stale(now - self.generation_timeout_s, now, key=key)

    def _notify(self) -> None:
        with self._changed:
            self._changed.notify_all()
