"""Model pipeline lifecycle manager.

One ``PipelineManager`` exists per process, owned by ``AppContext``. It wraps a
``create_pipeline(model_id)`` factory and guarantees at most one in-flight load:

    UNINITIALIZED --ensure_initializing--> INITIALIZING
    INITIALIZING  --success--> READY
    INITIALIZING  --failure--> FAILED
    READY | FAILED --restart--> INITIALIZING

``ensure_initializing`` checks and transitions synchronously, with no await in
between, so concurrent callers on the same event loop always observe a single
load. READY and FAILED are sticky until ``restart``. A failed load is recorded
and logged once; it is surfaced only to callers that ask for the handle.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from embedlab.config.constants import DEFAULT_RETRY_AFTER_SEC
from embedlab.core.errors import InitializationError, StillInitializing
from embedlab.core.telemetry import counter

log = structlog.get_logger(__name__)

PipelineFactory = Callable[[str], Awaitable[Any]]


class PipelineStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PipelineState:
    """Snapshot of the lifecycle. ``handle`` iff READY, ``error`` iff FAILED,
    ``pending`` iff INITIALIZING."""

    status: PipelineStatus = PipelineStatus.UNINITIALIZED
    handle: Any = None
    error: InitializationError | None = None
    pending: asyncio.Task[None] | None = None


class PipelineManager:
    """Owns the embedding pipeline handle for the process."""

    def __init__(
        self,
        model_id: str,
        factory: PipelineFactory,
        *,
        retry_after_sec: int = DEFAULT_RETRY_AFTER_SEC,
    ) -> None:
        self._model_id = model_id
        self._factory = factory
        self._retry_after_sec = retry_after_sec
        self._state = PipelineState()
        # Bumped on every new attempt; results from older attempts are dropped.
        self._attempt = 0

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def state(self) -> PipelineState:
        return self._state

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def ensure_initializing(self) -> asyncio.Task[None] | None:
        """Start loading if nothing has been attempted yet.

        Idempotent and non-blocking. Returns the pending attempt, if any.
        Must be called from a running event loop.
        """
        if self._state.status is PipelineStatus.UNINITIALIZED:
            return self._begin_attempt()
        return self._state.pending

    def restart(self) -> asyncio.Task[None]:
        """Discard handle, error and pending marker, then load again.

        An attempt still in flight is not cancelled; its result is ignored.
        """
        log.info(
            "embedding.pipeline_restart",
            model=self._model_id,
            previous=self._state.status.value,
        )
        return self._begin_attempt()

    def _begin_attempt(self) -> asyncio.Task[None]:
        loop = asyncio.get_running_loop()
        self._attempt += 1
        attempt = self._attempt
        task = loop.create_task(self._load(attempt), name=f"embedlab-pipeline-load-{attempt}")
        self._state = PipelineState(status=PipelineStatus.INITIALIZING, pending=task)
        return task

    async def _load(self, attempt: int) -> None:
        start = time.monotonic()
        log.info("embedding.pipeline_loading", model=self._model_id, attempt=attempt)
        try:
            handle = await self._factory(self._model_id)
        except Exception as e:
            if attempt != self._attempt:
                return
            self._state = PipelineState(
                status=PipelineStatus.FAILED,
                error=InitializationError.load_failed(self._model_id, e),
            )
            counter("embedlab.pipeline.loads").add(1, {"outcome": "failure"})
            log.error(
                "embedding.pipeline_load_failed",
                model=self._model_id,
                attempt=attempt,
                error=str(e),
                exc_info=True,
            )
            return

        if attempt != self._attempt:
            return
        self._state = PipelineState(status=PipelineStatus.READY, handle=handle)
        counter("embedlab.pipeline.loads").add(1, {"outcome": "success"})
        log.info(
            "embedding.pipeline_ready",
            model=self._model_id,
            attempt=attempt,
            elapsed_s=round(time.monotonic() - start, 2),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._state.status is PipelineStatus.READY

    def get_error(self) -> InitializationError | None:
        return self._state.error

    def get_handle(self) -> Any:
        return self._state.handle

    def get_pending_attempt(self) -> asyncio.Task[None] | None:
        return self._state.pending

    def status(self) -> dict[str, Any]:
        """Model status as reported by health and warm-up."""
        error = self._state.error
        return {
            "model_name": self._model_id,
            "model_loaded": self.is_ready(),
            "initializing": self._state.status is PipelineStatus.INITIALIZING,
            "error": error.details.get("reason", error.message) if error else None,
        }

    def require_handle(self) -> Any:
        """Return the ready handle, kicking off a load if needed.

        Raises:
            InitializationError: The last load attempt failed.
            StillInitializing: A load is in progress.
        """
        self.ensure_initializing()
        state = self._state
        if state.status is PipelineStatus.READY:
            return state.handle
        if state.error is not None:
            raise state.error
        raise StillInitializing.loading(self._model_id, self._retry_after_sec)

    async def warm(self) -> PipelineStatus:
        """Ensure a load has started and wait for it to settle.

        Waiting is shielded: a caller that gives up does not cancel the load.
        """
        self.ensure_initializing()
        while (pending := self._state.pending) is not None:
            await asyncio.shield(pending)
            if self._state.pending is pending:
                break
        return self._state.status
