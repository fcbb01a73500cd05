"""Drives one composition run: create track → start compose → poll until done.

State machine::

    IDLE → PROMPT_READY → TRACK_CREATED → COMPOSING → COMPOSED
                                                    ↘ FAILED
                                                    ↘ TIMED_OUT

Only one run may be in flight per orchestrator; ``start`` from a non-terminal,
non-idle state raises BusyError without touching the running one. Terminal
states accept a new ``start``. ``cancel`` aborts the run (outstanding request
or pending wait) and returns the orchestrator to IDLE.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from songsmith.models.generation import CompositionTask, TaskStatus, Track
from songsmith.services.composition_service import CompositionService
from songsmith.services.errors import (
    BusyError,
    CompositionTimeoutError,
    ParseError,
    ServiceError,
)

log = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MAX_ATTEMPTS = 30


class OrchestratorState(str, Enum):
    IDLE = "idle"
    PROMPT_READY = "prompt_ready"
    TRACK_CREATED = "track_created"
    COMPOSING = "composing"
    COMPOSED = "composed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrchestratorState.COMPOSED,
            OrchestratorState.FAILED,
            OrchestratorState.TIMED_OUT,
        )

    @property
    def is_busy(self) -> bool:
        return not (self is OrchestratorState.IDLE or self.is_terminal)


class CompositionOrchestrator:
    """Runs composition stages against a CompositionService with bounded polling."""

    def __init__(
        self,
        service: CompositionService,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        audio_format: str = "mp3",
        looping: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_state: Optional[Callable[[OrchestratorState], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._service = service
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.audio_format = audio_format
        self.looping = looping
        self._sleep = sleep
        self._listeners: list[Callable[[OrchestratorState], None]] = []
        if on_state is not None:
            self._listeners.append(on_state)

        self._state = OrchestratorState.IDLE
        self._track: Track | None = None
        self._task: CompositionTask | None = None
        self._error: str | None = None
        self._attempts = 0
        self._run: asyncio.Task | None = None
        self._cancel_requested = False

    # ── Read-only view ──────────────────────────────────

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def track(self) -> Track | None:
        return self._track

    @property
    def task(self) -> CompositionTask | None:
        return self._task

    @property
    def result_url(self) -> str | None:
        if self._state is OrchestratorState.COMPOSED and self._task is not None:
            return self._task.result_url
        return None

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def attempts(self) -> int:
        """Status queries issued in the current (or last) run."""
        return self._attempts

    @property
    def is_busy(self) -> bool:
        return self._state.is_busy

    # ── Control ─────────────────────────────────────────

    async def start(self, prompt: str) -> str | None:
        """Compose ``prompt`` and return the audio URL.

        Returns None if the run was cancelled through ``cancel``. Raises
        BusyError, ParseError, NetworkError, ServiceError or
        CompositionTimeoutError.
        """
        if self._state.is_busy:
            raise BusyError(f"A composition is already in progress ({self._state.value})")
        if not prompt or not prompt.strip():
            raise ParseError("Music prompt is empty")

        self._track = None
        self._task = None
        self._error = None
        self._attempts = 0
        self._cancel_requested = False
        self._set_state(OrchestratorState.PROMPT_READY)

        self._run = asyncio.ensure_future(self._drive(prompt))
        try:
            return await self._run
        except asyncio.CancelledError:
            if not self._cancel_requested:
                self._reset()
                raise
            log.info("Composition cancelled, orchestrator back to idle")
            self._reset()
            return None
        finally:
            self._run = None

    def cancel(self) -> bool:
        """Abort the in-flight run, if any. Returns True if a run was cancelled."""
        if self._run is None or self._run.done():
            return False
        self._cancel_requested = True
        self._run.cancel()
        return True

    def add_listener(self, listener: Callable[[OrchestratorState], None]) -> None:
        """Call ``listener`` with every state the orchestrator enters."""
        self._listeners.append(listener)

    def reset(self) -> None:
        """Return a finished orchestrator to IDLE."""
        if self._state.is_busy:
            raise BusyError("Cannot reset while a composition is in progress")
        self._reset()

    # ── Stages ──────────────────────────────────────────

    async def _drive(self, prompt: str) -> str:
        try:
            track = await self._service.create_track(prompt)
            self._track = track
            self._set_state(OrchestratorState.TRACK_CREATED)

            task_id = await self._service.start_compose(
                track.track_id, self.audio_format, self.looping
            )
            self._task = CompositionTask(task_id=task_id, status=TaskStatus.PENDING)
            self._set_state(OrchestratorState.COMPOSING)

            return await self._poll(task_id)
        except CompositionTimeoutError as e:
            self._error = str(e)
            self._set_state(OrchestratorState.TIMED_OUT)
            raise
        except Exception as e:
            self._error = str(e)
            self._set_state(OrchestratorState.FAILED)
            raise

    async def _poll(self, task_id: str) -> str:
        for attempt in range(1, self.max_attempts + 1):
            self._attempts = attempt
            task = await self._service.get_task(task_id)
            self._task = task
            log.info(
                "Composition %s status=%s (attempt %d/%d)",
                task_id,
                task.status.value,
                attempt,
                self.max_attempts,
            )

            if task.status is TaskStatus.COMPOSED:
                self._set_state(OrchestratorState.COMPOSED)
                return task.result_url
            if task.status is TaskStatus.FAILED:
                raise ServiceError(task.error_message or "Composition failed")

            if attempt < self.max_attempts:
                await self._sleep(self.poll_interval)

        raise CompositionTimeoutError(
            f"Composition timed out after {self.max_attempts} status checks"
        )

    def _set_state(self, state: OrchestratorState) -> None:
        log.debug("Orchestrator %s -> %s", self._state.value, state.value)
        self._state = state
        for listener in self._listeners:
            listener(state)

    def _reset(self) -> None:
        self._track = None
        self._task = None
        self._error = None
        self._attempts = 0
        self._cancel_requested = False
        self._set_state(OrchestratorState.IDLE)
