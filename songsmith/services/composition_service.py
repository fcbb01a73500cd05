from __future__ import annotations

import itertools
import logging
from typing import Protocol, runtime_checkable

from songsmith.models.generation import CompositionTask, TaskStatus, Track

log = logging.getLogger(__name__)


@runtime_checkable
class CompositionService(Protocol):
    """Interface for composition backends driven by the orchestrator.

    BeatovenClient is the real implementation; any object with these three
    async methods can stand in for it.
    """

    async def create_track(self, prompt: str) -> Track: ...

    async def start_compose(
        self, track_id: str, audio_format: str = "mp3", looping: bool = False
    ) -> str: ...

    async def get_task(self, task_id: str) -> CompositionTask: ...


class StubCompositionService:
    """Offline stand-in that reports 'composed' after a few polls."""

    def __init__(self, polls_until_composed: int = 1, url: str = "stub://composition.mp3"):
        self.polls_until_composed = polls_until_composed
        self.url = url
        self._polls: dict[str, int] = {}
        self._track_ids = itertools.count(1)

    async def create_track(self, prompt: str) -> Track:
        log.info("[StubCompositionService] Would create track for: %s", prompt[:80])
        return Track(track_id=f"stub-track-{next(self._track_ids)}")

    async def start_compose(
        self, track_id: str, audio_format: str = "mp3", looping: bool = False
    ) -> str:
        task_id = f"{track_id}-task"
        self._polls[task_id] = 0
        return task_id

    async def get_task(self, task_id: str) -> CompositionTask:
        self._polls[task_id] = self._polls.get(task_id, 0) + 1
        if self._polls[task_id] >= self.polls_until_composed:
            return CompositionTask(
                task_id=task_id, status=TaskStatus.COMPOSED, result_url=self.url
            )
        return CompositionTask(task_id=task_id, status=TaskStatus.COMPOSING)
