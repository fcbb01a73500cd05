from __future__ import annotations

import asyncio

import pytest

from songsmith.models.generation import CompositionTask, Track


class ScriptedComposition:
    """Composition service that replays a fixed sequence of task statuses."""

    def __init__(self, statuses=("composed",), url="https://cdn.example.com/song.mp3",
                 error="Model overloaded"):
        self.statuses = list(statuses)
        self.url = url
        self.error = error
        self.calls: list[tuple] = []
        self.polls = 0

    async def create_track(self, prompt: str) -> Track:
        self.calls.append(("create_track", prompt))
        return Track(track_id="trk-1")

    async def start_compose(self, track_id: str, audio_format: str = "mp3",
                            looping: bool = False) -> str:
        self.calls.append(("start_compose", track_id, audio_format, looping))
        return "task-1"

    async def get_task(self, task_id: str) -> CompositionTask:
        self.polls += 1
        status = self.statuses[min(self.polls, len(self.statuses)) - 1]
        meta = {}
        if status == "composed":
            meta = {"track_url": self.url}
        elif status == "failed":
            meta = {"error": self.error}
        return CompositionTask.from_payload(task_id, {"status": status, "meta": meta})


class SleepRecorder:
    """Replacement for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings()."""
    for var in (
        "SONGSMITH_LYRICS_URL",
        "BEATOVEN_API_URL",
        "BEATOVEN_API_KEY",
        "SONGSMITH_HTTP_TIMEOUT",
        "SONGSMITH_POLL_INTERVAL",
        "SONGSMITH_POLL_ATTEMPTS",
        "SONGSMITH_HOST",
        "SONGSMITH_PORT",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
