"""HTTP client for the Beatoven-compatible composition REST API.

Three calls drive one composition:
  1. Create track   — POST /tracks                      {"prompt": {"text": ...}} → {"tracks": [id]}
  2. Start compose  — POST /tracks/compose/{track_id}   {"format", "looping"}     → {"task_id": ...}
  3. Poll task      — GET  /tasks/{task_id}             → {"status", "meta": {"track_url" | "error"}}

Every call carries ``Authorization: Bearer <api key>``. The key is injected by
the caller and never has a default.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from songsmith.config import Settings
from songsmith.models.generation import CompositionTask, Track
from songsmith.services.errors import ParseError
from songsmith.services.http import request_json

log = logging.getLogger(__name__)


class BeatovenClient:
    """Async client for the composition API."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "BeatovenClient":
        return cls(
            settings.require_beatoven_key(),
            settings.beatoven_base_url,
            settings.http_timeout,
            transport,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _call(self, method: str, path: str, what: str, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            return await request_json(
                client,
                method,
                f"{self.base_url}{path}",
                what,
                headers=self._headers(),
                **kwargs,
            )

    # ── 1. Create Track ─────────────────────────────────

    async def create_track(self, prompt: str) -> Track:
        """Create a track from a text prompt.

        POST /tracks → {"status": "success", "tracks": ["<track id>"]}
        """
        body = await self._call(
            "POST", "/tracks", "Failed to create track", json={"prompt": {"text": prompt}}
        )
        tracks = body.get("tracks") if isinstance(body, dict) else None
        if not isinstance(tracks, list) or not tracks or not tracks[0]:
            raise ParseError(f"No track id in response: {body}")
        track = Track(track_id=str(tracks[0]))
        log.info("Created track %s", track.track_id)
        return track

    # ── 2. Start Composition ────────────────────────────

    async def start_compose(
        self, track_id: str, audio_format: str = "mp3", looping: bool = False
    ) -> str:
        """Start composing a track. Returns the task id.

        POST /tracks/compose/{track_id} → {"status": "started", "task_id": "..."}
        """
        body = await self._call(
            "POST",
            f"/tracks/compose/{track_id}",
            "Failed to start composition",
            json={"format": audio_format, "looping": looping},
        )
        task_id = body.get("task_id") if isinstance(body, dict) else None
        if not task_id:
            raise ParseError(f"No task_id in response: {body}")
        log.info("Started composition task %s for track %s", task_id, track_id)
        return str(task_id)

    # ── 3. Poll Task ────────────────────────────────────

    async def get_task(self, task_id: str) -> CompositionTask:
        """Query the current status of a composition task.

        GET /tasks/{task_id} → {"status": "composing" | "composed" | "failed" | ...,
                                "meta": {"track_url": ...} | {"error": ...}}
        """
        body = await self._call(
            "GET", f"/tasks/{task_id}", "Failed to check composition status"
        )
        if not isinstance(body, dict):
            raise ParseError(f"Unexpected task status response: {body}")
        try:
            return CompositionTask.from_payload(task_id, body)
        except ValidationError as e:
            raise ParseError(f"Malformed task status for {task_id}: {body}") from e
