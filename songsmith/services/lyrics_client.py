"""HTTP client for the lyrics generation backend.

POST /song (form: gener, mood, description) → {"answer": {"response": "<lyrics>"}}

The UI always needs renderable text, so ``generate`` never raises: every
failure is logged and replaced by the fixed error sentinel.
"""

from __future__ import annotations

import logging

import httpx

from songsmith.config import Settings
from songsmith.models.generation import GenerationRequest, LyricsResult

log = logging.getLogger(__name__)

# The backend's form key for the genre field.
GENRE_FIELD = "gener"


def brief_form(request: GenerationRequest) -> dict[str, str]:
    """Form fields describing the user's brief, as the backend names them."""
    return {
        GENRE_FIELD: request.genre,
        "mood": request.mood,
        "description": request.description,
    }


class LyricsClient:
    """Async client for the lyrics endpoint of the generation backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "LyricsClient":
        return cls(settings.lyrics_base_url, settings.http_timeout, transport)

    async def generate(self, request: GenerationRequest) -> LyricsResult:
        """Generate lyrics for the brief, or the error sentinel on any failure."""
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    f"{self.base_url}/song", data=brief_form(request)
                )
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            log.warning("Lyrics service returned %s", e.response.status_code)
            return LyricsResult.failed()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            log.warning("Lyrics request failed: %s", e)
            return LyricsResult.failed()

        answer = body.get("answer") if isinstance(body, dict) else None
        lyrics = answer.get("response") if isinstance(answer, dict) else None
        if not isinstance(lyrics, str) or not lyrics.strip():
            log.warning("Lyrics response missing answer.response: %s", str(body)[:200])
            return LyricsResult.failed()

        log.info(
            "Generated lyrics for genre=%s mood=%s (%d chars)",
            request.genre,
            request.mood,
            len(lyrics),
        )
        return LyricsResult(text=lyrics)
