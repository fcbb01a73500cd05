"""HTTP client deriving a music prompt from generated lyrics.

POST /music (form: lyrics, gener, mood, description)
  → {"answer": "<prompt>"} or {"answer": {"response": "<prompt>"}}

Unlike lyrics generation, failures propagate: an unusable prompt must never
reach the (paid) composition calls.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from songsmith.config import Settings
from songsmith.models.generation import GenerationRequest, MusicPrompt
from songsmith.services.errors import ParseError
from songsmith.services.http import request_json
from songsmith.services.lyrics_client import brief_form

log = logging.getLogger(__name__)


def extract_music_prompt(payload: Any) -> MusicPrompt:
    """Normalize the prompt service's response into a prompt string.

    ``answer`` is either the prompt itself or an object whose ``response``
    field holds it. Anything else is a ParseError.
    """
    if not isinstance(payload, dict):
        raise ParseError(f"Prompt response is not an object: {str(payload)[:200]}")

    answer = payload.get("answer")
    if isinstance(answer, dict):
        answer = answer.get("response")

    if not isinstance(answer, str) or not answer.strip():
        raise ParseError(f"Prompt response has no usable text: {str(payload)[:200]}")
    return answer.strip()


class PromptClient:
    """Async client for the prompt-derivation endpoint."""

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
    ) -> "PromptClient":
        return cls(settings.lyrics_base_url, settings.http_timeout, transport)

    async def derive(self, lyrics: str, request: GenerationRequest) -> MusicPrompt:
        """Derive a composition prompt from the lyrics and the original brief."""
        form = {"lyrics": lyrics, **brief_form(request)}
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            body = await request_json(
                client,
                "POST",
                f"{self.base_url}/music",
                "Failed to generate music prompt",
                data=form,
            )

        prompt = extract_music_prompt(body)
        log.info("Derived music prompt: '%s...'", prompt[:80])
        return prompt
