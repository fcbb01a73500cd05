"""End-to-end flow: brief → lyrics → music prompt → composed audio → player.

Each stage awaits the previous one; the first failure stops the run.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from songsmith.config import Settings
from songsmith.models.generation import (
    LYRICS_ERROR_TEXT,
    GenerationRequest,
    LyricsResult,
    SongResult,
)
from songsmith.player.controller import PlaybackController
from songsmith.services.beatoven_client import BeatovenClient
from songsmith.services.composition_service import CompositionService
from songsmith.services.errors import ServiceError
from songsmith.services.lyrics_client import LyricsClient
from songsmith.services.orchestrator import CompositionOrchestrator, OrchestratorState
from songsmith.services.prompt_client import PromptClient

log = logging.getLogger(__name__)

STAGE_LYRICS = "Generating lyrics..."
STAGE_PROMPT = "Generating music prompt..."

# Label shown while the orchestrator works towards the next state.
ORCHESTRATOR_STAGES = {
    OrchestratorState.PROMPT_READY: "Creating music track...",
    OrchestratorState.TRACK_CREATED: "Composing music...",
    OrchestratorState.COMPOSING: "Finalizing composition...",
}


class SongPipeline:
    """Chains the lyrics, prompt and composition stages for one session."""

    def __init__(
        self,
        lyrics_client: LyricsClient,
        prompt_client: PromptClient,
        orchestrator: CompositionOrchestrator,
        player: Optional[PlaybackController] = None,
        on_stage: Optional[Callable[[str], None]] = None,
    ):
        self.lyrics_client = lyrics_client
        self.prompt_client = prompt_client
        self.orchestrator = orchestrator
        self.player = player
        self.on_stage = on_stage
        self.stage = ""
        orchestrator.add_listener(self._orchestrator_state_changed)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        composition: CompositionService | None = None,
        player: Optional[PlaybackController] = None,
        on_stage: Optional[Callable[[str], None]] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "SongPipeline":
        """Wire the real HTTP clients; ``composition`` overrides the Beatoven client."""
        if composition is None:
            composition = BeatovenClient.from_settings(settings, transport)
        orchestrator = CompositionOrchestrator(
            composition,
            poll_interval=settings.poll_interval,
            max_attempts=settings.poll_attempts,
        )
        return cls(
            LyricsClient.from_settings(settings, transport),
            PromptClient.from_settings(settings, transport),
            orchestrator,
            player=player,
            on_stage=on_stage,
        )

    async def generate_lyrics(self, request: GenerationRequest) -> LyricsResult:
        self._set_stage(STAGE_LYRICS)
        try:
            return await self.lyrics_client.generate(request)
        finally:
            self._set_stage("")

    async def compose(self, lyrics: str, request: GenerationRequest) -> SongResult | None:
        """Turn lyrics into audio. Returns None if the run was cancelled."""
        try:
            self._set_stage(STAGE_PROMPT)
            prompt = await self.prompt_client.derive(lyrics, request)

            audio_url = await self.orchestrator.start(prompt)
            if audio_url is None:
                return None
        finally:
            self._set_stage("")

        if self.player is not None:
            self.player.load(audio_url)

        track = self.orchestrator.track
        task = self.orchestrator.task
        return SongResult(
            lyrics=lyrics,
            prompt=prompt,
            audio_url=audio_url,
            track_id=track.track_id if track else None,
            task_id=task.task_id if task else None,
        )

    async def run(self, request: GenerationRequest) -> SongResult | None:
        """Full run. Raises ServiceError without composing when lyrics failed."""
        lyrics = await self.generate_lyrics(request)
        if not lyrics.ok:
            raise ServiceError(LYRICS_ERROR_TEXT)
        return await self.compose(lyrics.text, request)

    def cancel(self) -> bool:
        return self.orchestrator.cancel()

    def _orchestrator_state_changed(self, state: OrchestratorState) -> None:
        label = ORCHESTRATOR_STAGES.get(state)
        if label is not None:
            self._set_stage(label)

    def _set_stage(self, stage: str) -> None:
        if stage == self.stage:
            return
        self.stage = stage
        if stage:
            log.info(stage)
        if self.on_stage is not None:
            self.on_stage(stage)
