from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TransportState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackState(BaseModel):
    """Point-in-time view of the player, mirrored from the media clock."""

    model_config = ConfigDict(frozen=True)

    source: str | None = Field(default=None, description="Loaded audio URL")
    current_time: float = Field(default=0.0, ge=0, description="Playhead in seconds")
    duration: float | None = Field(
        default=None, description="Track length in seconds, None until metadata loads"
    )
    transport: TransportState = Field(default=TransportState.STOPPED)
    is_muted: bool = Field(default=False)

    @property
    def is_playing(self) -> bool:
        return self.transport is TransportState.PLAYING

    @property
    def progress(self) -> float:
        """Fraction of the track played, 0.0 while duration is unknown."""
        if not self.duration:
            return 0.0
        return self.current_time / self.duration
