"""Data models for one lyrics-to-audio generation run."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

LYRICS_ERROR_TEXT = "Error generating lyrics. Please try again later."

# A derived music prompt is just text.
MusicPrompt = str


class GenerationRequest(BaseModel):
    """The user's brief for one pipeline run."""

    model_config = ConfigDict(frozen=True)

    genre: str = Field(description="Song type, e.g. 'Pop', 'Jazz', 'Hip Hop'")
    mood: str = Field(description="Lyrics style, e.g. 'Emotional', 'Upbeat'")
    description: str = Field(description="Free-text idea the song should be about")


class LyricsResult(BaseModel):
    """Lyrics text; holds the error sentinel when generation failed."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Lyrics, or the error sentinel text")
    ok: bool = Field(default=True, description="False when text is the sentinel")

    @classmethod
    def failed(cls) -> "LyricsResult":
        return cls(text=LYRICS_ERROR_TEXT, ok=False)


class Track(BaseModel):
    """A track created on the composition service, ready to be composed."""

    model_config = ConfigDict(frozen=True)

    track_id: str = Field(description="Identifier returned by the create-track call")


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPOSING = "composing"
    COMPOSED = "composed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPOSED, TaskStatus.FAILED)


class CompositionTask(BaseModel):
    """Snapshot of a composition task as last reported by the service."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(description="Identifier returned by the start-compose call")
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    result_url: str | None = Field(
        default=None, description="Audio URL, present only once composed"
    )
    error_message: str | None = Field(
        default=None, description="Service-supplied reason, present only on failure"
    )

    @model_validator(mode="after")
    def _check_terminal_fields(self) -> "CompositionTask":
        if (self.status is TaskStatus.COMPOSED) != (self.result_url is not None):
            raise ValueError("result_url must be set exactly when status is 'composed'")
        if (self.status is TaskStatus.FAILED) != (self.error_message is not None):
            raise ValueError("error_message must be set exactly when status is 'failed'")
        return self

    @classmethod
    def from_payload(cls, task_id: str, payload: dict[str, Any]) -> "CompositionTask":
        """Build a task from a poll response ``{"status": ..., "meta": {...}}``.

        Statuses the service reports while still working ("running", "queued",
        ...) all map to ``composing``.
        """
        raw_status = str(payload.get("status") or "").lower()
        meta = payload.get("meta") or {}
        if not isinstance(meta, dict):
            meta = {}

        if raw_status == TaskStatus.COMPOSED.value:
            return cls(
                task_id=task_id,
                status=TaskStatus.COMPOSED,
                result_url=meta.get("track_url"),
            )
        if raw_status == TaskStatus.FAILED.value:
            return cls(
                task_id=task_id,
                status=TaskStatus.FAILED,
                error_message=str(meta.get("error") or "Composition failed"),
            )
        if raw_status == TaskStatus.PENDING.value:
            return cls(task_id=task_id, status=TaskStatus.PENDING)
        return cls(task_id=task_id, status=TaskStatus.COMPOSING)


class SongResult(BaseModel):
    """Everything one successful pipeline run produced."""

    lyrics: str = Field(description="Generated lyrics")
    prompt: MusicPrompt = Field(description="Music prompt derived from the lyrics")
    audio_url: str = Field(description="URL of the composed audio")
    track_id: str | None = Field(default=None)
    task_id: str | None = Field(default=None)
