"""Error taxonomy shared by the generation clients and the orchestrator."""

from __future__ import annotations


class SongsmithError(Exception):
    """Base class for every error surfaced by the generation pipeline."""


class ConfigurationError(SongsmithError):
    """A required setting (e.g. the composition API key) is missing."""


class NetworkError(SongsmithError):
    """The request never produced an HTTP response."""


class ServiceError(SongsmithError):
    """The service answered with a non-2xx status or reported a failure."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body

    @classmethod
    def from_response(cls, what: str, status: int, body: str) -> "ServiceError":
        return cls(f"{what}: {status} - {body}", status=status, body=body)


class ParseError(SongsmithError):
    """The response did not have the expected shape."""


class CompositionTimeoutError(SongsmithError, TimeoutError):
    """The composition task did not finish within the polling budget."""


class BusyError(SongsmithError):
    """A composition run is already in flight for this orchestrator."""
