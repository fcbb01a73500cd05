"""Playback transport mirroring an external media clock.

The media element owns the real clock. It reports back through three
notifications (TimeAdvanced, MetadataLoaded, Ended); user commands (Play,
Pause, Seek, ...) go through the same ``dispatch`` transition function, one
message at a time under a lock. The sink is driven after each new state is
committed; anything it reports back synchronously is queued and applied
next, in arrival order.

    STOPPED → PLAYING ⇄ PAUSED → STOPPED      (Ended or Stop → STOPPED)
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from songsmith.models.playback import PlaybackState, TransportState

log = logging.getLogger(__name__)

SKIP_SECONDS = 10.0


class MediaSink(Protocol):
    """The media backend the controller drives (an audio element, a player process...)."""

    def set_source(self, url: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def set_current_time(self, seconds: float) -> None: ...

    def set_muted(self, muted: bool) -> None: ...


# ── Clock notifications ─────────────────────────────────


@dataclass(frozen=True)
class TimeAdvanced:
    current_time: float


@dataclass(frozen=True)
class MetadataLoaded:
    duration: float


@dataclass(frozen=True)
class Ended:
    pass


# ── User commands ───────────────────────────────────────


@dataclass(frozen=True)
class LoadSource:
    url: str


@dataclass(frozen=True)
class Play:
    pass


@dataclass(frozen=True)
class Pause:
    pass


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class Seek:
    fraction: float


@dataclass(frozen=True)
class Skip:
    delta: float


@dataclass(frozen=True)
class ToggleMute:
    pass


Message = Union[
    TimeAdvanced,
    MetadataLoaded,
    Ended,
    LoadSource,
    Play,
    Pause,
    Stop,
    Seek,
    Skip,
    ToggleMute,
]


def format_time(seconds: float) -> str:
    """Render seconds as m:ss, e.g. 125.4 → '2:05'."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        seconds = 0
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


class PlaybackController:
    """Owns the PlaybackState for one player and applies messages to it."""

    def __init__(self, sink: Optional[MediaSink] = None):
        self._sink = sink
        self._lock = threading.RLock()
        self._state = PlaybackState()
        self._queue: deque = deque()
        self._effects: list[tuple[str, tuple]] = []
        self._dispatching = False

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return self._state

    # ── Transition function ─────────────────────────────

    def dispatch(self, message: Message) -> PlaybackState:
        """Apply one message and return the resulting state.

        A message dispatched from inside a sink call (the media backend
        reporting back synchronously) is queued behind the current one; that
        nested call returns the state committed so far.
        """
        with self._lock:
            self._queue.append(message)
            if self._dispatching:
                return self._state
            self._dispatching = True
            try:
                while self._queue:
                    self._commit(self._queue.popleft())
            finally:
                self._dispatching = False
                self._queue.clear()
                self._effects.clear()
            return self._state

    def _commit(self, message: Message) -> None:
        before = self._state
        self._effects.clear()
        self._state = self._apply(before, message)
        if self._state is not before:
            log.debug("%s: %s -> %s", type(message).__name__, before, self._state)
        effects, self._effects = self._effects, []
        if self._sink is not None:
            for method, args in effects:
                getattr(self._sink, method)(*args)

    def _apply(self, s: PlaybackState, message: Message) -> PlaybackState:
        if isinstance(message, TimeAdvanced):
            t = message.current_time
            if not math.isfinite(t):
                return s
            return s.model_copy(update={"current_time": self._bound(s, t)})

        if isinstance(message, MetadataLoaded):
            d = message.duration
            if s.duration is not None:
                log.debug("Ignoring duration %s, already set to %s", d, s.duration)
                return s
            if not math.isfinite(d) or d < 0:
                log.warning("Ignoring invalid media duration %s", d)
                return s
            return s.model_copy(
                update={"duration": d, "current_time": min(s.current_time, d)}
            )

        if isinstance(message, Ended):
            update = {"transport": TransportState.STOPPED}
            if s.duration is not None:
                update["current_time"] = s.duration
            return s.model_copy(update=update)

        if isinstance(message, LoadSource):
            self._emit("set_source", message.url)
            return PlaybackState(source=message.url, is_muted=s.is_muted)

        if isinstance(message, Play):
            if s.transport is TransportState.PLAYING:
                return s
            update = {"transport": TransportState.PLAYING}
            if s.duration and s.current_time >= s.duration:
                update["current_time"] = 0.0
                self._emit("set_current_time", 0.0)
            self._emit("play")
            return s.model_copy(update=update)

        if isinstance(message, Pause):
            if s.transport is not TransportState.PLAYING:
                return s
            self._emit("pause")
            return s.model_copy(update={"transport": TransportState.PAUSED})

        if isinstance(message, Stop):
            if s.transport is TransportState.STOPPED and s.current_time == 0:
                return s
            self._emit("pause")
            self._emit("set_current_time", 0.0)
            return s.model_copy(
                update={"transport": TransportState.STOPPED, "current_time": 0.0}
            )

        if isinstance(message, Seek):
            fraction = message.fraction if math.isfinite(message.fraction) else 0.0
            target = _clamp(fraction, 0.0, 1.0) * (s.duration or 0.0)
            return self._move_to(s, target)

        if isinstance(message, Skip):
            delta = message.delta if math.isfinite(message.delta) else 0.0
            return self._move_to(s, s.current_time + delta)

        if isinstance(message, ToggleMute):
            self._emit("set_muted", not s.is_muted)
            return s.model_copy(update={"is_muted": not s.is_muted})

        raise TypeError(f"Unknown playback message: {message!r}")

    def _move_to(self, s: PlaybackState, target: float) -> PlaybackState:
        # Before metadata loads the duration counts as 0, so every move clamps to 0.
        t = _clamp(target, 0.0, s.duration or 0.0)
        self._emit("set_current_time", t)
        return s.model_copy(update={"current_time": t})

    @staticmethod
    def _bound(s: PlaybackState, t: float) -> float:
        if s.duration is None:
            return max(t, 0.0)
        return _clamp(t, 0.0, s.duration)

    def _emit(self, method: str, *args) -> None:
        # Recorded during _apply, sent to the sink once the new state is committed.
        self._effects.append((method, args))

    # ── Convenience wrappers ────────────────────────────

    def load(self, url: str) -> PlaybackState:
        return self.dispatch(LoadSource(url))

    def play(self) -> PlaybackState:
        return self.dispatch(Play())

    def pause(self) -> PlaybackState:
        return self.dispatch(Pause())

    def toggle_play(self) -> PlaybackState:
        with self._lock:
            if self._state.is_playing:
                return self.dispatch(Pause())
            return self.dispatch(Play())

    def stop(self) -> PlaybackState:
        return self.dispatch(Stop())

    def seek(self, fraction: float) -> PlaybackState:
        return self.dispatch(Seek(fraction))

    def skip(self, delta: float = SKIP_SECONDS) -> PlaybackState:
        return self.dispatch(Skip(delta))

    def toggle_mute(self) -> PlaybackState:
        return self.dispatch(ToggleMute())

    def on_time_update(self, current_time: float) -> PlaybackState:
        return self.dispatch(TimeAdvanced(current_time))

    def on_metadata_loaded(self, duration: float) -> PlaybackState:
        return self.dispatch(MetadataLoaded(duration))

    def on_ended(self) -> PlaybackState:
        return self.dispatch(Ended())
