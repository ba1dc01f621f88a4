"""
Transport: the play/pause/stop state machine.

All methods run on the event loop's thread. The only thing the audio
backend may touch from its own thread is the finished flag, through
``request_finished``.
"""
import math
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from logging_config import get_logger, AudioBackendError
from src.audio import AudioBackend, LoadedTrack
from src.clock import PlaybackClock
from src.config import RepeatMode, clamp_volume, DEFAULT_VOLUME
from src.playqueue import PlayQueue, Track, FORWARD, BACKWARD

logger = get_logger('transport')

Listener = Callable[["Transport"], None]


class TransportState(Enum):
    STOPPED = "Stopped"
    PLAYING = "Playing"
    PAUSED = "Paused"


@dataclass(frozen=True)
class Outcome:
    """Value-level result of a transport operation."""
    ok: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.ok


OK = Outcome(True)


class Transport:
    """Owns the queue, the clock and the backend handle of the active track."""

    def __init__(self, backend: AudioBackend, clock: Optional[PlaybackClock] = None,
                 repeat_mode: RepeatMode = RepeatMode.NONE, shuffle: bool = False,
                 reshuffle_on_end: bool = False, volume: int = DEFAULT_VOLUME) -> None:
        self.backend = backend
        self.clock = clock or PlaybackClock()
        self.queue = PlayQueue()
        self.state = TransportState.STOPPED
        self.active_track: Optional[Track] = None
        self.duration: int = 0
        self.repeat_mode = repeat_mode
        self.shuffle = shuffle
        self.reshuffle_on_end = reshuffle_on_end
        self.volume = clamp_volume(volume)
        self._handle: Optional[LoadedTrack] = None
        self._finished = threading.Event()
        self._listeners: List[Listener] = []

        self.backend.on_finished(self.request_finished)
        self.backend.set_volume(self.volume)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Register a callback run after every state change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def playing(self) -> bool:
        return self.state == TransportState.PLAYING

    @property
    def paused(self) -> bool:
        return self.state == TransportState.PAUSED

    @property
    def position(self) -> float:
        """Elapsed seconds in the active track."""
        if self.state == TransportState.STOPPED:
            return 0.0
        return self.clock.sample()

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def _release(self) -> None:
        if self._handle is not None:
            self.backend.halt()
            self.backend.free(self._handle)
            self._handle = None

    def _start(self, index: int) -> Outcome:
        track = self.queue.track_at(index)
        if track is None:
            return Outcome(False, f"index {index} out of range")

        self._release()
        self._finished.clear()
        try:
            handle = self.backend.load(track.path)
            self.backend.play(handle)
        except AudioBackendError as e:
            logger.warning(f"Cannot play {track.path}: {e}")
            self.state = TransportState.STOPPED
            self.active_track = None
            self.duration = 0
            self.clock.clear()
            return Outcome(False, str(e))

        self._handle = handle
        self.duration = int(self.backend.get_duration(handle))
        self.clock.start(self.duration)
        self.active_track = track
        self.queue.cursor = index
        self.state = TransportState.PLAYING
        logger.info(f"Playing [{index + 1}/{len(self.queue)}] {track.name}")
        return OK

    def play_at(self, index: int) -> Outcome:
        """Play the track at a position in play order."""
        if not 0 <= index < len(self.queue):
            return Outcome(False, f"index {index} out of range")
        outcome = self._start(index)
        self._notify()
        return outcome

    def open(self, path: Union[str, Path]) -> Outcome:
        """Build the queue around *path* and start playing it."""
        queue = PlayQueue.build(path, shuffle=self.shuffle, rng=self.queue.rng)
        if queue.cursor is None:
            logger.warning(f"Not playable: {path}")
            return Outcome(False, f"not playable: {path}")
        self.queue = queue
        return self.play_at(queue.cursor)

    def stop(self) -> Outcome:
        """Halt playback and clear the active track."""
        self._release()
        self._finished.clear()
        self.state = TransportState.STOPPED
        self.active_track = None
        self.duration = 0
        self.clock.clear()
        logger.info("Stopped")
        self._notify()
        return OK

    def toggle_pause(self) -> Outcome:
        if self.state == TransportState.PLAYING:
            return self.pause()
        if self.state == TransportState.PAUSED:
            return self.play()
        return Outcome(False, "nothing loaded")

    def pause(self) -> Outcome:
        """Pause if playing."""
        if self.state != TransportState.PLAYING:
            return Outcome(False, "not playing")
        self.backend.pause()
        self.clock.freeze()
        self.state = TransportState.PAUSED
        logger.debug(f"Paused at {self.clock.sample():.1f}s "
                     f"(decoder at {self.backend.get_position():.1f}s)")
        self._notify()
        return OK

    def play(self) -> Outcome:
        """Resume if paused with a track loaded."""
        if self.state != TransportState.PAUSED or self._handle is None:
            return Outcome(False, "not paused")
        self.backend.resume()
        self.clock.resume()
        self.state = TransportState.PLAYING
        logger.debug(f"Resumed at {self.clock.sample():.1f}s")
        self._notify()
        return OK

    def seek(self, delta: float) -> Outcome:
        """Move the position by *delta* seconds, clamped to the track."""
        if self.state == TransportState.STOPPED:
            return Outcome(False, "nothing loaded")
        target = self.clock.sample() + delta
        if math.isnan(target):
            return Outcome(False, "invalid seek")
        upper = float(self.duration) if self.duration > 0 else math.inf
        target = max(0.0, min(upper, target))
        if math.isinf(target):
            return Outcome(False, "duration unknown")
        try:
            self.backend.set_position(target)
        except AudioBackendError as e:
            logger.warning(f"Seek failed: {e}")
            return Outcome(False, str(e))
        self.clock.reset(target)
        self._notify()
        return OK

    # ------------------------------------------------------------------
    # Queue navigation
    # ------------------------------------------------------------------

    def next(self) -> Outcome:
        """Advance according to repeat and reshuffle settings.

        Unplayable tracks are skipped; the queue stops once every track has
        been tried.
        """
        attempted = False
        for _ in range(max(1, len(self.queue))):
            step = self.queue.advance(FORWARD, self.repeat_mode, self.reshuffle_on_end)
            if step.index is None:
                if self.state == TransportState.STOPPED and not attempted:
                    return Outcome(False, "end of queue")
                return self.stop()
            if step.reshuffle:
                self.queue.reshuffle()
            outcome = self._start(step.index)
            if outcome:
                self._notify()
                return outcome
            attempted = True
            # Skip past the failed track
            self.queue.cursor = step.index
            if self.repeat_mode == RepeatMode.ONE:
                break
        return self.stop()

    def previous(self) -> Outcome:
        """Step back one track; restart the current one under repeat-one."""
        step = self.queue.advance(BACKWARD, self.repeat_mode)
        if step.index is None:
            return Outcome(False, "at start of queue")
        return self.play_at(step.index)

    def first(self) -> Outcome:
        return self.play_at(0)

    def last(self) -> Outcome:
        return self.play_at(len(self.queue) - 1)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def set_shuffle(self, enabled: bool) -> None:
        """Switch shuffle, rebuilding the queue around the active track."""
        self.shuffle = enabled
        if self.active_track is not None:
            queue = self.queue.rebuild(enabled)
            if queue.cursor is None:
                logger.warning(f"Active track vanished from {self.active_track.path.parent}")
            self.queue = queue
        logger.info(f"Shuffle {'on' if enabled else 'off'}")
        self._notify()

    def toggle_shuffle(self) -> None:
        self.set_shuffle(not self.shuffle)

    def cycle_repeat(self) -> RepeatMode:
        """None -> Dir -> One -> None."""
        self.repeat_mode = RepeatMode((self.repeat_mode + 1) % len(RepeatMode))
        logger.info(f"Repeat {self.repeat_mode.label}")
        self._notify()
        return self.repeat_mode

    def set_volume(self, volume: int) -> int:
        self.volume = clamp_volume(volume)
        self.backend.set_volume(self.volume)
        self._notify()
        return self.volume

    def adjust_volume(self, delta: int) -> int:
        return self.set_volume(self.volume + delta)

    # ------------------------------------------------------------------
    # End of track
    # ------------------------------------------------------------------

    def request_finished(self) -> None:
        """Record that the backend reached the end of a track.

        Safe to call from any thread.
        """
        self._finished.set()

    def poll_finished(self) -> bool:
        """Check and clear the finished flag; advance if the track ended.

        Returns:
            True if the flag was set and the queue advanced
        """
        if not self._finished.is_set():
            return False
        self._finished.clear()
        if self.state != TransportState.PLAYING or self.backend.is_playing():
            return False
        logger.debug("Track finished")
        self.next()
        return True

    def close(self) -> None:
        """Release the backend handle."""
        self._release()
        self.backend.on_finished(None)
        self.state = TransportState.STOPPED
        self.active_track = None
