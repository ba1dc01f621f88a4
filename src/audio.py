"""
Audio backend for fmus.
"""
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame
from mutagen import File as MutagenFile, MutagenError

from logging_config import get_logger, AudioBackendError

logger = get_logger('audio')

FinishedCallback = Callable[[], None]


class LoadedTrack:
    """Handle to a file loaded into the backend."""

    __slots__ = ('path', 'duration')

    def __init__(self, path: Union[str, Path], duration: float = 0.0) -> None:
        self.path: Path = Path(path)
        self.duration: float = duration

    def __repr__(self) -> str:
        return f"LoadedTrack({str(self.path)!r}, duration={self.duration:.1f})"


class AudioBackend:
    """Base class for audio backends.

    The finished callback may be invoked from a backend-owned thread; it
    must only record the event, never act on player state.
    """

    def open(self) -> None:
        """Open the output device."""
        raise NotImplementedError("Subclasses must implement open()")

    def close(self) -> None:
        """Release the output device."""
        raise NotImplementedError("Subclasses must implement close()")

    def load(self, path: Union[str, Path]) -> LoadedTrack:
        """Load a file for playback."""
        raise NotImplementedError("Subclasses must implement load()")

    def play(self, handle: LoadedTrack) -> None:
        """Start playback of a loaded file from the beginning."""
        raise NotImplementedError("Subclasses must implement play()")

    def pause(self) -> None:
        """Pause playback."""
        raise NotImplementedError("Subclasses must implement pause()")

    def resume(self) -> None:
        """Resume paused playback."""
        raise NotImplementedError("Subclasses must implement resume()")

    def halt(self) -> None:
        """Stop playback without firing the finished callback."""
        raise NotImplementedError("Subclasses must implement halt()")

    def free(self, handle: LoadedTrack) -> None:
        """Release a loaded file."""
        raise NotImplementedError("Subclasses must implement free()")

    def get_position(self) -> float:
        """Decoder position in seconds."""
        raise NotImplementedError("Subclasses must implement get_position()")

    def set_position(self, seconds: float) -> None:
        """Seek to an absolute position."""
        raise NotImplementedError("Subclasses must implement set_position()")

    def get_duration(self, handle: LoadedTrack) -> float:
        """Duration of a loaded file in seconds (0 if unknown)."""
        return handle.duration

    def set_volume(self, volume: int) -> None:
        """Set volume level (0-100)."""
        raise NotImplementedError("Subclasses must implement set_volume()")

    def is_playing(self) -> bool:
        """Whether audio is currently being produced."""
        raise NotImplementedError("Subclasses must implement is_playing()")

    def on_finished(self, callback: Optional[FinishedCallback]) -> None:
        """Register the callback fired when a track plays to its end."""
        raise NotImplementedError("Subclasses must implement on_finished()")


def probe_duration(path: Union[str, Path]) -> float:
    """Read a file's duration from its tags.

    Returns:
        Duration in seconds, or 0.0 when it cannot be determined
    """
    try:
        meta = MutagenFile(str(path))
    except (MutagenError, OSError) as e:
        logger.debug(f"Duration probe failed for {path}: {e}")
        return 0.0
    if meta is None or meta.info is None:
        return 0.0
    return float(getattr(meta.info, "length", 0.0) or 0.0)


class PygameBackend(AudioBackend):
    """Backend over pygame.mixer.music (SDL_mixer).

    ``pygame.mixer.music.get_pos`` counts from the last ``play`` call, so
    positions are tracked as an offset plus that counter. A daemon watcher
    thread reports the end of a stream through the finished callback.
    """

    def __init__(self, frequency: int = 44100, buffer: int = 2048,
                 watch_interval: float = 0.05) -> None:
        self.frequency = frequency
        self.buffer = buffer
        self.watch_interval = watch_interval
        self._lock = threading.Lock()
        self._closing = threading.Event()
        self._watcher: Optional[threading.Thread] = None
        self._callback: Optional[FinishedCallback] = None
        self._offset: float = 0.0
        self._paused: bool = False
        self._armed: bool = False
        self._volume: int = 100

    def open(self) -> None:
        """Initialise the mixer and start the end-of-stream watcher."""
        try:
            pygame.mixer.init(frequency=self.frequency, size=-16, channels=2,
                              buffer=self.buffer)
        except pygame.error as e:
            logger.error(f"Failed to open audio device: {e}")
            raise AudioBackendError(f"Failed to open audio device: {e}") from e

        self._closing.clear()
        self._watcher = threading.Thread(target=self._watch, name="fmus-audio-watch",
                                         daemon=True)
        self._watcher.start()
        logger.info(f"Audio device opened at {self.frequency} Hz")

    def close(self) -> None:
        """Stop playback, the watcher, and the mixer."""
        self._closing.set()
        if self._watcher is not None:
            self._watcher.join(timeout=1.0)
            self._watcher = None
        with self._lock:
            self._armed = False
        if pygame.mixer.get_init():
            pygame.mixer.music.stop()
            pygame.mixer.quit()
        logger.info("Audio device closed")

    def _watch(self) -> None:
        while not self._closing.wait(self.watch_interval):
            with self._lock:
                if not self._armed or self._paused:
                    continue
                if pygame.mixer.music.get_busy():
                    continue
                self._armed = False
                callback = self._callback
            logger.debug("End of stream")
            if callback is not None:
                callback()

    def load(self, path: Union[str, Path]) -> LoadedTrack:
        try:
            pygame.mixer.music.load(str(path))
        except pygame.error as e:
            logger.warning(f"Cannot load {path}: {e}")
            raise AudioBackendError(f"Cannot load {path}: {e}") from e
        handle = LoadedTrack(path, probe_duration(path))
        logger.debug(f"Loaded {handle}")
        return handle

    def play(self, handle: LoadedTrack) -> None:
        with self._lock:
            try:
                pygame.mixer.music.play()
            except pygame.error as e:
                raise AudioBackendError(f"Cannot play {handle.path}: {e}") from e
            pygame.mixer.music.set_volume(self._volume / 100)
            self._offset = 0.0
            self._paused = False
            self._armed = True
        logger.info(f"Started playback: {handle.path}")

    def pause(self) -> None:
        with self._lock:
            pygame.mixer.music.pause()
            self._paused = True

    def resume(self) -> None:
        with self._lock:
            pygame.mixer.music.unpause()
            self._paused = False

    def halt(self) -> None:
        with self._lock:
            self._armed = False
            self._paused = False
            pygame.mixer.music.stop()
        logger.info("Audio playback stopped")

    def free(self, handle: LoadedTrack) -> None:
        with self._lock:
            self._armed = False
            pygame.mixer.music.unload()

    def get_position(self) -> float:
        ms = pygame.mixer.music.get_pos()
        if ms < 0:
            return self._offset
        return self._offset + ms / 1000.0

    def set_position(self, seconds: float) -> None:
        with self._lock:
            was_paused = self._paused
            try:
                pygame.mixer.music.play(start=seconds)
            except pygame.error as e:
                raise AudioBackendError(f"Seek to {seconds:.1f}s failed: {e}") from e
            if was_paused:
                pygame.mixer.music.pause()
            self._offset = seconds
            self._armed = True

    def set_volume(self, volume: int) -> None:
        self._volume = max(0, min(100, int(volume)))
        pygame.mixer.music.set_volume(self._volume / 100)
        logger.debug(f"Volume set to {self._volume}%")

    def is_playing(self) -> bool:
        with self._lock:
            paused = self._paused
        return not paused and pygame.mixer.music.get_busy()

    def on_finished(self, callback: Optional[FinishedCallback]) -> None:
        with self._lock:
            self._callback = callback


@contextmanager
def open_audio_backend(**kwargs) -> Iterator[PygameBackend]:
    """Open the audio device for the lifetime of the block.

    Raises:
        AudioBackendError: If the device cannot be opened
    """
    backend = PygameBackend(**kwargs)
    backend.open()
    try:
        yield backend
    finally:
        backend.close()
