"""
Playback clock.

Position is always derived from a fixed monotonic origin rather than
accumulated per tick, so the redraw rate never affects reported time.
"""
import time
from typing import Callable, Optional


class PlaybackClock:
    """Elapsed-time tracker for the active track.

    ``origin`` is the instant at which position 0 would have started.
    While frozen (paused) the clock reports the value captured at the
    freeze instant.
    """

    def __init__(self, now: Callable[[], float] = time.monotonic):
        self._now = now
        self.origin: float = now()
        self.duration: float = 0.0
        self._frozen: Optional[float] = None

    @property
    def frozen(self) -> bool:
        return self._frozen is not None

    def _clamp(self, position: float) -> float:
        position = max(0.0, position)
        if self.duration > 0:
            position = min(float(self.duration), position)
        return position

    def sample(self) -> float:
        """Current position in seconds, clamped to [0, duration]."""
        if self._frozen is not None:
            return self._frozen
        return self._clamp(self._now() - self.origin)

    def reset(self, position: float = 0.0) -> None:
        """Re-anchor the origin so that sample() returns *position* now."""
        position = self._clamp(position)
        self.origin = self._now() - position
        if self._frozen is not None:
            self._frozen = position

    def freeze(self) -> float:
        """Stop the clock at the current position and return it."""
        if self._frozen is None:
            self._frozen = self.sample()
        return self._frozen

    def resume(self) -> None:
        """Restart a frozen clock from the frozen position."""
        if self._frozen is None:
            return
        position = self._frozen
        self._frozen = None
        self.origin = self._now() - position

    def start(self, duration: float) -> None:
        """Start a new track from position 0."""
        self.duration = duration
        self._frozen = None
        self.origin = self._now()

    def clear(self) -> None:
        """Drop all timing state (no active track)."""
        self.duration = 0.0
        self._frozen = None
        self.origin = self._now()
