"""
Play queue: the tracks of one directory plus the order they play in.
"""
import os
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

from logging_config import get_logger
from src.browser import list_tracks
from src.config import RepeatMode

logger = get_logger('queue')

FORWARD = 1
BACKWARD = -1


def new_rng() -> random.Random:
    """Random source for shuffling, seeded from the OS entropy pool."""
    return random.Random(os.urandom(32))


@dataclass(frozen=True)
class Track:
    """A playable file."""
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


class Step(NamedTuple):
    """Outcome of an advance decision.

    ``index`` is the order position to play next, or None to stop (or do
    nothing). ``reshuffle`` asks for the order to be re-permuted first.
    """
    index: Optional[int]
    reshuffle: bool = False


@dataclass
class PlayQueue:
    """Tracks of a directory, a permutation over them, and a cursor.

    ``order`` is always a permutation of ``range(len(items))`` and
    ``cursor`` is None or a valid index into ``order``.
    """

    items: List[Track] = field(default_factory=list)
    order: List[int] = field(default_factory=list)
    cursor: Optional[int] = None
    rng: random.Random = field(default_factory=new_rng, repr=False, compare=False)

    @classmethod
    def build(cls, from_track: Union[str, Path], shuffle: bool = False,
              rng: Optional[random.Random] = None) -> "PlayQueue":
        """Build the queue for the directory containing *from_track*.

        An unreadable or missing directory yields an empty queue.
        """
        from_path = Path(from_track).absolute()
        queue = cls(rng=rng or new_rng())
        parent = from_path.parent
        if not parent.is_dir():
            logger.warning(f"Queue directory missing: {parent}")
            return queue

        queue.items = [Track(p.absolute()) for p in list_tracks(parent)]
        queue.order = list(range(len(queue.items)))
        if shuffle and len(queue.order) > 1:
            queue.rng.shuffle(queue.order)
        queue.cursor = queue.find(from_path)
        logger.debug(f"Built queue of {len(queue.items)} tracks from {parent}, cursor={queue.cursor}")
        return queue

    def __len__(self) -> int:
        return len(self.order)

    @property
    def current(self) -> Optional[Track]:
        """Track under the cursor."""
        if self.cursor is None:
            return None
        return self.track_at(self.cursor)

    def track_at(self, index: int) -> Optional[Track]:
        """Track at a position in play order."""
        if 0 <= index < len(self.order):
            return self.items[self.order[index]]
        return None

    def find(self, path: Union[str, Path]) -> Optional[int]:
        """Position in play order of the track at *path*."""
        path = Path(path).absolute()
        for item_index, track in enumerate(self.items):
            if track.path == path:
                return self.order.index(item_index)
        return None

    def position_of(self, path: Union[str, Path]) -> Optional[int]:
        """1-based position of *path* in play order, for display."""
        index = self.find(path)
        return None if index is None else index + 1

    def reshuffle(self) -> None:
        """Re-permute the play order uniformly at random."""
        self.rng.shuffle(self.order)
        logger.debug("Queue reshuffled")

    def rebuild(self, shuffle: bool) -> "PlayQueue":
        """Rebuild from the directory of the current track.

        The current track keeps the cursor if it is still present.
        """
        current = self.current
        if current is None:
            return self
        return PlayQueue.build(current.path, shuffle=shuffle, rng=self.rng)

    def advance(self, direction: int, repeat_mode: RepeatMode,
                reshuffle_on_end: bool = False) -> Step:
        """Decide which order position plays next.

        Does not modify the queue.
        """
        n = len(self.order)
        if self.cursor is None or n == 0:
            return Step(None)

        if repeat_mode == RepeatMode.ONE:
            return Step(self.cursor)

        target = self.cursor + direction
        if 0 <= target < n:
            return Step(target)

        if direction == FORWARD:
            if reshuffle_on_end:
                return Step(0, reshuffle=True)
            if repeat_mode == RepeatMode.DIRECTORY:
                return Step(0)
            return Step(None)

        if repeat_mode == RepeatMode.DIRECTORY:
            return Step(n - 1)
        return Step(None)
