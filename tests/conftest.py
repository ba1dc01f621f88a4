import random
import sys
import tempfile
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from logging_config import AudioBackendError
from src.audio import AudioBackend, LoadedTrack
from src.clock import PlaybackClock
from src.transport import Transport


class FakeClock:
    """Manually advanced monotonic time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend(AudioBackend):
    """In-memory audio backend recording every call."""

    def __init__(self, duration: float = 180.0):
        self.default_duration = duration
        self.durations = {}
        self.unplayable = set()
        self.seek_fails = False
        self.calls = []
        self.loaded = None
        self.playing = False
        self.paused = False
        self.position = 0.0
        self.volume = None
        self.callback = None

    def open(self):
        self.calls.append(("open",))

    def close(self):
        self.calls.append(("close",))

    def load(self, path):
        self.calls.append(("load", Path(path).name))
        if Path(path).name in self.unplayable:
            raise AudioBackendError(f"cannot decode {path}")
        self.loaded = LoadedTrack(path, self.durations.get(Path(path).name, self.default_duration))
        return self.loaded

    def play(self, handle):
        self.calls.append(("play", handle.path.name))
        self.playing = True
        self.paused = False
        self.position = 0.0

    def pause(self):
        self.calls.append(("pause",))
        self.paused = True

    def resume(self):
        self.calls.append(("resume",))
        self.paused = False

    def halt(self):
        self.calls.append(("halt",))
        self.playing = False
        self.paused = False

    def free(self, handle):
        self.calls.append(("free", handle.path.name))
        self.loaded = None

    def get_position(self):
        return self.position

    def set_position(self, seconds):
        if self.seek_fails:
            raise AudioBackendError("seek unsupported")
        self.calls.append(("seek", seconds))
        self.position = seconds

    def set_volume(self, volume):
        self.volume = volume

    def is_playing(self):
        return self.playing and not self.paused

    def on_finished(self, callback):
        self.callback = callback

    def finish(self):
        """Simulate the decoder reaching the end of the stream."""
        self.playing = False
        if self.callback is not None:
            self.callback()


@pytest.fixture
def temp_music_dir():
    """Create a temporary music directory with test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        music_dir = Path(tmpdir) / "music"
        music_dir.mkdir()

        (music_dir / "album").mkdir()

        (music_dir / "a.mp3").touch()
        (music_dir / "b.mp3").touch()
        (music_dir / "c.mp3").touch()
        (music_dir / "notes.txt").touch()
        (music_dir / "cover.jpg").touch()

        (music_dir / "album" / "nested.flac").touch()

        yield music_dir


@pytest.fixture
def five_track_dir():
    """Directory with five tracks for shuffle tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        music_dir = Path(tmpdir)
        for name in ("one.mp3", "two.mp3", "three.mp3", "four.mp3", "five.mp3"):
            (music_dir / name).touch()
        yield music_dir


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def transport(fake_backend, fake_clock):
    """Transport over the fake backend and a manual clock."""
    return Transport(fake_backend, clock=PlaybackClock(now=fake_clock))
