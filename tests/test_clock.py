import time
import pytest

from src.clock import PlaybackClock


class TestPlaybackClock:
    """Tests for origin-based elapsed time."""

    def test_sample_follows_time_source(self, fake_clock):
        """Test that position advances with the time source."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(200)

        fake_clock.advance(12.5)

        assert clock.sample() == pytest.approx(12.5)

    def test_repeated_samples_do_not_drift(self, fake_clock):
        """Test that many reads do not accumulate error."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(10000)

        for _ in range(1000):
            fake_clock.advance(0.03)
            clock.sample()

        assert clock.sample() == pytest.approx(30.0)

    def test_sample_clamped_to_duration(self, fake_clock):
        """Test that position never exceeds the duration."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(60)

        fake_clock.advance(90)

        assert clock.sample() == 60

    def test_reset_sets_position(self, fake_clock):
        """Test that reset re-anchors the origin."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(300)
        fake_clock.advance(5)

        clock.reset(120)

        assert clock.sample() == pytest.approx(120)
        fake_clock.advance(2)
        assert clock.sample() == pytest.approx(122)

    def test_freeze_holds_position(self, fake_clock):
        """Test that a frozen clock does not advance."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(300)
        fake_clock.advance(7)

        assert clock.freeze() == pytest.approx(7)
        fake_clock.advance(50)

        assert clock.sample() == pytest.approx(7)

    def test_resume_continues_from_frozen(self, fake_clock):
        """Test that resuming continues from the frozen position."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(300)
        fake_clock.advance(7)
        clock.freeze()
        fake_clock.advance(50)

        clock.resume()
        fake_clock.advance(3)

        assert clock.sample() == pytest.approx(10)

    def test_reset_while_frozen(self, fake_clock):
        """Test that seeking while paused updates the frozen value."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(300)
        clock.freeze()

        clock.reset(42)
        fake_clock.advance(10)

        assert clock.frozen
        assert clock.sample() == pytest.approx(42)

    def test_unknown_duration_not_clamped_above(self, fake_clock):
        """Test that a zero duration only clamps at zero."""
        clock = PlaybackClock(now=fake_clock)
        clock.start(0)

        fake_clock.advance(500)

        assert clock.sample() == pytest.approx(500)

    def test_real_clock_is_non_decreasing(self):
        """Test monotonic reads against the real clock."""
        clock = PlaybackClock()
        clock.start(3600)
        start = time.monotonic()

        samples = [clock.sample() for _ in range(200)]
        elapsed = time.monotonic() - start

        assert samples == sorted(samples)
        assert samples[-1] <= elapsed + 0.01
