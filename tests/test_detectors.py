"""Tests for stability and end-of-book detection."""

import asyncio

from conftest import FakeClock, FakeViewport

from pageturner.config import Timings
from pageturner.end_of_book import EndOfBookDetector, Verdict
from pageturner.stability import StabilityDetector


class TestStabilityDetector:
    """Test the consecutive-identical-frames rule."""

    def test_stable_after_three_identical_frames(self):
        """Should stop sampling once three frames in a row match."""
        clock = FakeClock()
        viewport = FakeViewport()

        stable = asyncio.run(StabilityDetector(clock).wait(viewport))

        assert stable is True
        assert viewport.preview_calls == 3
        assert clock.sleeps == [0.5, 1.0, 1.0]

    def test_run_restarts_on_change(self):
        """Should count the run again from the first changed frame."""
        clock = FakeClock()
        viewport = FakeViewport(previews=[b"a", b"a", b"b", b"b", b"b"])

        stable = asyncio.run(StabilityDetector(clock).wait(viewport))

        assert stable is True
        assert viewport.preview_calls == 5

    def test_gives_up_after_max_attempts(self):
        """Should return False after the attempt cap without raising."""
        clock = FakeClock()
        viewport = FakeViewport(unstable=True)

        stable = asyncio.run(StabilityDetector(clock).wait(viewport))

        assert stable is False
        assert viewport.preview_calls == 50
        assert clock.sleeps == [0.5] + [1.0] * 49

    def test_custom_timings(self):
        """Should honour configured thresholds."""
        clock = FakeClock()
        timings = Timings(stability_required=2, stability_max_attempts=4, stability_initial_delay=0.0)
        viewport = FakeViewport(unstable=True)

        stable = asyncio.run(StabilityDetector(clock, timings).wait(viewport))

        assert stable is False
        assert viewport.preview_calls == 4


class TestEndOfBookDetector:
    """Test duplicate retries and the end-of-book verdict."""

    def test_first_page_is_always_new(self):
        """Should accept a frame when nothing is stored yet."""
        assert EndOfBookDetector().check(b"a", None) is Verdict.NEW_PAGE

    def test_two_retries_then_end(self):
        """Should retry twice on the same duplicate, then call it the end."""
        detector = EndOfBookDetector(max_retries=2)

        verdicts = [detector.check(b"same", b"same") for _ in range(3)]

        assert verdicts == [Verdict.RETRY_TURN, Verdict.RETRY_TURN, Verdict.END_OF_BOOK]

    def test_distinct_frame_resets_retries(self):
        """Should reset the retry counter after a new page."""
        detector = EndOfBookDetector(max_retries=2)
        detector.check(b"x", b"x")
        detector.check(b"x", b"x")

        assert detector.check(b"y", b"x") is Verdict.NEW_PAGE
        assert detector.retries == 0
        assert detector.check(b"y", b"y") is Verdict.RETRY_TURN

    def test_zero_retries(self):
        """Should end immediately when retries are disabled."""
        assert EndOfBookDetector(max_retries=0).check(b"x", b"x") is Verdict.END_OF_BOOK
