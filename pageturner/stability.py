"""Visual stability detection for page-turn transitions."""

from __future__ import annotations

import logging

from .clock import Clock
from .config import DEFAULT_TIMINGS, PREVIEW_JPEG_QUALITY, Timings
from .targets import Viewport

logger = logging.getLogger(__name__)


class StabilityDetector:
    """
    Poll cheap screenshots until a run of identical frames is seen.

    Returns True once `stability_required` consecutive frames match, or False
    after `stability_max_attempts` samples. A False result is not an error; the
    caller captures anyway.
    """

    def __init__(self, clock: Clock, timings: Timings = DEFAULT_TIMINGS) -> None:
        self.clock = clock
        self.timings = timings

    async def wait(self, viewport: Viewport) -> bool:
        await self.clock.sleep(self.timings.stability_initial_delay)

        previous: bytes | None = None
        run_length = 0
        for attempt in range(1, self.timings.stability_max_attempts + 1):
            frame = await viewport.screenshot(PREVIEW_JPEG_QUALITY)
            run_length = run_length + 1 if frame == previous else 1
            previous = frame
            if run_length >= self.timings.stability_required:
                logger.debug("Viewport stable after %d samples", attempt)
                return True
            if attempt < self.timings.stability_max_attempts:
                await self.clock.sleep(self.timings.stability_interval)

        logger.info(
            "Viewport not stable after %d samples; capturing anyway",
            self.timings.stability_max_attempts,
        )
        return False
