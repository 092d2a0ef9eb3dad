"""
Capture session controller.

Owns the single capture session and drives it through
Idle -> Starting -> Capturing -> Stopping -> Idle. The capture loop runs as one
asyncio task per session; every wait inside it is a clock sleep, so stop()
only has to flip the session state and the loop notices at its next check.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

from .clock import Clock, SystemClock
from .config import CAPTURE_JPEG_QUALITY, DEFAULT_TIMINGS, STALE_AFTER_SECONDS, Timings
from .end_of_book import EndOfBookDetector, Verdict
from .errors import CaptureError, SessionActiveError
from .models import BookMetadata, CaptureSettings, SessionState
from .navigation import NavigationBridge
from .stability import StabilityDetector
from .store import PageStore
from .targets import CaptureTarget, Handoff, TargetRegistry

logger = logging.getLogger(__name__)

REASON_STOPPED = "stopped"
REASON_END_OF_BOOK = "end_of_book"


@dataclass
class CaptureSession:
    viewport_id: str | None
    tab_id: str | None
    settings: CaptureSettings
    detector: EndOfBookDetector
    state: SessionState = SessionState.STARTING
    page_count: int = 0
    metadata: BookMetadata = field(default_factory=BookMetadata)
    task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self.state in (SessionState.STARTING, SessionState.CAPTURING)


class SessionStatus(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    active: bool
    session_page_count: int = Field(alias="sessionPageCount")
    total_pages: int = Field(alias="totalPages")
    last_status_message: str = Field(alias="lastStatusMessage")
    state: SessionState = SessionState.IDLE


class CaptureController:
    def __init__(
        self,
        store: PageStore,
        targets: TargetRegistry,
        handoff: Handoff,
        clock: Clock | None = None,
        timings: Timings = DEFAULT_TIMINGS,
        stale_after: float = STALE_AFTER_SECONDS,
    ) -> None:
        self.store = store
        self.targets = targets
        self.handoff = handoff
        self.clock = clock or SystemClock()
        self.timings = timings
        self.stale_after = stale_after
        self.stability = StabilityDetector(self.clock, timings)
        self.last_status = "Ready."
        self._session: CaptureSession | None = None

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    def _log(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, message)
        self.last_status = message

    # -- commands -------------------------------------------------------

    async def start(self, viewport_id: str, tab_id: str, settings: CaptureSettings) -> None:
        """Accept a new session and run it in the background."""
        current = self._session
        if current is not None and current.state is not SessionState.IDLE:
            raise SessionActiveError(f"A capture session is already {current.state.value}")

        self.store.clear()
        self.store.save_settings(settings)

        session = CaptureSession(
            viewport_id=viewport_id,
            tab_id=tab_id,
            settings=settings,
            detector=EndOfBookDetector(self.timings.duplicate_max_retries),
        )
        self._session = session
        self._log(f"Started. Viewport {viewport_id}, tab {tab_id}, direction {settings.direction.value}")
        session.task = asyncio.create_task(self._run(session))

    async def stop(self) -> None:
        """Stop the active session, if any, and hand the pages off. Idempotent."""
        session = self._session
        if session is None or not session.active:
            return
        self._log("Stopping...")
        await self._shutdown(session, REASON_STOPPED, f"Stopped after {session.page_count} pages.")

    def status(self) -> SessionStatus:
        session = self._session
        if session is not None and session.active:
            return SessionStatus(
                active=True,
                session_page_count=session.page_count,
                total_pages=session.metadata.total_pages,
                last_status_message=self.last_status,
                state=session.state,
            )

        # In-memory state may be gone after a restart; the store is authoritative.
        in_memory = session.page_count if session is not None else 0
        count = max(in_memory, self.store.page_count())
        last_activity = self.store.last_activity()
        if count and last_activity is not None and self.clock.now() - last_activity > self.stale_after:
            count = 0

        if session is not None and session.metadata.total_pages:
            total = session.metadata.total_pages
        else:
            total = self.store.load_metadata().total_pages

        return SessionStatus(
            active=False,
            session_page_count=count,
            total_pages=total,
            last_status_message=self.last_status,
            state=session.state if session is not None else SessionState.IDLE,
        )

    async def wait_closed(self) -> None:
        """Wait for the current session's capture task to exit."""
        session = self._session
        if session is not None and session.task is not None:
            await session.task

    # -- session sequence -----------------------------------------------

    async def _run(self, session: CaptureSession) -> None:
        try:
            target = self.targets.resolve(session.viewport_id, session.tab_id)
            bridge = NavigationBridge(target.agent, self.clock, self.timings)
            await self._prepare(session, target, bridge)
            if not session.active:
                return

            session.state = SessionState.CAPTURING
            while session.active:
                if not await self._capture_next(session, target, bridge):
                    break
                await self.clock.sleep(self.timings.loop_delay)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(session, exc)

    async def _prepare(self, session: CaptureSession, target: CaptureTarget, bridge: NavigationBridge) -> None:
        if not session.active:
            return
        sizing = session.settings.sizing
        self._log(f"Resizing viewport for {sizing}")
        try:
            await target.viewport.resize(sizing)
        except Exception as exc:
            self._log(f"Warning: resize failed: {exc}", logging.WARNING)
        await self.clock.sleep(self.timings.resize_settle)
        if not session.active:
            return

        self._log("Moving to start page...")
        await bridge.go_to_start()
        if not session.active:
            return

        self._log("Scanning book metadata...")
        try:
            session.metadata = await bridge.get_metadata()
        except Exception as exc:
            logger.warning("Metadata scan failed: %s", exc)
            session.metadata = BookMetadata()
        if not session.active:
            return
        try:
            self.store.save_metadata(session.metadata)
        except OSError as exc:
            logger.warning("Could not persist book metadata: %s", exc)

        if session.metadata.total_pages:
            self._log(f"Book: {session.metadata.title} ({session.metadata.total_pages} pages)")
        else:
            self._log(f"Book: {session.metadata.title or 'unknown'} (page count unknown)")

    async def _screenshot(self, target: CaptureTarget) -> bytes:
        try:
            return await target.viewport.screenshot(CAPTURE_JPEG_QUALITY)
        except Exception as exc:
            raise CaptureError(f"viewport capture failed: {exc}") from exc

    async def _capture_next(self, session: CaptureSession, target: CaptureTarget, bridge: NavigationBridge) -> bool:
        """Capture one page; False when the loop should end."""
        direction = session.settings.direction
        index = session.page_count

        await self.stability.wait(target.viewport)

        while True:
            if not session.active:
                return False
            self._log(f"Capturing (Img: {index})...")
            frame = await self._screenshot(target)
            if not session.active:
                return False
            previous = self.store.get_page(index - 1) if index > 0 else None
            verdict = session.detector.check(frame, previous)
            if verdict is Verdict.NEW_PAGE:
                break
            if verdict is Verdict.END_OF_BOOK:
                await self._shutdown(
                    session,
                    REASON_END_OF_BOOK,
                    f"End of book reached after {session.page_count} pages.",
                )
                return False

            self._log(
                f"Duplicate image detected; retrying page turn "
                f"({session.detector.retries}/{session.detector.max_retries})"
            )
            await bridge.turn_page(direction)
            await self.clock.sleep(self.timings.duplicate_retry_settle)

        if not session.active:
            return False
        try:
            self.store.record_page(index, frame, self.clock.now())
        except OSError as exc:
            raise CaptureError(f"could not store page {index}: {exc}") from exc
        session.page_count = index + 1

        total = session.metadata.total_pages
        self._log(f"Saved page {session.page_count}" + (f" of {total}" if total else ""))

        await bridge.turn_page(direction)
        return session.active

    async def _shutdown(self, session: CaptureSession, reason: str, final_message: str) -> None:
        session.state = SessionState.STOPPING
        session.viewport_id = None
        session.tab_id = None
        # Let an in-flight iteration observe the state change before hand-off.
        await self.clock.sleep(self.timings.stop_grace)

        self._log("Opening document assembly...")
        try:
            await self.handoff.assemble(reason)
        except Exception as exc:
            logger.error("Hand-off failed: %s", exc)
            session.state = SessionState.IDLE
            self._log(f"{final_message} Warning: hand-off failed: {exc}", logging.WARNING)
            return

        session.state = SessionState.IDLE
        self._log(final_message)

    async def _fail(self, session: CaptureSession, exc: Exception) -> None:
        if not session.active:
            logger.warning("Error after session stopped: %s", exc)
            return

        session.state = SessionState.IDLE
        session.viewport_id = None
        session.tab_id = None
        message = f"Error: {exc}"
        self._log(message, logging.ERROR)
        try:
            await self.handoff.notify_error(message)
        except Exception:
            logger.warning("Error broadcast failed", exc_info=True)
