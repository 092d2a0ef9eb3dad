"""
Navigation bridge: asks the in-page reader agent to move through the book.

The agent can vanish from the page at any time (a reader navigation wipes it),
so every call is retried exactly once after re-installing the agent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from .clock import Clock
from .config import DEFAULT_TIMINGS, Timings
from .errors import AgentUnavailableError, NavigationError
from .metadata import metadata_from_reply
from .models import BookMetadata, Direction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoToStart:
    def to_message(self) -> dict[str, Any]:
        return {"action": "GO_TO_START"}


@dataclass(frozen=True)
class NextPage:
    direction: Direction

    def to_message(self) -> dict[str, Any]:
        return {"action": "NEXT_PAGE", "direction": self.direction.value}


@dataclass(frozen=True)
class GetMetadata:
    def to_message(self) -> dict[str, Any]:
        return {"action": "GET_METADATA"}


AgentCommand = GoToStart | NextPage | GetMetadata


class ReaderAgent(Protocol):
    async def install(self) -> None: ...

    async def send(self, command: AgentCommand) -> dict[str, Any]: ...


class NavigationBridge:
    def __init__(self, agent: ReaderAgent, clock: Clock, timings: Timings = DEFAULT_TIMINGS) -> None:
        self.agent = agent
        self.clock = clock
        self.timings = timings

    async def _call(self, command: AgentCommand) -> dict[str, Any]:
        action = command.to_message()["action"]
        try:
            return await self.agent.send(command)
        except AgentUnavailableError as exc:
            logger.info("Agent did not answer %s (%s); re-installing", action, exc)

        try:
            await self.agent.install()
            await self.clock.sleep(self.timings.reinstall_wait)
            return await self.agent.send(command)
        except AgentUnavailableError as exc:
            raise NavigationError(f"{action} failed after re-installing agent: {exc}") from exc

    async def go_to_start(self) -> None:
        await self._call(GoToStart())
        # No stability signal is awaited here; let the jump animation finish.
        await self.clock.sleep(self.timings.start_settle)

    async def turn_page(self, direction: Direction) -> None:
        await self._call(NextPage(direction))

    async def get_metadata(self) -> BookMetadata:
        """Title and page total, re-scanned up to `metadata_attempts` times while the total is 0."""
        metadata = BookMetadata()
        for attempt in range(1, self.timings.metadata_attempts + 1):
            metadata = metadata_from_reply(await self._call(GetMetadata()))
            if metadata.total_pages:
                return metadata
            if attempt < self.timings.metadata_attempts:
                await self.clock.sleep(self.timings.metadata_retry_wait)
        logger.info("Page total still unknown after %d metadata scans", self.timings.metadata_attempts)
        return metadata
