"""Collaborator contracts the controller drives: the viewport and the reader tab."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .navigation import ReaderAgent


class Viewport(Protocol):
    async def resize(self, sizing: str) -> None: ...

    async def screenshot(self, quality: int) -> bytes: ...


@dataclass
class CaptureTarget:
    viewport: Viewport
    agent: ReaderAgent


class TargetRegistry(Protocol):
    def resolve(self, viewport_id: str, tab_id: str) -> CaptureTarget: ...


class Handoff(Protocol):
    """Receives the finished store for document assembly, and error broadcasts."""

    async def assemble(self, reason: str) -> None: ...

    async def notify_error(self, message: str) -> None: ...
