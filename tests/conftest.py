"""Shared fakes for driving the capture engine without a browser or network."""

import asyncio

import pytest

from pageturner.config import PREVIEW_JPEG_QUALITY
from pageturner.costs import CostLedger
from pageturner.errors import AgentUnavailableError
from pageturner.models import TranscriptionResult
from pageturner.store import PageStore
from pageturner.targets import CaptureTarget


class FakeClock:
    """Virtual time: sleeping advances now() instantly and yields to the loop."""

    def __init__(self, start=1_700_000_000.0):
        self.current = start
        self.sleeps = []

    def now(self):
        return self.current

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.current += max(seconds, 0)
        await asyncio.sleep(0)


class FakeViewport:
    """
    Low-quality screenshots come from `previews` (default: always identical,
    so the page is stable at once). Full-quality screenshots come from `frames`
    in order, repeating the last one once exhausted; with frames=None every
    capture is a new distinct image.
    """

    def __init__(self, frames=None, previews=None, unstable=False, fail_after=None):
        self.frames = list(frames) if frames is not None else None
        self.previews = list(previews) if previews is not None else [b"preview"]
        self.unstable = unstable
        self.fail_after = fail_after
        self.captures = 0
        self.preview_calls = 0
        self.resized = []

    async def resize(self, sizing):
        self.resized.append(sizing)

    async def screenshot(self, quality):
        if quality == PREVIEW_JPEG_QUALITY:
            self.preview_calls += 1
            if self.unstable:
                return f"preview-{self.preview_calls}".encode()
            index = min(self.preview_calls - 1, len(self.previews) - 1)
            return self.previews[index]

        if self.fail_after is not None and self.captures >= self.fail_after:
            raise RuntimeError("tab was closed")
        self.captures += 1
        if self.frames is None:
            return f"frame-{self.captures}".encode()
        return self.frames[min(self.captures - 1, len(self.frames) - 1)]


class FakeAgent:
    """
    Records every command sent; can drop the first N sends or certain actions.
    `metadata` is one GET_METADATA reply or a list answered in order, the last
    one repeating.
    """

    def __init__(self, fail_times=0, fail_actions=(), metadata=None):
        self.fail_times = fail_times
        self.fail_actions = set(fail_actions)
        if metadata is None:
            metadata = {
                "title": "Amazon.com: Test Book - Kindle Cloud Reader",
                "footers": ["Page 1 of 4"],
            }
        self.metadata_replies = list(metadata) if isinstance(metadata, list) else [metadata]
        self.sent = []
        self.installs = 0

    async def install(self):
        self.installs += 1

    async def send(self, command):
        message = command.to_message()
        self.sent.append(message)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise AgentUnavailableError("agent missing")
        if message["action"] in self.fail_actions:
            raise AgentUnavailableError("agent missing")
        if message["action"] == "GET_METADATA":
            if len(self.metadata_replies) > 1:
                return dict(self.metadata_replies.pop(0))
            return dict(self.metadata_replies[0])
        return {"status": "done"}

    def actions(self, name):
        return [m for m in self.sent if m["action"] == name]


class FakeTargets:
    def __init__(self, viewport, agent):
        self.target = CaptureTarget(viewport=viewport, agent=agent)
        self.resolved = []

    def resolve(self, viewport_id, tab_id):
        self.resolved.append((viewport_id, tab_id))
        return self.target


class RecordingHandoff:
    def __init__(self, fail=False):
        self.fail = fail
        self.reasons = []
        self.errors = []

    async def assemble(self, reason):
        self.reasons.append(reason)
        if self.fail:
            raise RuntimeError("assembler page did not open")

    async def notify_error(self, message):
        self.errors.append(message)


class FakeTranscriber:
    """Returns queued results (or raises queued exceptions) in order."""

    def __init__(self, results=None, credential_error=None):
        self.results = list(results or [])
        self.credential_error = credential_error
        self.calls = []
        self.credential_checks = []

    async def transcribe(self, image, *, api_key, model, prompt):
        self.calls.append({"image": image, "api_key": api_key, "model": model, "prompt": prompt})
        outcome = self.results.pop(0) if self.results else TranscriptionResult(text="text")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def check_credential(self, *, api_key, model):
        self.credential_checks.append((api_key, model))
        if self.credential_error is not None:
            raise self.credential_error


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return PageStore(tmp_path / "book")


@pytest.fixture
def ledger(tmp_path):
    return CostLedger(tmp_path / "ledger" / "ledger.json")
