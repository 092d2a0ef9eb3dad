"""Session settings and value types shared across the capture engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import SIZING_CURRENT

DEFAULT_MODEL = "gpt-4.1-nano"


class Direction(str, Enum):
    LTR = "ltr"
    RTL = "rtl"


class AppMode(str, Enum):
    CAPTURE_ONLY = "capture_only"
    CAPTURE_AND_TRANSCRIBE = "capture_and_transcribe"


class OutputStyle(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"


class OutputFormat(str, Enum):
    PDF = "pdf"
    ZIP = "zip"


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    CAPTURING = "capturing"
    STOPPING = "stopping"


class CaptureSettings(BaseModel):
    """Immutable for the lifetime of one capture session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sizing: str = SIZING_CURRENT
    direction: Direction = Direction.LTR
    output_format: OutputFormat = Field(OutputFormat.PDF, alias="outputFormat")
    app_mode: AppMode = Field(AppMode.CAPTURE_ONLY, alias="appMode")
    model: str = DEFAULT_MODEL
    output_style: OutputStyle = Field(OutputStyle.PLAIN, alias="outputStyle")
    api_key: str | None = Field(None, alias="apiKey", repr=False)
    cost_limit: float = Field(0.0, alias="costLimit", ge=0)
    prompt: str | None = None

    @field_validator("prompt")
    @classmethod
    def blank_prompt_is_default(cls, value: str | None) -> str | None:
        return value if value and value.strip() else None

    @property
    def transcribes(self) -> bool:
        return self.app_mode is AppMode.CAPTURE_AND_TRANSCRIBE

    def to_record(self) -> dict[str, Any]:
        """Wire/disk form with camelCase keys. The credential never reaches disk."""
        return self.model_dump(mode="json", by_alias=True, exclude={"api_key"})


@dataclass(frozen=True)
class BookMetadata:
    """Best-effort; total_pages is 0 when unknown."""

    title: str = ""
    total_pages: int = 0


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None
