"""
Command schema for driving the controller.

Wire payloads are dicts keyed by ``action``; parse_command validates them into
one of the command models and CommandHandler answers each exactly once.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, ValidationError, field_validator

from .controller import CaptureController, SessionStatus
from .errors import CommandError, SessionActiveError
from .models import CaptureSettings
from .transcription import TranscriptionPipeline

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)


class Start(WireModel):
    action: Literal["START"] = "START"
    viewport_id: str = Field(alias="viewportId", min_length=1)
    tab_id: str = Field(alias="tabId", min_length=1)
    settings: CaptureSettings = Field(default_factory=CaptureSettings)

    @field_validator("viewport_id", "tab_id", mode="before")
    @classmethod
    def numeric_ids_as_text(cls, value: Any) -> Any:
        # Browser window and tab ids arrive as integers.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class Stop(WireModel):
    action: Literal["STOP"] = "STOP"


class Status(WireModel):
    action: Literal["STATUS"] = "STATUS"


class Transcribe(WireModel):
    action: Literal["TRANSCRIBE"] = "TRANSCRIBE"
    page_index: StrictInt = Field(alias="pageIndex", ge=0)
    credential: str = Field(min_length=1)
    model: str = Field(min_length=1)


Command = Annotated[Start | Stop | Status | Transcribe, Field(discriminator="action")]

COMMAND_ADAPTER = TypeAdapter(Command)


class StartResponse(WireModel):
    accepted: bool
    reason: str | None = None


class StopResponse(WireModel):
    stopped: bool = True


class TranscribeResponse(WireModel):
    text: str


Response = StartResponse | StopResponse | SessionStatus | TranscribeResponse


def parse_command(payload: Any) -> Command:
    if not isinstance(payload, dict):
        raise CommandError("command payload must be an object")
    try:
        return COMMAND_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
            for error in exc.errors()
        )
        raise CommandError(f"{payload.get('action')}: {problems}") from exc


class CommandHandler:
    def __init__(self, controller: CaptureController, pipeline: TranscriptionPipeline) -> None:
        self.controller = controller
        self.pipeline = pipeline

    async def handle(self, command: Command) -> Response:
        if isinstance(command, Start):
            try:
                await self.controller.start(command.viewport_id, command.tab_id, command.settings)
            except SessionActiveError as exc:
                logger.info("Rejected START: %s", exc)
                return StartResponse(accepted=False, reason=str(exc))
            return StartResponse(accepted=True)

        if isinstance(command, Stop):
            await self.controller.stop()
            return StopResponse()

        if isinstance(command, Status):
            return self.controller.status()

        if isinstance(command, Transcribe):
            settings = self.controller.store.load_settings() or CaptureSettings()
            text = await self.pipeline.transcribe_page(
                command.page_index,
                command.credential,
                command.model,
                prompt=settings.prompt,
                output_style=settings.output_style,
            )
            return TranscribeResponse(text=text)

        raise TypeError(f"unhandled command type: {type(command).__name__}")

    async def dispatch(self, payload: Any) -> dict[str, Any]:
        """Parse a wire payload and answer it with a wire dict."""
        response = await self.handle(parse_command(payload))
        return response.model_dump(mode="json", by_alias=True, exclude_none=True)
