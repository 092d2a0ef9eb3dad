"""
Transcribe captured pages with an OpenAI vision model.

Requests go out strictly one at a time with a minimum spacing between them.
A failed page never aborts the batch: its transcript becomes a tagged error
string instead. Token usage, when the response reports it, is priced and added
to the cost ledger.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from .clock import Clock, SystemClock
from .config import DEFAULT_TIMINGS, DEFAULT_USD_RATE, Timings
from .costs import CostLedger, compute_cost
from .errors import PreflightError
from .models import CaptureSettings, OutputStyle, TranscriptionResult
from .store import PageStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 4000

DEFAULT_PROMPT = """Transcribe all text in this image.
Output ONLY the transcribed text.
Rules:
1. Preserve the original layout (paragraphs, line breaks) as much as possible.
2. EXCLUDE all headers and footers (e.g. "Page 10 of 200", "Location 300", book titles repeated at the top or bottom).
3. EXCLUDE reader interface text such as "Learning reading speed" or "X% left".
4. Do not converse. Do not say "Here is the transcription". Output only the text content."""

MARKDOWN_INSTRUCTION = """Format the output as Markdown:
- Use # and ## headings for chapter and section titles.
- Separate paragraphs with a blank line.
- Render lists, emphasis and tables with Markdown syntax."""


def build_prompt(custom_prompt: str | None, output_style: OutputStyle) -> str:
    prompt = custom_prompt.strip() if custom_prompt and custom_prompt.strip() else DEFAULT_PROMPT
    if output_style is OutputStyle.MARKDOWN:
        prompt = f"{prompt}\n\n{MARKDOWN_INSTRUCTION}"
    return prompt


def failure_marker(message: str) -> str:
    return f"[Transcription Error: {message}]"


def encode_image_data_url(raw: bytes) -> str:
    b64 = base64.b64encode(raw).decode("ascii")
    return f"data:image/jpeg;base64,{b64}"


def to_plain_object(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, list):
        return [to_plain_object(item) for item in value]
    if isinstance(value, dict):
        return {k: to_plain_object(v) for k, v in value.items()}

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return model_dump()
    return str(value)


def extract_response_text(response: Any) -> str:
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text

    payload = to_plain_object(response)
    if isinstance(payload, dict):
        candidate = payload.get("output_text")
        if isinstance(candidate, str) and candidate.strip():
            return candidate

    def visit(node: Any) -> str | None:
        if isinstance(node, dict):
            text = node.get("text")
            if node.get("type") == "output_text" and isinstance(text, str) and text.strip():
                return text
            for value in node.values():
                found = visit(value)
                if found:
                    return found
        elif isinstance(node, list):
            for item in node:
                found = visit(item)
                if found:
                    return found
        return None

    found_text = visit(payload)
    if found_text:
        return found_text
    raise ValueError("Could not find text output in model response")


def extract_usage(response: Any) -> tuple[int | None, int | None]:
    usage = getattr(response, "usage", None)
    if usage is None and isinstance(response, dict):
        usage = response.get("usage")
    if usage is None:
        return None, None
    if not isinstance(usage, dict):
        usage = to_plain_object(usage)
    if not isinstance(usage, dict):
        return None, None
    input_tokens = usage.get("input_tokens")
    output_tokens = usage.get("output_tokens")
    return (
        input_tokens if isinstance(input_tokens, int) else None,
        output_tokens if isinstance(output_tokens, int) else None,
    )


def error_message_from_body(body: Any) -> str | None:
    """Pull a human-readable message out of an API error body."""
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    if not isinstance(body, dict):
        return None
    nested = body.get("error")
    if isinstance(nested, dict):
        return error_message_from_body(nested)
    if isinstance(nested, str) and nested.strip():
        return nested.strip()
    message = body.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return None


def describe_api_error(exc: BaseException) -> str:
    if isinstance(exc, (TimeoutError, openai.APITimeoutError)):
        return "request timed out"
    if isinstance(exc, openai.APIStatusError):
        message = error_message_from_body(exc.body)
        if not message:
            try:
                message = exc.response.text.strip()
            except Exception:
                message = ""
        return f"HTTP {exc.status_code}: {message or exc.message}"
    if isinstance(exc, openai.APIConnectionError):
        return f"connection error: {exc}"
    return str(exc) or exc.__class__.__name__


def classify_credential_error(exc: BaseException) -> str:
    if isinstance(exc, openai.APIStatusError):
        detail = error_message_from_body(exc.body) or exc.message
        if exc.status_code == 401 or (exc.status_code == 400 and "api key" in detail.lower()):
            return "API key is invalid"
        if exc.status_code == 403:
            return "API key is not permitted to use this model"
        if exc.status_code == 429:
            return "rate limit reached; a paid plan may be required"
        return f"HTTP {exc.status_code}: {detail}"
    return describe_api_error(exc)


class Transcriber(Protocol):
    async def transcribe(
        self, image: bytes, *, api_key: str, model: str, prompt: str
    ) -> TranscriptionResult: ...

    async def check_credential(self, *, api_key: str, model: str) -> None: ...


class OpenAIResponsesTranscriber:
    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMINGS.transcribe_timeout,
        base_url: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url
        self.max_output_tokens = max_output_tokens
        self._clients: dict[str, AsyncOpenAI] = {}

    def _client(self, api_key: str) -> AsyncOpenAI:
        client = self._clients.get(api_key)
        if client is None:
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
            self._clients[api_key] = client
        return client

    async def transcribe(
        self, image: bytes, *, api_key: str, model: str, prompt: str
    ) -> TranscriptionResult:
        response = await self._client(api_key).responses.create(
            model=model,
            input=[
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": prompt},
                        {
                            "type": "input_image",
                            "image_url": encode_image_data_url(image),
                            "detail": "high",
                        },
                    ],
                }
            ],
            max_output_tokens=self.max_output_tokens,
        )
        input_tokens, output_tokens = extract_usage(response)
        return TranscriptionResult(
            text=extract_response_text(response).strip(),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def check_credential(self, *, api_key: str, model: str) -> None:
        await self._client(api_key).responses.create(
            model=model,
            input="test",
            max_output_tokens=16,
        )


class TranscriptionPipeline:
    def __init__(
        self,
        store: PageStore,
        ledger: CostLedger,
        transcriber: Transcriber,
        clock: Clock | None = None,
        timings: Timings = DEFAULT_TIMINGS,
        exchange_rate: float = DEFAULT_USD_RATE,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.transcriber = transcriber
        self.clock = clock or SystemClock()
        self.timings = timings
        self.exchange_rate = exchange_rate
        self._lock = asyncio.Lock()
        self._last_request_at: float | None = None

    async def _respect_rate_limit(self) -> None:
        if self._last_request_at is not None:
            wait = self.timings.transcribe_interval - (self.clock.now() - self._last_request_at)
            if wait > 0:
                await self.clock.sleep(wait)
        self._last_request_at = self.clock.now()

    async def transcribe_page(
        self,
        index: int,
        api_key: str,
        model: str,
        prompt: str | None = None,
        output_style: OutputStyle = OutputStyle.PLAIN,
    ) -> str:
        """Transcript text for one stored page, or a tagged failure string."""
        image = self.store.get_page(index)
        if image is None:
            return failure_marker(f"page {index} not found")
        if not api_key:
            return failure_marker("no API key configured")

        async with self._lock:
            await self._respect_rate_limit()
            try:
                result = await asyncio.wait_for(
                    self.transcriber.transcribe(
                        image,
                        api_key=api_key,
                        model=model,
                        prompt=build_prompt(prompt, output_style),
                    ),
                    timeout=self.timings.transcribe_timeout,
                )
            except Exception as exc:
                message = describe_api_error(exc)
                logger.warning("Transcription of page %d failed: %s", index, message)
                return failure_marker(message)

        self._account(model, result)
        return result.text

    def _account(self, model: str, result: TranscriptionResult) -> float | None:
        if result.input_tokens is None and result.output_tokens is None:
            return None
        cost = compute_cost(
            model,
            result.input_tokens or 0,
            result.output_tokens or 0,
            self.exchange_rate,
        )
        try:
            total = self.ledger.add(cost)
        except OSError as exc:
            logger.warning("Could not persist transcription cost: %s", exc)
            return cost
        logger.info("Transcription cost %.4f (cumulative %.4f)", cost, total)
        return cost

    async def run(
        self,
        api_key: str,
        settings: CaptureSettings,
        start_at: int = 0,
        max_pages: int = 0,
        on_page: Callable[[int, str], None] | None = None,
    ) -> dict[int, str]:
        """Transcribe stored pages in index order and persist each transcript."""
        count = self.store.page_count()
        end = count if max_pages <= 0 else min(count, start_at + max_pages)
        results: dict[int, str] = {}
        for index in range(max(start_at, 0), end):
            text = await self.transcribe_page(
                index,
                api_key,
                settings.model,
                settings.prompt,
                settings.output_style,
            )
            results[index] = text
            try:
                self.store.save_transcript(index, text)
            except OSError as exc:
                logger.warning("Could not persist transcript for page %d: %s", index, exc)
            if on_page is not None:
                on_page(index, text)
        return results


async def preflight(settings: CaptureSettings, ledger: CostLedger, transcriber: Transcriber) -> None:
    """Refuse a transcribing session with a bad key or an exhausted budget."""
    if not settings.transcribes:
        return
    if not settings.api_key:
        raise PreflightError("An API key is required for transcription mode")
    try:
        await transcriber.check_credential(api_key=settings.api_key, model=settings.model)
    except Exception as exc:
        raise PreflightError(f"API key check failed: {classify_credential_error(exc)}") from exc
    if ledger.exceeds(settings.cost_limit):
        raise PreflightError(
            f"Cost limit reached: cumulative {ledger.total():.2f} >= limit {settings.cost_limit:.2f}"
        )
