"""
Capture every page of a Kindle Cloud Reader book into a local page store,
then optionally transcribe the captured pages.

Usage:
    python scripts/capture.py [--asin B00FO74WXA] [--size current]
                              [--direction ltr] [--format pdf]
                              [--transcribe] [--model gpt-4.1-nano] [--markdown]
                              [--cost-limit 0] [--prompt-file prompt.txt]

On first run, you'll need to log into Amazon manually.
Your session is saved so subsequent runs won't require login.
Press Ctrl+C to stop capturing; pages captured so far are kept.
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from dotenv import load_dotenv
from playwright.async_api import async_playwright

from pageturner.browser import PlaywrightTargets, open_reader
from pageturner.commands import CommandHandler, Start, Stop
from pageturner.config import RuntimeConfig
from pageturner.controller import CaptureController
from pageturner.costs import CostLedger
from pageturner.errors import PreflightError
from pageturner.handoff import ManifestHandoff
from pageturner.models import (
    DEFAULT_MODEL,
    AppMode,
    CaptureSettings,
    Direction,
    OutputFormat,
    OutputStyle,
    SessionState,
)
from pageturner.store import PageStore
from pageturner.transcription import (
    OpenAIResponsesTranscriber,
    TranscriptionPipeline,
    preflight,
)


def build_settings(args, api_key):
    prompt = None
    if args.prompt_file:
        prompt = Path(args.prompt_file).read_text(encoding="utf-8")
    return CaptureSettings(
        sizing=args.size,
        direction=Direction(args.direction),
        output_format=OutputFormat(args.format),
        app_mode=AppMode.CAPTURE_AND_TRANSCRIBE if args.transcribe else AppMode.CAPTURE_ONLY,
        model=args.model,
        output_style=OutputStyle.MARKDOWN if args.markdown else OutputStyle.PLAIN,
        api_key=api_key,
        cost_limit=args.cost_limit,
        prompt=prompt,
    )


async def watch_session(controller, handler, stop_requested):
    """Print new status lines until the session has been handed off."""
    last_line = None
    stop_sent = False
    while True:
        status = controller.status()
        if status.last_status_message != last_line:
            last_line = status.last_status_message
            print(f"[{status.session_page_count} pages] {last_line}")

        if stop_requested.is_set() and not stop_sent:
            stop_sent = True
            await handler.handle(Stop())
            continue

        session = controller.session
        if session is not None and session.state is SessionState.IDLE:
            return
        await asyncio.sleep(1)


async def run(args):
    config = RuntimeConfig.from_env(args.asin)
    store = PageStore(config.data_dir)
    ledger = CostLedger(config.ledger_path)
    transcriber = OpenAIResponsesTranscriber(base_url=config.base_url)
    settings = build_settings(args, config.api_key)

    try:
        await preflight(settings, ledger, transcriber)
    except PreflightError as exc:
        print(f"Error: {exc}")
        return 1
    if settings.transcribes:
        print(f"Info: cumulative transcription cost so far: {ledger.total():.2f}")

    handoff = ManifestHandoff(store)
    pipeline = TranscriptionPipeline(store, ledger, transcriber, exchange_rate=config.usd_rate)
    url = f"{config.reader_url.rstrip('/')}/?asin={args.asin}"

    async with async_playwright() as p:
        context, page = await open_reader(p, config.profile_dir, url)
        targets = PlaywrightTargets()
        tab_id = targets.register(page)
        controller = CaptureController(store, targets, handoff)
        handler = CommandHandler(controller, pipeline)

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, stop_requested.set)
        except NotImplementedError:
            print("Warning: Ctrl+C handling unavailable on this platform.")

        response = await handler.handle(Start(viewport_id=tab_id, tab_id=tab_id, settings=settings))
        if not response.accepted:
            print(f"Error: capture not started: {response.reason}")
            await context.close()
            return 1

        print(f"Saving page captures to {store.root}")
        print("Capturing. Press Ctrl+C to stop.\n")
        await watch_session(controller, handler, stop_requested)
        await controller.wait_closed()
        await context.close()

    if handoff.errors:
        print(f"Error: capture ended with an error: {handoff.errors[-1]}")
        print(f"Info: {store.page_count()} captured pages were kept in {store.root}")
        return 1

    print(f"Captured {store.page_count()} pages ({handoff.reason}).")

    if settings.transcribes:
        count = store.page_count()

        def on_page(index, text):
            marker = "failed" if text.startswith("[Transcription Error") else "ok"
            print(f"Transcribed {index + 1}/{count}: {marker}")

        await pipeline.run(settings.api_key, settings, on_page=on_page)
        print(f"Info: cumulative transcription cost: {ledger.total():.2f}")

    return 0


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Kindle page capture")
    parser.add_argument("--asin", type=str, default="B00FO74WXA", help="Book ASIN to open")
    parser.add_argument(
        "--size",
        type=str,
        default="current",
        help="Viewport sizing: current, maximized, a preset name or WIDTHxHEIGHT (default: current)",
    )
    parser.add_argument(
        "--direction",
        choices=[d.value for d in Direction],
        default=Direction.LTR.value,
        help="Page-turn direction (default: ltr)",
    )
    parser.add_argument(
        "--format",
        choices=[f.value for f in OutputFormat],
        default=OutputFormat.PDF.value,
        help="Output container for the document assembler (default: pdf)",
    )
    parser.add_argument(
        "--transcribe", action="store_true", help="Transcribe pages after capture"
    )
    parser.add_argument(
        "--model", default=DEFAULT_MODEL, help=f"Transcription model (default: {DEFAULT_MODEL})"
    )
    parser.add_argument(
        "--markdown", action="store_true", help="Ask for Markdown-formatted transcripts"
    )
    parser.add_argument(
        "--cost-limit",
        type=float,
        default=0.0,
        help="Refuse to start when cumulative cost reaches this amount (0 = no limit)",
    )
    parser.add_argument(
        "--prompt-file", type=str, default=None, help="Custom transcription prompt file"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    if args.cost_limit < 0:
        parser.error("--cost-limit must be >= 0")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
