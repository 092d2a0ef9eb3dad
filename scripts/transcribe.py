"""
Transcribe captured page images with an OpenAI vision model.

Pages are read from the page store in index order, sent one at a time with a
fixed spacing between requests, and each transcript is written back to the
store. A page that fails gets a "[Transcription Error: ...]" marker instead of
stopping the run.

Usage:
    python scripts/transcribe.py --asin B00FO74WXA
    python scripts/transcribe.py --asin B00FO74WXA --start-at 10 --max-pages 25
    python scripts/transcribe.py --asin B00FO74WXA --dry-run
    python scripts/transcribe.py --asin B00FO74WXA --reset-cost
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from pageturner.config import RuntimeConfig
from pageturner.costs import CostLedger
from pageturner.models import CaptureSettings, OutputStyle
from pageturner.store import PageStore
from pageturner.transcription import (
    OpenAIResponsesTranscriber,
    TranscriptionPipeline,
)


def resolve_settings(store: PageStore, args: argparse.Namespace) -> CaptureSettings:
    base = store.load_settings() or CaptureSettings()
    updates = {}
    if args.model:
        updates["model"] = args.model
    if args.markdown:
        updates["output_style"] = OutputStyle.MARKDOWN
    if args.prompt_file:
        updates["prompt"] = Path(args.prompt_file).read_text(encoding="utf-8")
    return base.model_copy(update=updates)


async def run(args: argparse.Namespace) -> int:
    config = RuntimeConfig.from_env(args.asin)
    ledger = CostLedger(config.ledger_path)

    if args.reset_cost:
        ledger.reset()
        print(f"Cumulative transcription cost reset to 0 ({ledger.path}).")
        return 0

    store = PageStore(config.data_dir)
    count = store.page_count()
    if count == 0:
        print(f"Error: no captured pages found in {store.root}")
        return 1
    if args.start_at >= count:
        print(f"Error: --start-at {args.start_at} is out of range for {count} pages.")
        return 1

    settings = resolve_settings(store, args)
    end = count if args.max_pages == 0 else min(count, args.start_at + args.max_pages)
    print(
        f"Selected pages: {args.start_at}..{end - 1} of {count} | "
        f"Model: {settings.model} | Style: {settings.output_style.value}"
    )

    if args.dry_run:
        print("Dry run only. No API calls or file writes.")
        return 0

    if not config.api_key:
        print("Error: OPENAI_API_KEY is not set.")
        return 1

    pipeline = TranscriptionPipeline(
        store,
        ledger,
        OpenAIResponsesTranscriber(base_url=config.base_url),
        exchange_rate=config.usd_rate,
    )

    failed = 0

    def on_page(index: int, text: str) -> None:
        nonlocal failed
        if text.startswith("[Transcription Error"):
            failed += 1
            print(f"[page {index}] {text}")
        else:
            print(f"[page {index}] ok ({len(text)} chars)")

    results = await pipeline.run(
        config.api_key,
        settings,
        start_at=args.start_at,
        max_pages=args.max_pages,
        on_page=on_page,
    )

    print(f"Transcribed {len(results) - failed}/{len(results)} pages.")
    print(f"Cumulative transcription cost: {ledger.total():.2f}")
    if results and failed == len(results):
        print("Error: no pages were transcribed successfully.")
        return 1
    return 0


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Transcribe captured pages via OpenAI")
    parser.add_argument("--asin", required=True, help="Book ASIN (maps to books/<asin>)")
    parser.add_argument("--model", default=None, help="Transcription model (default: from capture settings)")
    parser.add_argument("--markdown", action="store_true", help="Ask for Markdown-formatted transcripts")
    parser.add_argument("--prompt-file", default=None, help="Custom transcription prompt file")
    parser.add_argument(
        "--start-at", type=int, default=0, help="First page index to transcribe (default: 0)"
    )
    parser.add_argument(
        "--max-pages", type=int, default=0, help="Max pages after start index (0 = all)"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Print planned workload without API calls"
    )
    parser.add_argument(
        "--reset-cost", action="store_true", help="Zero the cumulative cost ledger and exit"
    )
    args = parser.parse_args()

    if args.start_at < 0:
        parser.error("--start-at must be >= 0")
    if args.max_pages < 0:
        parser.error("--max-pages must be >= 0")

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
