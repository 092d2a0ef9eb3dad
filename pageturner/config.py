"""Runtime configuration, timing constants and viewport presets."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_READER_URL = "https://read.amazon.com/"
DEFAULT_PROFILE_DIR = Path.home() / ".pageturner-profile"
DEFAULT_LEDGER_PATH = Path.home() / ".pageturner" / "ledger.json"
DEFAULT_USD_RATE = 150.0

PREVIEW_JPEG_QUALITY = 10
CAPTURE_JPEG_QUALITY = 90

STALE_AFTER_SECONDS = 30 * 60

WINDOW_PRESETS = {
    "tablet": (1000, 1333),
    "kindle": (750, 1100),
    "wide": (1600, 1000),
    "magazine": (850, 1100),
    "manga": (750, 1000),
    "spread": (1400, 900),
}
FALLBACK_WINDOW_SIZE = (1280, 800)
SIZING_MAXIMIZED = "maximized"
SIZING_CURRENT = "current"
EXPLICIT_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


@dataclass(frozen=True)
class Timings:
    """Every delay and bound the capture engine waits on, in seconds."""

    resize_settle: float = 1.0
    start_settle: float = 3.0
    reinstall_wait: float = 1.0
    stability_initial_delay: float = 0.5
    stability_interval: float = 1.0
    stability_required: int = 3
    stability_max_attempts: int = 50
    duplicate_max_retries: int = 2
    duplicate_retry_settle: float = 1.5
    metadata_attempts: int = 5
    metadata_retry_wait: float = 0.5
    loop_delay: float = 0.1
    stop_grace: float = 0.5
    transcribe_interval: float = 4.5
    transcribe_timeout: float = 30.0


DEFAULT_TIMINGS = Timings()


@dataclass(frozen=True)
class RuntimeConfig:
    data_dir: Path
    reader_url: str
    profile_dir: Path
    ledger_path: Path
    usd_rate: float
    api_key: str | None
    base_url: str | None

    @classmethod
    def from_env(cls, slug: str = "book") -> RuntimeConfig:
        raw_dir = os.environ.get("PAGETURNER_DATA_DIR")
        data_dir = Path(raw_dir) if raw_dir else Path.cwd() / "books" / sanitize_slug(slug)
        raw_profile = os.environ.get("PAGETURNER_PROFILE_DIR")
        raw_ledger = os.environ.get("PAGETURNER_LEDGER_PATH")
        return cls(
            data_dir=data_dir,
            reader_url=os.environ.get("PAGETURNER_READER_URL") or DEFAULT_READER_URL,
            profile_dir=Path(raw_profile) if raw_profile else DEFAULT_PROFILE_DIR,
            ledger_path=Path(raw_ledger) if raw_ledger else DEFAULT_LEDGER_PATH,
            usd_rate=parse_rate(os.environ.get("PAGETURNER_USD_RATE")),
            api_key=os.environ.get("OPENAI_API_KEY") or None,
            base_url=os.environ.get("OPENAI_BASE_URL") or None,
        )


def sanitize_slug(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]+", "-", value).strip("-") or "book"


def parse_rate(raw: str | None) -> float:
    if not raw:
        return DEFAULT_USD_RATE
    try:
        rate = float(raw)
    except ValueError:
        return DEFAULT_USD_RATE
    return rate if rate > 0 else DEFAULT_USD_RATE


def resolve_window_size(name: str) -> tuple[int, int] | None:
    """Map a sizing preset to pixel dimensions; None for the special modes."""
    key = (name or SIZING_CURRENT).strip().lower()
    if key in (SIZING_MAXIMIZED, SIZING_CURRENT):
        return None
    match = EXPLICIT_SIZE_PATTERN.match(key)
    if match:
        return int(match.group(1)), int(match.group(2))
    return WINDOW_PRESETS.get(key, FALLBACK_WINDOW_SIZE)
