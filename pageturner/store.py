"""
File-backed durable store for captured pages and session counters.

Layout under the store root:
    pages/page-00000.jpg   one blob per page index
    state.json             counters, book metadata, settings, transcripts

Every mutation is flushed before the call returns, so a process that is torn
down between two capture steps loses nothing that status reporting needs.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import BookMetadata, CaptureSettings

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
PAGES_DIR = "pages"


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, payload: Any) -> None:
    """Atomically replace path with the JSON encoding of payload."""
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, default=str) + "\n", encoding="utf-8")
    os.replace(tmp_path, path)


def page_filename(index: int) -> str:
    return f"page-{index:05d}.jpg"


class PageStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.pages_dir = self.root / PAGES_DIR
        self.pages_dir.mkdir(parents=True, exist_ok=True)

    # -- state.json -----------------------------------------------------

    def _state_path(self) -> Path:
        return self.root / STATE_FILE

    def _read_state(self) -> dict[str, Any]:
        path = self._state_path()
        if not path.exists():
            return {}
        try:
            payload = read_json(path)
        except (OSError, ValueError):
            logger.warning("Unreadable %s; treating store state as empty", path)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _update_state(self, **changes: Any) -> None:
        state = self._read_state()
        state.update(changes)
        write_json(self._state_path(), state)

    # -- lifecycle ------------------------------------------------------

    def clear(self) -> None:
        """Drop pages and session state."""
        shutil.rmtree(self.pages_dir, ignore_errors=True)
        self.pages_dir.mkdir(parents=True, exist_ok=True)
        self._state_path().unlink(missing_ok=True)

    # -- pages ----------------------------------------------------------

    def page_path(self, index: int) -> Path:
        return self.pages_dir / page_filename(index)

    def record_page(self, index: int, data: bytes, timestamp: float) -> None:
        """Persist page blob, then the running count and activity time."""
        if index < 0:
            raise ValueError("page index must be >= 0")
        self.page_path(index).write_bytes(data)
        self._update_state(sessionPageCount=index + 1, lastActivityTimestamp=timestamp)

    def get_page(self, index: int) -> bytes | None:
        path = self.page_path(index)
        if index < 0 or not path.exists():
            return None
        return path.read_bytes()

    def page_indices(self) -> list[int]:
        indices = []
        for path in self.pages_dir.glob("page-*.jpg"):
            try:
                indices.append(int(path.stem.split("-", 1)[1]))
            except ValueError:
                continue
        return sorted(indices)

    def page_count(self) -> int:
        value = self._read_state().get("sessionPageCount")
        return value if isinstance(value, int) and value >= 0 else 0

    def last_activity(self) -> float | None:
        value = self._read_state().get("lastActivityTimestamp")
        return float(value) if isinstance(value, (int, float)) else None

    # -- metadata and settings -----------------------------------------

    def save_metadata(self, metadata: BookMetadata) -> None:
        self._update_state(bookTitle=metadata.title, totalPages=metadata.total_pages)

    def load_metadata(self) -> BookMetadata:
        state = self._read_state()
        title = state.get("bookTitle")
        total = state.get("totalPages")
        return BookMetadata(
            title=title if isinstance(title, str) else "",
            total_pages=total if isinstance(total, int) and total > 0 else 0,
        )

    def save_settings(self, settings: CaptureSettings) -> None:
        self._update_state(captureSettings=settings.to_record())

    def load_settings(self) -> CaptureSettings | None:
        payload = self._read_state().get("captureSettings")
        if payload is None:
            return None
        try:
            return CaptureSettings.model_validate(payload)
        except ValidationError:
            logger.warning("Ignoring malformed persisted capture settings")
            return None

    # -- transcripts ----------------------------------------------------

    def save_transcript(self, index: int, text: str) -> None:
        transcripts = self._read_state().get("transcripts")
        if not isinstance(transcripts, dict):
            transcripts = {}
        transcripts[str(index)] = text
        self._update_state(transcripts=transcripts)

    def load_transcripts(self) -> dict[int, str]:
        raw = self._read_state().get("transcripts")
        if not isinstance(raw, dict):
            return {}
        result = {}
        for key, value in raw.items():
            if isinstance(value, str) and str(key).isdigit():
                result[int(key)] = value
        return result
