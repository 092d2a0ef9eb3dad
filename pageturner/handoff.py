"""Default hand-off: index the captured pages for the document assembler."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from .store import PageStore, page_filename, write_json

logger = logging.getLogger(__name__)

MANIFEST_FILE = "pages.json"


def build_pages_manifest_payload(store: PageStore, reason: str) -> dict[str, Any]:
    """Snapshot of the store: contiguous page entries plus book metadata."""
    metadata = store.load_metadata()
    settings = store.load_settings()
    count = store.page_count()

    entries = []
    for index in range(count):
        path = store.page_path(index)
        if not path.exists():
            logger.warning("Page %d missing from store while building manifest", index)
            continue
        entries.append(
            {
                "index": index,
                "file": page_filename(index),
                "path": f"pages/{page_filename(index)}",
                "bytes": path.stat().st_size,
            }
        )

    return {
        "title": metadata.title,
        "total_pages": metadata.total_pages or None,
        "captured_at": datetime.now(UTC).isoformat(),
        "finished_because": reason,
        "output_format": settings.output_format.value if settings else None,
        "pages": entries,
        "summary": {
            "capture_count": len(entries),
            "expected_count": count,
        },
    }


class ManifestHandoff:
    """Write pages.json on session end and wake whoever waits for assembly."""

    def __init__(self, store: PageStore) -> None:
        self.store = store
        self.finished = asyncio.Event()
        self.reason: str | None = None
        self.errors: list[str] = []

    async def assemble(self, reason: str) -> None:
        payload = build_pages_manifest_payload(self.store, reason)
        write_json(self.store.root / MANIFEST_FILE, payload)
        logger.info("Wrote %s (%d pages)", MANIFEST_FILE, len(payload["pages"]))
        self.reason = reason
        self.finished.set()

    async def notify_error(self, message: str) -> None:
        self.errors.append(message)
        self.finished.set()
