"""Duplicate-frame detection that doubles as the end-of-book signal."""

from __future__ import annotations

from enum import Enum


class Verdict(str, Enum):
    NEW_PAGE = "new_page"
    RETRY_TURN = "retry_turn"
    END_OF_BOOK = "end_of_book"


class EndOfBookDetector:
    """
    Compare each full capture with the last stored page.

    A reader with no pages left keeps showing the last frame, so an exact
    repeat is retried up to `max_retries` times for the same page index before
    the book is declared finished. One instance belongs to one session.
    """

    def __init__(self, max_retries: int = 2) -> None:
        self.max_retries = max_retries
        self.retries = 0

    def check(self, frame: bytes, previous: bytes | None) -> Verdict:
        if previous is None or frame != previous:
            self.retries = 0
            return Verdict.NEW_PAGE
        if self.retries < self.max_retries:
            self.retries += 1
            return Verdict.RETRY_TURN
        return Verdict.END_OF_BOOK
