"""Book title and page-count parsing from the reader's on-screen indicators."""

import re

from .models import BookMetadata

ROMAN_NUMERALS = {
    "I": 1,
    "V": 5,
    "X": 10,
    "L": 50,
    "C": 100,
    "D": 500,
    "M": 1000,
}
TITLE_PREFIXES = (
    re.compile(r"^Amazon\.co\.jp[:\s]*", re.IGNORECASE),
    re.compile(r"^Amazon\.com[:\s]*", re.IGNORECASE),
)
TITLE_SUFFIXES = (
    re.compile(r"\s*[-|]\s*Kindle Cloud Reader$", re.IGNORECASE),
    re.compile(r"\s*[-|]\s*Kindle$", re.IGNORECASE),
)
LOOSE_TOTAL_PATTERN = re.compile(r"(?:of|/|全)\s*(\d+)", re.IGNORECASE)
DEFAULT_TITLE = "kindle_book"


def deromanize(roman):
    """Convert a Roman numeral string to an integer."""
    value = 0
    previous = 0
    for char in roman.upper()[::-1]:
        numeral = ROMAN_NUMERALS.get(char)
        if numeral is None:
            return None
        if numeral < previous:
            value -= numeral
        else:
            value += numeral
            previous = numeral
    return value


def parse_footer_nav_text(text):
    """Parse footer text into (page, total, location, total_location)."""
    if not text:
        return None, None, None, None

    normalized = " ".join(text.split())
    page_match = re.search(r"page\s+(\d+)\s+of\s+(\d+)", normalized, re.IGNORECASE)
    if page_match:
        return int(page_match.group(1)), int(page_match.group(2)), None, None

    location_match = re.search(
        r"location\s+(\d+)\s+of\s+(\d+)", normalized, re.IGNORECASE
    )
    if location_match:
        return None, None, int(location_match.group(1)), int(location_match.group(2))

    roman_match = re.search(
        r"page\s+([ivxlcdm]+)\s+of\s+(\d+)", normalized, re.IGNORECASE
    )
    if roman_match:
        location = deromanize(roman_match.group(1))
        if location is not None:
            return None, None, location, int(roman_match.group(2))

    return None, None, None, None


def parse_total_pages(text):
    """Best-effort total page count from footer text; 0 when unknown."""
    _page, total, _location, total_location = parse_footer_nav_text(text)
    if total is not None:
        return total
    if total_location is not None:
        return total_location
    if text:
        loose = LOOSE_TOTAL_PATTERN.search(" ".join(text.split()))
        if loose:
            return int(loose.group(1))
    return 0


def clean_title(raw):
    """Strip store and reader branding from a document title."""
    if not isinstance(raw, str):
        return DEFAULT_TITLE
    title = raw.strip()
    for pattern in TITLE_PREFIXES:
        title = pattern.sub("", title)
    for pattern in TITLE_SUFFIXES:
        title = pattern.sub("", title)
    return title.strip() or DEFAULT_TITLE


def metadata_from_reply(reply):
    """Build BookMetadata from a GET_METADATA agent reply."""
    if not isinstance(reply, dict):
        return BookMetadata(title=DEFAULT_TITLE, total_pages=0)

    total = reply.get("totalPages")
    if not isinstance(total, int) or total <= 0:
        total = 0
        footers = reply.get("footers")
        if isinstance(footers, str):
            footers = [footers]
        if isinstance(footers, list):
            for footer in footers:
                total = parse_total_pages(footer if isinstance(footer, str) else None)
                if total:
                    break

    return BookMetadata(title=clean_title(reply.get("title")), total_pages=total)
