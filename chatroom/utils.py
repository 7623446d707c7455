"""
Utility functions for the chat room API.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# A clock returns the current time in milliseconds since the epoch
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def format_clock_time(timestamp_ms: int, fmt: str = "%H:%M:%S") -> str:
    """Render an epoch-millisecond timestamp as a local, human-readable time."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(fmt)


def sanitize_text(value: Any) -> str:
    """
    Strip HTML markup and surrounding whitespace from user input.

    Args:
        value: Raw value from a request body or header (None is treated as "")

    Returns:
        Plain text with tags, script and style content removed and
        whitespace trimmed
    """
    if value is None:
        return ""
    raw = str(value)
    if "<" not in raw and "&" not in raw:
        return raw.strip()
    soup = BeautifulSoup(raw, "html.parser")
    # Script and style bodies are code, not text
    for tag in soup(["script", "style"]):
        tag.decompose()
    cleaned = soup.get_text()
    logger.debug(f"Sanitized input: {len(raw)} -> {len(cleaned)} chars")
    return cleaned.strip()


def parse_limit(value: Optional[str]) -> Optional[int]:
    """
    Interpret the `limit` query parameter of a message listing.

    Only positive integers limit the listing; anything else
    (missing, non-numeric, zero, negative) means no limit.
    """
    if value is None:
        return None
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    limit = int(value)
    return limit if limit > 0 else None
