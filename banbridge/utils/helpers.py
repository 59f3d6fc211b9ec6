"""
BanBridge - Helper Utilities
============================

String and timestamp helpers shared across the sync core.
"""

from datetime import datetime, timezone
from typing import Optional


# =============================================================================
# String Helpers
# =============================================================================

def truncate(text: Optional[str], max_length: int, ellipsis: str = "...") -> str:
    """
    Truncate text to a maximum length, appending an ellipsis when cut.

    Args:
        text: The text to truncate (None becomes "")
        max_length: Number of characters kept before the ellipsis
        ellipsis: String appended if truncated

    Returns:
        The original text, or its first max_length characters plus ellipsis
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + ellipsis


def safe_inline(text: Optional[str]) -> str:
    """Collapse a value to a single log-safe line ("n/a" when empty)."""
    if text is None:
        return "n/a"
    flat = str(text).replace("\n", " ").replace("\r", " ").strip()
    return flat or "n/a"


# =============================================================================
# Timestamp Helpers
# =============================================================================

def parse_instant(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 instant into an aware UTC datetime.

    Returns None for missing, blank or unparsable input.
    Naive timestamps are treated as UTC.
    """
    if not value or not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_instant(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO-8601 UTC instant ending in 'Z'."""
    if value is None:
        return None
    utc = value.astimezone(timezone.utc)
    if utc.microsecond:
        return utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["truncate", "safe_inline", "parse_instant", "format_instant", "utcnow"]
