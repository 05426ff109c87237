import math
import re
from datetime import UTC, datetime


def utc_now_iso() -> str:
    """UTC timestamp with millisecond precision and a Z suffix.

    A fixed width keeps lexicographic order equal to chronological order.
    """
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def slugify_key(raw: str, max_length: int = 32) -> str:
    """Lowercase, keep only [a-z0-9], truncate."""
    return re.sub(r"[^a-z0-9]+", "", (raw or "").strip().lower())[:max_length]
