"""Small helpers for document ids, dates and field merging."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TZ = os.environ.get("INVENTORY_TZ", "America/Los_Angeles")

# Document ids longer than this are truncated
_MAX_SEGMENT_LENGTH = 700

# Characters left unescaped by JavaScript's encodeURIComponent
_SEGMENT_SAFE = "-_.!~*'()"


def safe_seg(value: Any) -> str:
    """Encode an arbitrary value as a single document-path segment."""
    encoded = quote("" if value is None else str(value), safe=_SEGMENT_SAFE)
    if len(encoded) > _MAX_SEGMENT_LENGTH:
        return encoded[:_MAX_SEGMENT_LENGTH] + "__trunc"
    return encoded


def merge_field(new_value: Any, previous_value: Any) -> Any:
    """Prefer the incoming value; fall back to what was stored before."""
    return new_value if new_value is not None else previous_value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO string, epoch milliseconds or datetime into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable timestamp: %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def today_ymd(tz: str = DEFAULT_TZ, at: Any = None) -> str:
    """Calendar day (YYYY-MM-DD) of ``at`` (or now) in the given timezone."""
    moment = parse_timestamp(at) or datetime.now(timezone.utc)
    return moment.astimezone(ZoneInfo(tz)).strftime("%Y-%m-%d")


def to_int(value: Any) -> int | None:
    """Coerce a webhook number (int, float, numeric string) to int, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number)


def to_plain_text(html: str | None) -> str | None:
    """Very light tag strip for reason strings that arrive as HTML."""
    if not html:
        return None
    return re.sub(r"<[^>]*>", "", html).strip() or None
