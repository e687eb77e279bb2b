# core/clock.py
"""
Timestamps written by the application.

All watermarks (updated_at, submitted_at, synced_at ...) are stored as UTC
text in one fixed format so they compare correctly as strings.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

Clock = Callable[[], datetime]

def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def stamp(clock: Optional[Clock] = None) -> str:
    return format_ts((clock or utc_now)())

def format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)

def parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        # rows written by CURRENT_TIMESTAMP defaults carry no fraction
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")

def later_of(*values: Optional[str]) -> Optional[str]:
    present = [v for v in values if v]
    return max(present) if present else None
