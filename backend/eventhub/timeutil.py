"""UTC helpers shared by the ledgers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns; everything stored by this service is UTC, so naive values are
interpreted as UTC.
"""
from datetime import datetime, timezone
from typing import Optional

import pytz

from eventhub.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_local(value: datetime, fmt: str = "%a, %b %d, %Y at %I:%M %p") -> str:
    """Render a UTC timestamp in the organization's display timezone."""
    tz = pytz.timezone(settings.DISPLAY_TIMEZONE)
    return ensure_utc(value).astimezone(tz).strftime(fmt)
