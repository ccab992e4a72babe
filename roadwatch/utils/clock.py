"""
Time source for services. Services take a ``clock`` callable so tests can pin
the current time.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def start_of_utc_day(now: datetime) -> datetime:
    """Midnight UTC of the day containing ``now``."""
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)
