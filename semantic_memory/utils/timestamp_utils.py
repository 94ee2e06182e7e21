"""
Timestamp utilities for consistent time handling across the system.
"""

import time
from datetime import datetime
from typing import Optional, Union

SECONDS_PER_DAY = 24 * 60 * 60


def to_datetime(timestamp: Optional[float] = None) -> datetime:
    """Convert timestamp to datetime object.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        datetime object
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp)


def now() -> datetime:
    """Current local time, the reference point for ages and expiry."""
    return to_datetime()


def age_in_days(moment: datetime, reference: Optional[datetime] = None) -> float:
    """Elapsed days between ``moment`` and ``reference``.

    Args:
        moment: Earlier point in time
        reference: Point to measure from (optional, uses current time if None)

    Returns:
        Age in fractional days, never negative
    """
    reference = reference or now()
    return max(0.0, (reference - moment).total_seconds() / SECONDS_PER_DAY)


def parse_timestamp(value: Union[datetime, float, int, str]) -> datetime:
    """Coerce an event timestamp into a naive local datetime.

    Accepts datetimes, Unix timestamps in seconds and ISO 8601 strings.
    Timezone-aware values are converted to local time.

    Raises:
        ValueError: If the value cannot be read as a point in time
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = to_datetime(value)
        except (OverflowError, OSError) as e:
            raise ValueError(f'Timestamp out of range: {value}') from e
    else:
        raise ValueError(f'Unsupported timestamp type: {type(value).__name__}')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
