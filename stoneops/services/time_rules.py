"""
Time parsing and normalization rules.
All route windows are compared and stored as naive UTC instants.
"""
from datetime import datetime
from typing import Optional, Union
import pytz
from ..config import settings


def local_to_utc(local_datetime: datetime, timezone_str: str) -> datetime:
    """
    Convert local datetime to UTC.

    Args:
        local_datetime: Local datetime (naive, or aware in any zone)
        timezone_str: Timezone string (e.g., "America/Sao_Paulo")

    Returns:
        UTC datetime (timezone-aware)
    """
    try:
        tz = pytz.timezone(timezone_str)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    if local_datetime.tzinfo is None:
        local_dt = tz.localize(local_datetime)
    else:
        local_dt = local_datetime
    return local_dt.astimezone(pytz.UTC)


def to_utc_naive(value: datetime, timezone_str: Optional[str] = None) -> datetime:
    """Normalize an aware or naive (local) datetime to a naive UTC instant."""
    return local_to_utc(value, timezone_str or settings.tz_default).replace(tzinfo=None)


def parse_instant(value: Union[str, datetime, None], field: str = "timestamp") -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime.

    Naive input is read in the configured default timezone. A trailing "Z"
    is accepted. Returns None for None/empty input.

    Raises:
        ValueError: when the string is not a valid ISO-8601 timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value)
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid ISO-8601 value for {field}: {value!r}")
    return to_utc_naive(parsed)


def utc_now() -> datetime:
    return datetime.utcnow().replace(tzinfo=None)
