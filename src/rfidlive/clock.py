"""Site-local clock.

The readers, the scan log and the dashboard all speak the site's wall
clock (Asia/Manila by default), so timestamps are produced and parsed in
one configured zone.
"""

from datetime import datetime
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from rfidlive.config import settings

# Formats used by the scan log API and the dashboard
DB_FORMAT = "%Y-%m-%d %H:%M:%S"
DISPLAY_FORMAT = "%Y-%m-%d %I:%M:%S %p"
DATE_FORMAT = "%Y-%m-%d"
TIME_12HR_FORMAT = "%I:%M:%S %p"


@lru_cache(maxsize=8)
def site_timezone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.timezone)


def local_now(tz: Optional[str] = None) -> datetime:
    """Current time as an aware datetime in the site timezone."""
    return datetime.now(site_timezone(tz))


def iso_millis(moment: Optional[datetime] = None, tz: Optional[str] = None) -> str:
    """ISO-8601 with milliseconds and UTC offset, e.g. 2025-01-31T09:15:02.118+08:00."""
    moment = moment or local_now(tz)
    return moment.isoformat(timespec="milliseconds")


def parse_local(value: str, tz: Optional[str] = None) -> datetime:
    """Parse an ISO-ish timestamp; naive values are read as site-local time.

    Raises ValueError when the string is not a timestamp.
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=site_timezone(tz))
    return parsed


def to_naive_local(moment: datetime, tz: Optional[str] = None) -> datetime:
    """Convert to the naive site-local form stored in the scan log."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(site_timezone(tz)).replace(tzinfo=None)
    return moment
