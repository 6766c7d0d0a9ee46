"""Utility helpers for dealing with time and NSE market sessions.

``market_is_open`` uses regular NSE cash-market hours (09:15 to 15:30 IST,
Monday to Friday) and does not know about exchange holidays.
"""

from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# India Standard Time, used by the National Stock Exchange
TZ = ZoneInfo("Asia/Kolkata")

# Regular trading hours (local exchange time)
OPEN_TIME = time(9, 15)
CLOSE_TIME = time(15, 30)


def now_ist() -> datetime:
    """Return the current time in India Standard Time."""
    return datetime.now(timezone.utc).astimezone(TZ)


def market_is_open(ts: Optional[datetime] = None) -> bool:
    """Return ``True`` if ``ts`` falls within a regular NSE session."""

    ts = ts or now_ist()

    # Ensure the timestamp is timezone aware then convert to exchange tz
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(TZ)

    if ts.weekday() >= 5:  # 5 = Saturday, 6 = Sunday
        return False

    return OPEN_TIME <= ts.time().replace(second=0, microsecond=0) <= CLOSE_TIME
