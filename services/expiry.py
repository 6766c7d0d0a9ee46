"""NSE-style option expiry resolution.

Weekly index options lapse on Thursdays and the monthly series on the last
Thursday of the month.  Everything here is pure date arithmetic; "now" is the
host's local clock unless a reference time is passed in.

Vendor APIs speak ``DD-MM-YYYY`` while the rest of the service uses
``YYYY-MM-DD``.  :class:`ExpiryDate` converts between the two.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

__all__ = [
    "ExpiryDate",
    "ParseResult",
    "parse_expiry",
    "resolve_expiry",
    "last_thursday_of_month",
    "current_month_expiry",
    "nifty_expiry",
    "next_weekly_expiry",
    "iso_to_vendor",
    "filter_future",
]

THURSDAY = 3
WEEKLY_CUTOFF = time(15, 30)

_FORMATS = ("%d-%m-%Y", "%Y-%m-%d", "%d-%b-%Y")


@dataclass(frozen=True, order=True)
class ExpiryDate:
    value: date

    @property
    def day(self) -> int:
        return self.value.day

    @property
    def month(self) -> int:
        return self.value.month

    @property
    def year(self) -> int:
        return self.value.year

    def vendor(self) -> str:
        return self.value.strftime("%d-%m-%Y")

    def iso(self) -> str:
        return self.value.isoformat()

    def __str__(self) -> str:
        return self.vendor()


@dataclass(frozen=True)
class ParseResult:
    value: Optional[ExpiryDate] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def parse_expiry(text: object) -> ParseResult:
    """Parse ``text`` into an :class:`ExpiryDate` without raising."""

    if not isinstance(text, str) or not text.strip():
        return ParseResult(error="empty expiry")
    raw = text.strip()
    for fmt in _FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
        return ParseResult(value=ExpiryDate(parsed))
    return ParseResult(error=f"unrecognised expiry {raw!r}")


def _today(now: Optional[datetime]) -> date:
    return (now or datetime.now()).date()


def resolve_expiry(
    candidates: Sequence[str],
    prefer_weekly: bool,
    now: Optional[datetime] = None,
) -> str:
    """Pick the expiry to query from the list an upstream offers.

    Only dates strictly after today qualify.  Weekly preference takes the
    earliest of them; monthly preference takes the last expiry of the current
    month, or of the earliest later month.  When nothing parses or nothing is
    in the future the first raw candidate is returned unchanged (``""`` for an
    empty list).
    """

    if not candidates:
        return ""
    today = _today(now)
    parsed = [r.value for r in map(parse_expiry, candidates) if r.ok]
    future = filter_future(parsed, now)
    if not future:
        return candidates[0]

    if prefer_weekly:
        return future[0].vendor()

    by_month: Dict[Tuple[int, int], List[ExpiryDate]] = {}
    for item in future:
        by_month.setdefault((item.year, item.month), []).append(item)

    current = by_month.get((today.year, today.month))
    if current:
        return max(current).vendor()
    if by_month:
        earliest = min(by_month)
        return max(by_month[earliest]).vendor()
    return future[0].vendor()


def last_thursday_of_month(year: int, month: int) -> ExpiryDate:
    """Return the monthly expiry: the last Thursday of ``year``/``month``."""

    day = date(year, month, calendar.monthrange(year, month)[1])
    while day.weekday() != THURSDAY:
        day -= timedelta(days=1)
    return ExpiryDate(day)


def current_month_expiry(now: Optional[datetime] = None) -> str:
    today = _today(now)
    return last_thursday_of_month(today.year, today.month).vendor()


def _nearest_thursday(day: date) -> date:
    return day + timedelta(days=(THURSDAY - day.weekday()) % 7)


def nifty_expiry(requested: Optional[str], today: Optional[date] = None) -> str:
    """Return the NIFTY expiry that applies to ``requested``.

    The Thursday on or after the requested date is used; when it is also the
    last Thursday of that month it is the monthly contract.  Unparseable
    input falls back to a week from today.
    """

    result = parse_expiry(requested)
    if not result.ok:
        base = today or date.today()
        return ExpiryDate(base + timedelta(days=7)).vendor()

    base = result.value.value
    monthly = last_thursday_of_month(base.year, base.month)
    weekly = ExpiryDate(_nearest_thursday(base))
    if weekly == monthly:
        return monthly.vendor()
    return weekly.vendor()


def next_weekly_expiry(now: Optional[datetime] = None) -> str:
    """Next Thursday from ``now``.

    On a Thursday before the 15:30 close the contract expiring today is
    still tradable, so today is returned; later that day the next week's
    Thursday is.
    """

    now = now or datetime.now()
    today = now.date()
    days = (THURSDAY - today.weekday()) % 7
    if days == 0 and now.time() >= WEEKLY_CUTOFF:
        days = 7
    return ExpiryDate(today + timedelta(days=days)).vendor()


def iso_to_vendor(text: Optional[str]) -> str:
    """Convert ``YYYY-MM-DD`` to ``DD-MM-YYYY``; malformed input yields ``""``."""

    if not text:
        return ""
    parts = text.strip().split("-")
    if len(parts) != 3:
        return ""
    year, month, day = parts
    return f"{day}-{month}-{year}"


def filter_future(dates: Iterable[ExpiryDate], now: Optional[datetime] = None) -> List[ExpiryDate]:
    today = _today(now)
    return sorted(d for d in dates if d.value > today)
