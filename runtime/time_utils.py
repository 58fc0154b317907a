"""
Time Utility

Calendar boundaries for digest windows, C-style date rendering and
wall-clock parsing for the daily trigger. All digest computations use UTC; other
zones are only used for display and for the daily trigger time.
"""

import re
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from models import DigestWindow

UTC = timezone.utc

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_DIRECTIVE = re.compile(r"%.?", re.DOTALL)
_CLOCK = re.compile(r"^(\d{1,2}):(\d{2})$")


class TimeFormatError(ValueError):
    """Raised when a time zone or clock value cannot be parsed"""


def get_zone(name: Optional[str]) -> tzinfo:
    """Resolve an IANA zone name; None means UTC. Unknown or blank names raise."""
    if name is None or name.strip().upper() == "UTC":
        return UTC
    if not name.strip():
        raise TimeFormatError("Empty time zone name")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        # OSError covers names that resolve to a directory, e.g. "America"
        raise TimeFormatError(f"Unknown time zone: {name}") from e


def ensure_aware(moment: datetime) -> datetime:
    """Naive datetimes are interpreted as UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def utcnow() -> datetime:
    return datetime.now(UTC)


def start_of_day(moment: datetime, tz: str = "UTC") -> datetime:
    """Truncate to 00:00:00 in the given zone"""
    zone = get_zone(tz)
    local = ensure_aware(moment).astimezone(zone)
    return datetime(local.year, local.month, local.day, tzinfo=zone)


def yesterday(moment: datetime, tz: str = "UTC") -> datetime:
    """
    Shift back one calendar day, keeping the wall-clock time.

    Calendar-aware rather than a fixed 24h offset, so the result stays on the
    previous date across daylight-saving transitions.
    """
    zone = get_zone(tz)
    local = ensure_aware(moment).astimezone(zone)
    previous = local.date() - timedelta(days=1)
    return datetime.combine(previous, local.time(), tzinfo=zone)


def digest_window(now: datetime) -> DigestWindow:
    """[midnight UTC of the day before `now`, now)"""
    now = ensure_aware(now).astimezone(UTC)
    return DigestWindow(start=start_of_day(yesterday(now)), end=now)

# =============================================================================
# C-STYLE FORMATTING
# =============================================================================

def _week_of_year(moment: datetime, first_weekday_sunday: bool) -> str:
    yday = moment.timetuple().tm_yday - 1
    if first_weekday_sunday:
        wday = moment.isoweekday() % 7
    else:
        wday = moment.weekday()
    return f"{(yday + 7 - wday) // 7:02d}"


def _utc_offset(moment: datetime) -> str:
    offset = moment.utcoffset() or timedelta(0)
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"{sign}{minutes // 60:02d}{minutes % 60:02d}"


_FORMATTERS: Dict[str, Callable[[datetime], str]] = {
    "Y": lambda d: str(d.year),
    "y": lambda d: f"{d.year % 100:02d}",
    "m": lambda d: f"{d.month:02d}",
    "d": lambda d: f"{d.day:02d}",
    "e": lambda d: f"{d.day:2d}",
    "H": lambda d: f"{d.hour:02d}",
    "I": lambda d: f"{(d.hour % 12) or 12:02d}",
    "p": lambda d: "AM" if d.hour < 12 else "PM",
    "M": lambda d: f"{d.minute:02d}",
    "S": lambda d: f"{d.second:02d}",
    "a": lambda d: WEEKDAY_NAMES[d.weekday()][:3],
    "A": lambda d: WEEKDAY_NAMES[d.weekday()],
    "b": lambda d: MONTH_NAMES[d.month - 1][:3],
    "h": lambda d: MONTH_NAMES[d.month - 1][:3],
    "B": lambda d: MONTH_NAMES[d.month - 1],
    "j": lambda d: f"{d.timetuple().tm_yday:03d}",
    "u": lambda d: str(d.isoweekday()),
    "w": lambda d: str(d.isoweekday() % 7),
    "U": lambda d: _week_of_year(d, first_weekday_sunday=True),
    "W": lambda d: _week_of_year(d, first_weekday_sunday=False),
    "s": lambda d: str(int(d.timestamp())),
    "F": lambda d: f"{d.year:04d}-{d.month:02d}-{d.day:02d}",
    "T": lambda d: f"{d.hour:02d}:{d.minute:02d}:{d.second:02d}",
    "z": _utc_offset,
    "Z": lambda d: d.tzname() or "",
    "n": lambda d: "\n",
    "t": lambda d: "\t",
    "%": lambda d: "%",
}


def cformat(moment: datetime, template: str, tz: str = "UTC") -> str:
    """
    Render `template` using strftime directives against `moment` in zone `tz`.

    Unsupported directives are left untranslated. An unknown zone raises
    TimeFormatError; the timestamp is never silently rendered in another zone.
    """
    local = ensure_aware(moment).astimezone(get_zone(tz))

    def _replace(match: "re.Match[str]") -> str:
        token = match.group(0)
        formatter = _FORMATTERS.get(token[1:])
        if formatter is None:
            return token
        return formatter(local)

    return _DIRECTIVE.sub(_replace, template)

# =============================================================================
# SCHEDULING
# =============================================================================

def parse_clock(value: str) -> time:
    """Parse a wall-clock "HH:MM" string"""
    match = _CLOCK.match(value.strip()) if value else None
    if not match:
        raise TimeFormatError(f"Invalid time of day: {value!r} (expected HH:MM)")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise TimeFormatError(f"Invalid time of day: {value!r}")
    return time(hour, minute)
