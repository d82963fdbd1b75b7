"""UTC-everywhere time handling, plus the calendar-day math reminders run on."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DAY = timedelta(days=1)


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_local(dt: datetime, tz_name: str) -> datetime:
    """
    Convert UTC datetime to local timezone.

    Only use this at boundaries where a human calendar matters: display,
    and deciding what "today" is for date-driven reminders.

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except KeyError:
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz)


def local_today(tz_name: str, now: datetime | None = None) -> date:
    """Calendar date in tz_name at the given instant (default: now)."""
    return to_local(now or now_utc(), tz_name).date()


def as_date(value: date | datetime | str | None) -> date | None:
    """
    Normalize a stored date-ish value to a calendar date.

    Datetimes are truncated to their own calendar date (no tz conversion);
    ISO strings are parsed. None passes through.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value).date()


def day_offset(anchor: date, today: date) -> int:
    """
    Signed whole days from today to anchor, both taken at midnight.

    Positive when the anchor is in the future.
    """
    delta = datetime.combine(anchor, time.min) - datetime.combine(today, time.min)
    return round(delta / DAY)


def add_years(value: date, years: int) -> date:
    """Same month/day `years` later; Feb 29 rolls to Mar 1 in non-leap years."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, month=3, day=1)


def format_us_date(value: date | datetime | None) -> str:
    """MM/DD/YYYY, or empty string when there is no date."""
    if value is None:
        return ""
    return value.strftime("%m/%d/%Y")


def format_clock_time(value: str | time | None) -> str:
    """
    12-hour clock for "HH:MM" / "HH:MM:SS" strings or time objects.

    "14:05:00" -> "2:05 PM", "00:30" -> "12:30 AM". Unparseable input gives "".
    """
    if not value:
        return ""

    if isinstance(value, time):
        hour, minutes = value.hour, f"{value.minute:02d}"
    else:
        parts = value.split(":")
        if len(parts) < 2:
            return ""
        try:
            hour = int(parts[0])
        except ValueError:
            return ""
        minutes = parts[1]

    suffix = "PM" if hour >= 12 else "AM"
    display_hour = 12 if hour % 12 == 0 else hour % 12
    return f"{display_hour}:{minutes} {suffix}"
