# clinic/timeutils.py
#
# Wall-clock helpers. Schedules are stored as HH:MM on a calendar date in the
# clinic's timezone; the scheduling code works in "minutes since midnight".

import re
from datetime import date, datetime, time

from .errors import InvalidInput

HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

MIN_DURATION = 15
MAX_DURATION = 240


def parse_hhmm(value, field="time") -> time:
    """Accept "HH:MM" (or "HH:MM:SS") strings and time objects."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be a HH:MM string")
    match = HHMM_RE.match(value.strip())
    if not match:
        raise InvalidInput(f"{field} must be in HH:MM (24-hour) format, got {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value, field="date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be a YYYY-MM-DD string")
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        raise InvalidInput(f"Invalid {field} {value!r}. Use YYYY-MM-DD.")


def parse_duration(value, field="duration") -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a whole number of minutes")
    if not MIN_DURATION <= minutes <= MAX_DURATION:
        raise InvalidInput(f"{field} must be between {MIN_DURATION} and {MAX_DURATION} minutes")
    return minutes


def parse_weekday(value) -> int:
    try:
        day = int(value)
    except (TypeError, ValueError):
        raise InvalidInput("dayOfWeek must be an integer 0..6")
    if not 0 <= day <= 6:
        raise InvalidInput("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
    return day


def day_of_week(d: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return d.isoweekday() % 7


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def format_hhmm(value) -> str:
    if isinstance(value, int):
        return f"{value // 60:02d}:{value % 60:02d}"
    return value.strftime("%H:%M")


def format_12h(value) -> str:
    """09:30 -> "9:30 AM"."""
    minutes = value if isinstance(value, int) else to_minutes(value)
    hour, minute = divmod(minutes, 60)
    period = "PM" if hour >= 12 else "AM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:{minute:02d} {period}"
