"""Drill-down intervals for the 24-hour report and time-range form handling."""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from syssnap.models import ReportRow, TimedRow, TimeRange

_ZERO_RANGE = TimeRange(0, 0, 0, 0)


def parse_time(value: str) -> datetime | None:
    """Parse "HH:MM:SS" or "hh:mm:ss AM/PM". Returns None if neither fits."""
    upper = value.strip().upper()
    fmt = "%I:%M:%S %p" if "AM" in upper or "PM" in upper else "%H:%M:%S"
    try:
        return datetime.strptime(upper, fmt)
    except ValueError:
        return None


def preceding_interval(current: str, previous: datetime | None) -> TimeRange:
    """
    The window a click on the row stamped `current` should load.

    From the previous row's time up to this one, or a single minute starting
    at `current` for the first row. Unparseable stamps give 00:00 to 00:00.
    """
    current_time = parse_time(current)
    if current_time is None:
        return _ZERO_RANGE
    if previous is not None:
        start, end = previous, current_time
    else:
        start, end = current_time, current_time + timedelta(minutes=1)
    return TimeRange(start.hour, start.minute, end.hour, end.minute)


def annotate_intervals(rows: Iterable[ReportRow]) -> list[TimedRow]:
    """Pair every row, in order, with its drill-down interval."""
    timed: list[TimedRow] = []
    previous: datetime | None = None
    for row in rows:
        timed.append(TimedRow(row=row, interval=preceding_interval(row.time, previous)))
        previous = parse_time(row.time)
    return timed


def _clamp(value: object, default: int, upper: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return min(upper, max(0, number))


def range_from_form(values: Mapping[str, object]) -> TimeRange:
    """
    Build a TimeRange from submitted start/end hour and minute fields.

    Hours are clamped to 0..23 and minutes to 0..59; missing fields default to
    the full day.
    """
    full = TimeRange()
    return TimeRange(
        start_hour=_clamp(values.get("start_hour"), full.start_hour, 23),
        start_min=_clamp(values.get("start_min"), full.start_min, 59),
        end_hour=_clamp(values.get("end_hour"), full.end_hour, 23),
        end_min=_clamp(values.get("end_min"), full.end_min, 59),
    )
