"""
Shift time arithmetic and week/date formatting.

Pure functions, no database access. Times are ``"HH:MM"`` or ``"HH:MM:SS"``
strings as stored on rota rules, opening hours and custom shifts.
"""

from __future__ import annotations

from datetime import date, timedelta


def parse_time_to_minutes(value: str) -> int:
    """Minutes since midnight for ``"HH:MM[:SS]"``; seconds are ignored.

    Malformed input raises ValueError from the integer parse.
    """
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def calculate_shift_hours(
    shift_type: str,
    custom_start: str | None,
    custom_end: str | None,
    open_time: str | None,
    close_time: str | None,
    am_start: str,
    am_end: str,
    pm_start: str,
    pm_end: str,
) -> float:
    """Length of a shift in hours, never negative.

    ``full_day`` uses the site's opening hours, ``am``/``pm`` the rota rule
    boundaries and ``custom`` the shift's own times. Missing inputs or an
    unknown shift type give 0.
    """
    if shift_type == "full_day":
        if not open_time or not close_time:
            return 0
        start, end = open_time, close_time
    elif shift_type == "am":
        start, end = am_start, am_end
    elif shift_type == "pm":
        start, end = pm_start, pm_end
    elif shift_type == "custom":
        if not custom_start or not custom_end:
            return 0
        start, end = custom_start, custom_end
    else:
        return 0

    if not start or not end:
        return 0
    return max(0, (parse_time_to_minutes(end) - parse_time_to_minutes(start)) / 60)


def get_shift_time_display(
    shift_type: str,
    custom_start: str | None,
    custom_end: str | None,
    am_start: str,
    am_end: str,
    pm_start: str,
    pm_end: str,
) -> str:
    if shift_type == "full_day":
        return "Full Day"
    if shift_type == "am":
        return f"AM ({am_start[:5]}-{am_end[:5]})"
    if shift_type == "pm":
        return f"PM ({pm_start[:5]}-{pm_end[:5]})"
    if shift_type == "custom":
        if custom_start and custom_end:
            return f"{custom_start[:5]}-{custom_end[:5]}"
        return "Custom"
    return shift_type


def is_valid_time(value) -> bool:
    """True for ``"HH:MM"`` / ``"HH:MM:SS"`` strings within a 24h day."""
    if not isinstance(value, str):
        return False
    parts = value.split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() and len(p) == 2 for p in parts):
        return False
    hours, minutes = int(parts[0]), int(parts[1])
    return hours < 24 and minutes < 60 and (len(parts) == 2 or int(parts[2]) < 60)


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


# ── Week helpers ─────────────────────────────────────────────────────────────


def get_week_start_date(d: date) -> date:
    """Monday on or before ``d``."""
    return d - timedelta(days=d.weekday())


def get_week_days(week_start: date) -> list[date]:
    return [week_start + timedelta(days=i) for i in range(7)]


def format_date_key(d: date) -> str:
    return d.isoformat()


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def format_day_label(d: date) -> str:
    """``"Monday 3rd"``."""
    return f"{d:%A} {_ordinal(d.day)}"


def format_week_range(week_start: date) -> str:
    """``"Jun 3 - Jun 9, 2024"``."""
    week_end = week_start + timedelta(days=6)
    return f"{week_start:%b} {week_start.day} - {week_end:%b} {week_end.day}, {week_end.year}"
