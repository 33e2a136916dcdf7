"""
Recurring task due-date calculator.

A workflow task has exactly one current due date at any evaluation instant,
computed from ``(initial_due_date, pattern, interval_days, today)``.
Occurrences are derived here and never stored.

Usage:
    current = calculate_current_due_date(date(2024, 1, 1), "weekly", None, today)
    eta = calculate_eta(current, today)
    format_eta(eta.eta, eta.is_overdue, eta.is_today)   # "Overdue by 2 days"
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta


def add_months(d: date, months: int) -> date:
    """Same day-of-month ``months`` later, clamped to the month's last day."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _interval(interval_days) -> int:
    try:
        days = int(interval_days or 0)
    except (TypeError, ValueError):
        return 1
    return days if days > 0 else 1


def get_next_due_date(d: date, pattern: str, interval_days: int | None = None) -> date:
    if pattern == "weekly":
        return d + timedelta(weeks=1)
    if pattern == "monthly":
        return add_months(d, 1)
    if pattern == "custom":
        return d + timedelta(days=_interval(interval_days))
    # daily, and anything unrecognised
    return d + timedelta(days=1)


def calculate_current_due_date(
    initial_due_date: date,
    pattern: str,
    interval_days: int | None,
    today: date,
) -> date:
    """Current due date of a recurring task as seen on ``today``.

    A task due today or later is returned unchanged. Otherwise the walk
    stops at the first occurrence on or after ``today``: an occurrence
    landing exactly on today wins, else the most recent missed occurrence
    is returned so the task shows as overdue.
    """
    if initial_due_date >= today:
        return initial_due_date

    current = initial_due_date
    while True:
        candidate = get_next_due_date(current, pattern, interval_days)
        if candidate == today:
            return candidate
        if candidate > today:
            return current
        current = candidate


@dataclass(frozen=True)
class Eta:
    eta: int
    is_overdue: bool
    is_today: bool

    def to_dict(self) -> dict:
        return {"eta": self.eta, "is_overdue": self.is_overdue, "is_today": self.is_today}


def calculate_eta(due_date: date, today: date) -> Eta:
    """Signed days until ``due_date``; negative means overdue."""
    eta = (due_date - today).days
    return Eta(eta=eta, is_overdue=eta < 0, is_today=eta == 0)


def format_eta(eta: int, is_overdue: bool, is_today: bool) -> str:
    if is_today:
        return "Due today"
    if is_overdue:
        days = abs(eta)
        return f"Overdue by {days} day{'s' if days != 1 else ''}"
    return f"In {eta} day{'s' if eta != 1 else ''}"


def expand_task_occurrences(
    initial_due_date: date,
    pattern: str,
    interval_days: int | None,
    window_days: int,
    today: date,
) -> list[date]:
    """Current due date plus every later occurrence inside the window.

    The window runs from today through ``today + window_days - 1``. An
    overdue current due date is always included; a current due date past
    the window yields nothing.
    """
    window_end = today + timedelta(days=max(window_days, 1) - 1)
    current = calculate_current_due_date(initial_due_date, pattern, interval_days, today)

    occurrences = []
    while current <= window_end:
        occurrences.append(current)
        current = get_next_due_date(current, pattern, interval_days)
    return occurrences
