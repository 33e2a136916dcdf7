"""
Rota staffing rules engine.

Evaluates one day (or a week of days) of a site's rota and returns the
staffing-rule violations found. Pure functions over plain dicts shaped like
the models' ``to_dict()`` output; nothing here touches the database.

Checks, run in this order for every open day:
    1. on-call coverage for slots 1..3 (organisation-wide on-call records)
    2. empty clinic rooms, AM and PM separately
    3. cross-site staff (home site differs from the site being rostered)
    4. unconfirmed temporary staff

Usage:
    violations = validate_week(week_days, shifts, rooms, hours_by_day,
                               staff, site_id, require_oncall, oncalls)
    [v.to_dict() for v in violations]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum

from clinic_ops.models.rota import ONCALL_SLOT_LABELS, ONCALL_SLOTS
from clinic_ops.services.shift_times import format_date_key, format_day_label

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ViolationType(str, Enum):
    NO_ONCALL = "no_oncall"
    EMPTY_ROOM = "empty_room"
    CROSS_SITE = "cross_site"
    TEMP_NOT_CONFIRMED = "temp_not_confirmed"


@dataclass
class RuleViolation:
    """Single staffing rule violation for one day."""
    type: ViolationType
    severity: Severity
    day: str
    date_key: str
    message: str
    room: str | None = None
    room_id: int | None = None
    slot: str | None = None
    staff_name: str | None = None
    user_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "day": self.day,
            "date_key": self.date_key,
            "room": self.room,
            "room_id": self.room_id,
            "slot": self.slot,
            "staff_name": self.staff_name,
            "user_id": self.user_id,
            "message": self.message,
        }


def _date_key(value) -> str:
    return value if isinstance(value, str) else format_date_key(value)


def _staff_name(shift: Mapping, staff_by_id: Mapping[int, Mapping]) -> str:
    member = staff_by_id.get(shift.get("user_id"))
    if member is not None:
        return f"{member.get('first_name') or ''} {member.get('last_name') or ''}".strip()
    return shift.get("temp_staff_name") or "Unknown"


def _slot_label(shift_type: str) -> str:
    return "Full Day" if shift_type == "full_day" else shift_type.upper()


def validate_day(
    day: date,
    shifts: Iterable[Mapping],
    clinic_rooms: Iterable[Mapping],
    opening_hours: Mapping | None,
    all_staff: Iterable[Mapping],
    current_site_id: int,
    require_oncall: bool,
    oncalls: Iterable[Mapping],
) -> list[RuleViolation]:
    """Violations for one day, in check order then input order.

    A closed day never has violations. Missing opening hours count as open.
    ``require_oncall`` is accepted for configuration parity; the on-call
    coverage check runs whatever its value.
    """
    if opening_hours is not None and opening_hours.get("is_closed"):
        return []

    date_key = format_date_key(day)
    day_label = format_day_label(day)
    day_shifts = [s for s in shifts if _date_key(s["shift_date"]) == date_key]
    rooms = list(clinic_rooms)
    rooms_by_id = {r["id"]: r for r in rooms}
    staff_by_id = {s["id"]: s for s in all_staff}
    results: list[RuleViolation] = []

    # 1. On-call coverage
    day_oncalls = [o for o in oncalls if _date_key(o["oncall_date"]) == date_key]
    for slot in ONCALL_SLOTS:
        covered = any(
            o.get("oncall_slot") == slot and (o.get("user_id") or o.get("temp_staff_name"))
            for o in day_oncalls
        )
        if covered:
            continue
        label = ONCALL_SLOT_LABELS[slot]
        results.append(RuleViolation(
            type=ViolationType.NO_ONCALL,
            severity=Severity.ERROR if slot == 1 else Severity.WARNING,
            day=day_label,
            date_key=date_key,
            slot=label,
            message=f"No {label} assigned for {day_label}",
        ))

    # 2. Empty clinic rooms
    for room in rooms:
        room_shifts = [
            s for s in day_shifts
            if s.get("facility_id") == room["id"] and not s.get("is_oncall")
        ]
        has_am = any(s["shift_type"] in ("am", "full_day") for s in room_shifts)
        has_pm = any(s["shift_type"] in ("pm", "full_day") for s in room_shifts)
        for period, covered in (("AM", has_am), ("PM", has_pm)):
            if covered:
                continue
            results.append(RuleViolation(
                type=ViolationType.EMPTY_ROOM,
                severity=Severity.WARNING,
                day=day_label,
                date_key=date_key,
                room=room["name"],
                room_id=room["id"],
                slot=period,
                message=f"{room['name']} is empty for {period} on {day_label}",
            ))

    # 3. Cross-site staff
    for shift in day_shifts:
        if shift.get("is_oncall") or not shift.get("user_id"):
            continue
        member = staff_by_id.get(shift["user_id"])
        home_site = member.get("primary_site_id") if member else None
        if not home_site or home_site == current_site_id:
            continue
        room = rooms_by_id.get(shift.get("facility_id"))
        name = _staff_name(shift, staff_by_id)
        results.append(RuleViolation(
            type=ViolationType.CROSS_SITE,
            severity=Severity.WARNING,
            day=day_label,
            date_key=date_key,
            room=room["name"] if room else None,
            room_id=room["id"] if room else None,
            slot=shift["shift_type"].upper(),
            staff_name=name,
            user_id=shift["user_id"],
            message=f"{name} is from another site",
        ))

    # 4. Unconfirmed temporary staff
    for shift in day_shifts:
        if not shift.get("is_temp_staff") or shift.get("temp_confirmed"):
            continue
        room = rooms_by_id.get(shift.get("facility_id"))
        name = _staff_name(shift, staff_by_id)
        results.append(RuleViolation(
            type=ViolationType.TEMP_NOT_CONFIRMED,
            severity=Severity.ERROR,
            day=day_label,
            date_key=date_key,
            room=room["name"] if room else None,
            room_id=room["id"] if room else None,
            slot=_slot_label(shift["shift_type"]),
            staff_name=name,
            user_id=shift.get("user_id"),
            message=f"Temp not confirmed: {name}",
        ))

    return results


def validate_week(
    week_days: Iterable[date],
    shifts: Iterable[Mapping],
    clinic_rooms: Iterable[Mapping],
    opening_hours_by_day: Mapping[int, Mapping],
    all_staff: Iterable[Mapping],
    current_site_id: int,
    require_oncall: bool,
    oncalls: Iterable[Mapping],
) -> list[RuleViolation]:
    """Concatenate ``validate_day`` over ``week_days`` in the order given.

    ``opening_hours_by_day`` is keyed Monday-first (0 = Monday).
    """
    shifts = list(shifts)
    clinic_rooms = list(clinic_rooms)
    all_staff = list(all_staff)
    oncalls = list(oncalls)

    results: list[RuleViolation] = []
    for day in week_days:
        results.extend(validate_day(
            day,
            shifts,
            clinic_rooms,
            opening_hours_by_day.get(day.weekday()),
            all_staff,
            current_site_id,
            require_oncall,
            oncalls,
        ))
    logger.debug("validate_week: %d violations over site %s", len(results), current_site_id)
    return results


def staffing_requirements(shifts: Iterable[Mapping], staffing_rules: Iterable[Mapping]) -> list[dict]:
    """Assigned headcount per staffing rule's job title against its limits.

    On-call shifts and shifts without a job title do not count.
    """
    assigned: dict[int, int] = {}
    for shift in shifts:
        job_title_id = shift.get("job_title_id")
        if shift.get("is_oncall") or not job_title_id:
            continue
        assigned[job_title_id] = assigned.get(job_title_id, 0) + 1

    summary = []
    for rule in staffing_rules:
        count = assigned.get(rule["job_title_id"], 0)
        max_staff = rule.get("max_staff")
        summary.append({
            "staffing_rule_id": rule.get("id"),
            "job_title_id": rule["job_title_id"],
            "job_title_name": rule.get("job_title_name"),
            "assigned": count,
            "min_staff": rule["min_staff"],
            "max_staff": max_staff,
            "met": count >= rule["min_staff"],
            "over_max": max_staff is not None and count > max_staff,
        })
    return summary
