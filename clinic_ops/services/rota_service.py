"""
Rota schedule service.

The weekly schedule aggregate for one site: a RotaWeek header, its shifts,
the organisation's on-call records for the same seven days and the day
confirmations.

Rules:
  - organisation and actor are always taken from an explicit RotaContext.
  - db.session.commit() happens only in service modules.
  - Every shift mutation clears the affected day's confirmation, reverts a
    published week to draft and returns the re-read shift list of the week.
  - No overlap or double-booking check on write; the rules engine reports
    staffing problems instead.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from clinic_ops.context import RotaContext
from clinic_ops.core.exceptions import ValidationError
from clinic_ops.models import db
from clinic_ops.models.organisation import StaffProfile
from clinic_ops.models.rota import (
    DEFAULT_PM_START,
    ROTA_STATUSES,
    SHIFT_TYPES,
    DayConfirmation,
    RotaOncall,
    RotaShift,
    RotaWeek,
)
from clinic_ops.models.site import Facility, Site
from clinic_ops.services import rota_config_service
from clinic_ops.services.helpers.coercion import coerce_date, coerce_int, coerce_time
from clinic_ops.services.helpers.scoped_queries import get_scoped
from clinic_ops.services.helpers.store_guard import store_guard
from clinic_ops.services.rota_rules_engine import staffing_requirements, validate_week
from clinic_ops.services.shift_times import (
    calculate_shift_hours,
    format_date_key,
    get_week_days,
    get_week_start_date,
)

logger = logging.getLogger(__name__)

_UPDATABLE_SHIFT_FIELDS = (
    "shift_type",
    "custom_start_time",
    "custom_end_time",
    "is_oncall",
    "oncall_slot",
    "notes",
    "facility_id",
    "is_temp_staff",
    "temp_confirmed",
    "temp_staff_name",
)


# ── Weeks ────────────────────────────────────────────────────────────────────


def load_week(ctx: RotaContext, week_id: int) -> RotaWeek:
    """RotaWeek model scoped to the context's organisation (NotFoundError otherwise)."""
    return get_scoped(RotaWeek, week_id, organisation_id=ctx.organisation_id)


def fetch_or_create_week(ctx: RotaContext, site_id: int, week_start) -> dict:
    """Return the site's RotaWeek for the week containing ``week_start``.

    Created as a draft on first access. Two callers racing to create the
    same week are settled by the (site, week_start) unique constraint: the
    loser rolls back and re-reads the winner's row.
    """
    get_scoped(Site, site_id, organisation_id=ctx.organisation_id)
    monday = get_week_start_date(coerce_date(week_start, "week_start"))

    stmt = select(RotaWeek).where(
        RotaWeek.organisation_id == ctx.organisation_id,
        RotaWeek.site_id == site_id,
        RotaWeek.week_start == monday,
    )
    with store_guard("fetch_or_create_week", organisation_id=ctx.organisation_id, site_id=site_id):
        week = db.session.execute(stmt).scalar_one_or_none()
        if week is not None:
            return week.to_dict()

        week = RotaWeek(
            organisation_id=ctx.organisation_id,
            site_id=site_id,
            week_start=monday,
            status="draft",
            created_by=ctx.actor_id,
        )
        db.session.add(week)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            week = db.session.execute(stmt).scalar_one()
            logger.info("Rota week created concurrently, re-read id=%s", week.id,
                        extra={"organisation_id": ctx.organisation_id, "site_id": site_id})
            return week.to_dict()

    logger.info("Rota week created site_id=%s week_start=%s", site_id, monday,
                extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id})
    return week.to_dict()


def update_week_status(ctx: RotaContext, week_id: int, status: str) -> dict:
    """Set the week's status. No violation gate: publishing is unconditional."""
    if status not in ROTA_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(ROTA_STATUSES))}",
            details={"status": "invalid"},
        )
    week = load_week(ctx, week_id)
    with store_guard("update_week_status", organisation_id=ctx.organisation_id):
        previous = week.status
        week.status = status
        db.session.commit()

    logger.info("Rota week %s status %s -> %s", week.id, previous, status,
                extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id})
    return week.to_dict()


def get_week_schedule(ctx: RotaContext, week_id: int) -> dict:
    """Week header plus shifts, on-calls and day confirmations."""
    from clinic_ops.services import day_confirmation_service, oncall_service

    week = load_week(ctx, week_id)
    return {
        "week": week.to_dict(),
        "shifts": list_shifts(ctx, week.id),
        "oncalls": oncall_service.list_oncalls(ctx, week.week_start),
        "confirmations": day_confirmation_service.list_confirmations(ctx, week.id),
    }


# ── Shifts ───────────────────────────────────────────────────────────────────


def list_shifts(ctx: RotaContext, week_id: int) -> list[dict]:
    """Every shift of the week with staff name, job title and facility name."""
    load_week(ctx, week_id)
    with store_guard("list_shifts", organisation_id=ctx.organisation_id, rota_week_id=week_id):
        shifts = db.session.execute(
            select(RotaShift)
            .where(RotaShift.organisation_id == ctx.organisation_id,
                   RotaShift.rota_week_id == week_id)
            .options(
                selectinload(RotaShift.staff).selectinload(StaffProfile.job_title),
                selectinload(RotaShift.facility),
            )
            .order_by(RotaShift.shift_date, RotaShift.id)
        ).scalars().all()
        return [s.to_dict() for s in shifts]


def _pm_boundary(ctx: RotaContext, week: RotaWeek, override: str | None) -> str:
    if override:
        return coerce_time(override, "pm_boundary")
    rule = rota_config_service.load_rota_rule(ctx, week.site_id)
    if rule is not None and rule.pm_shift_start:
        return rule.pm_shift_start[:5]
    return current_app.config.get("DEFAULT_PM_BOUNDARY", DEFAULT_PM_START)[:5]


def _check_shift_date(week: RotaWeek, shift_date: date) -> None:
    if shift_date not in get_week_days(week.week_start):
        raise ValidationError(
            f"shift_date {shift_date} is outside the week starting {week.week_start}",
            details={"shift_date": "outside week"},
        )


def _check_facility(ctx: RotaContext, week: RotaWeek, facility_id) -> int | None:
    facility_id = coerce_int(facility_id, "facility_id")
    if facility_id is not None:
        get_scoped(Facility, facility_id, organisation_id=ctx.organisation_id,
                   site_id=week.site_id)
    return facility_id


def _apply_time_invariant(shift: RotaShift) -> None:
    """Custom shifts carry both times, other types carry none."""
    if shift.shift_type != "custom":
        shift.custom_start_time = None
        shift.custom_end_time = None
    elif not shift.custom_start_time or not shift.custom_end_time:
        raise ValidationError(
            "custom shifts need a start and end time",
            details={"custom_start_time": "required", "custom_end_time": "required"},
        )
    shift.oncall_slot = (shift.oncall_slot or 1) if shift.is_oncall else None


def _reset_day(week: RotaWeek, shift_date: date) -> None:
    """Drop the day's confirmation and send a published week back to draft."""
    db.session.execute(
        delete(DayConfirmation).where(
            DayConfirmation.rota_week_id == week.id,
            DayConfirmation.shift_date == shift_date,
        )
    )
    if week.status == "published":
        week.status = "draft"
        logger.info("Rota week %s reverted to draft after edit on %s", week.id, shift_date,
                    extra={"organisation_id": week.organisation_id, "rota_week_id": week.id})


def add_shift(
    ctx: RotaContext,
    week_id: int,
    user_id: int | None,
    shift_date,
    shift_type: str,
    custom_start: str | None = None,
    custom_end: str | None = None,
    is_oncall: bool = False,
    facility_id: int | None = None,
    is_temp_staff: bool = False,
    temp_confirmed: bool = False,
    temp_staff_name: str | None = None,
    oncall_slot: int | None = None,
    pm_boundary: str | None = None,
) -> list[dict]:
    """Add a shift and return the week's shifts.

    Custom times are only kept for ``custom`` shifts. A custom shift that
    starts before and ends after the PM boundary is stored as two custom
    shifts split at the boundary and linked to each other.

    Raises:
        NotFoundError: week, staff member or facility outside the organisation.
        ValidationError: unknown shift type, date outside the week, custom
            shift without times, or neither a staff member nor temp staff.
    """
    week = load_week(ctx, week_id)
    if shift_type not in SHIFT_TYPES:
        raise ValidationError(
            f"shift_type must be one of: {', '.join(sorted(SHIFT_TYPES))}",
            details={"shift_type": "invalid"},
        )
    shift_date = coerce_date(shift_date, "shift_date")
    _check_shift_date(week, shift_date)

    user_id = coerce_int(user_id, "user_id")
    if user_id is not None:
        get_scoped(StaffProfile, user_id, organisation_id=ctx.organisation_id)
    elif not is_temp_staff:
        raise ValidationError("user_id is required unless the shift is for temporary staff",
                              details={"user_id": "required"})
    facility_id = _check_facility(ctx, week, facility_id)

    if shift_type == "custom":
        custom_start = coerce_time(custom_start, "custom_start_time", required=True)
        custom_end = coerce_time(custom_end, "custom_end_time", required=True)
    else:
        custom_start = custom_end = None

    common = dict(
        organisation_id=ctx.organisation_id,
        rota_week_id=week.id,
        user_id=user_id,
        shift_date=shift_date,
        is_oncall=bool(is_oncall),
        oncall_slot=(coerce_int(oncall_slot, "oncall_slot") or 1) if is_oncall else None,
        facility_id=facility_id,
        is_temp_staff=bool(is_temp_staff),
        temp_confirmed=bool(temp_confirmed),
        temp_staff_name=temp_staff_name or None,
    )

    with store_guard("add_shift", organisation_id=ctx.organisation_id, rota_week_id=week.id):
        boundary = _pm_boundary(ctx, week, pm_boundary) if shift_type == "custom" else None
        if shift_type == "custom" and custom_start < boundary < custom_end:
            am_half = RotaShift(shift_type="custom", custom_start_time=custom_start,
                                custom_end_time=boundary, **common)
            db.session.add(am_half)
            db.session.flush()
            pm_half = RotaShift(shift_type="custom", custom_start_time=boundary,
                                custom_end_time=custom_end, linked_shift_id=am_half.id, **common)
            db.session.add(pm_half)
            db.session.flush()
            am_half.linked_shift_id = pm_half.id
            created = [am_half, pm_half]
        else:
            shift = RotaShift(shift_type=shift_type, custom_start_time=custom_start,
                              custom_end_time=custom_end, **common)
            db.session.add(shift)
            created = [shift]

        _reset_day(week, shift_date)
        db.session.commit()

    logger.info(
        "Shift added week=%s date=%s type=%s user=%s rows=%d",
        week.id, shift_date, shift_type, user_id, len(created),
        extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id,
               "shift_date": format_date_key(shift_date)},
    )
    return list_shifts(ctx, week.id)


def update_shift(ctx: RotaContext, shift_id: int, fields: dict) -> list[dict]:
    """Partially update a shift and return the week's shifts.

    Unknown keys are ignored. The custom-times rule is applied to the result,
    so switching away from ``custom`` clears the times.
    """
    shift = get_scoped(RotaShift, shift_id, organisation_id=ctx.organisation_id)
    week = shift.rota_week

    changes = {k: fields[k] for k in _UPDATABLE_SHIFT_FIELDS if k in fields}
    if "shift_type" in changes and changes["shift_type"] not in SHIFT_TYPES:
        raise ValidationError(
            f"shift_type must be one of: {', '.join(sorted(SHIFT_TYPES))}",
            details={"shift_type": "invalid"},
        )
    for key in ("custom_start_time", "custom_end_time"):
        if key in changes:
            changes[key] = coerce_time(changes[key], key)
    if "facility_id" in changes:
        changes["facility_id"] = _check_facility(ctx, week, changes["facility_id"])
    if "oncall_slot" in changes:
        changes["oncall_slot"] = coerce_int(changes["oncall_slot"], "oncall_slot")
    for key in ("is_oncall", "is_temp_staff", "temp_confirmed"):
        if key in changes:
            changes[key] = bool(changes[key])

    with store_guard("update_shift", organisation_id=ctx.organisation_id, rota_week_id=week.id):
        for key, value in changes.items():
            setattr(shift, key, value)
        try:
            _apply_time_invariant(shift)
        except ValidationError:
            db.session.rollback()
            raise
        _reset_day(week, shift.shift_date)
        db.session.commit()

    logger.info("Shift %s updated fields=%s", shift_id, sorted(changes),
                extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id})
    return list_shifts(ctx, week.id)


def delete_shift(ctx: RotaContext, shift_id: int) -> list[dict]:
    """Delete a shift, and its linked half when it was split, then re-read the week."""
    shift = get_scoped(RotaShift, shift_id, organisation_id=ctx.organisation_id)
    week = shift.rota_week
    shift_date = shift.shift_date
    linked_id = shift.linked_shift_id

    with store_guard("delete_shift", organisation_id=ctx.organisation_id, rota_week_id=week.id):
        db.session.delete(shift)
        if linked_id:
            db.session.execute(
                delete(RotaShift).where(
                    RotaShift.id == linked_id,
                    RotaShift.organisation_id == ctx.organisation_id,
                )
            )
        _reset_day(week, shift_date)
        db.session.commit()

    logger.info("Shift %s deleted (linked=%s)", shift_id, linked_id,
                extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id})
    return list_shifts(ctx, week.id)


def clear_day(ctx: RotaContext, week_id: int, shift_date) -> list[dict]:
    """Delete every shift of one day of the week."""
    week = load_week(ctx, week_id)
    shift_date = coerce_date(shift_date, "shift_date")

    with store_guard("clear_day", organisation_id=ctx.organisation_id, rota_week_id=week.id):
        result = db.session.execute(
            delete(RotaShift).where(
                RotaShift.organisation_id == ctx.organisation_id,
                RotaShift.rota_week_id == week.id,
                RotaShift.shift_date == shift_date,
            )
        )
        _reset_day(week, shift_date)
        db.session.commit()

    logger.info("Cleared %d shifts week=%s date=%s", result.rowcount, week.id, shift_date,
                extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id})
    return list_shifts(ctx, week.id)


# ── Derived views ────────────────────────────────────────────────────────────


def staff_scheduled_hours(ctx: RotaContext, week_id: int) -> list[dict]:
    """Scheduled hours per staff member over the week.

    ``full_day`` shifts use the site's opening hours for that weekday;
    ``am``/``pm`` use the site's rota rule boundaries (defaults when the
    site has none). Temp shifts without a staff member are not counted.
    """
    week = load_week(ctx, week_id)
    site = week.site
    hours_by_day = site.hours_by_day()
    bounds = rota_config_service.shift_boundaries(
        rota_config_service.load_rota_rule(ctx, week.site_id)
    )

    totals: dict[int, dict] = {}
    for shift in list_shifts(ctx, week.id):
        if not shift["user_id"]:
            continue
        day_hours = hours_by_day.get(date.fromisoformat(shift["shift_date"]).weekday())
        hours = calculate_shift_hours(
            shift["shift_type"],
            shift["custom_start_time"],
            shift["custom_end_time"],
            day_hours.open_time if day_hours and not day_hours.is_closed else None,
            day_hours.close_time if day_hours and not day_hours.is_closed else None,
            bounds["am_shift_start"],
            bounds["am_shift_end"],
            bounds["pm_shift_start"],
            bounds["pm_shift_end"],
        )
        entry = totals.setdefault(shift["user_id"], {
            "user_id": shift["user_id"],
            "user_name": shift["user_name"],
            "scheduled_hours": 0.0,
        })
        entry["scheduled_hours"] += hours

    if totals:
        staff = db.session.execute(
            select(StaffProfile).where(StaffProfile.id.in_(totals))
        ).scalars().all()
        for member in staff:
            totals[member.id]["contracted_hours"] = member.contracted_hours

    return [totals[k] for k in sorted(totals)]


def _rule_inputs(ctx: RotaContext, week: RotaWeek) -> dict:
    site = week.site
    week_days = get_week_days(week.week_start)
    oncalls = db.session.execute(
        select(RotaOncall).where(
            RotaOncall.organisation_id == ctx.organisation_id,
            RotaOncall.oncall_date >= week_days[0],
            RotaOncall.oncall_date <= week_days[-1],
        ).order_by(RotaOncall.oncall_date, RotaOncall.oncall_slot)
    ).scalars().all()
    staff = db.session.execute(
        select(StaffProfile).where(StaffProfile.organisation_id == ctx.organisation_id)
    ).scalars().all()
    return {
        "week_days": week_days,
        "clinic_rooms": [r.to_dict() for r in site.clinic_rooms()],
        "opening_hours_by_day": {d: h.to_dict() for d, h in site.hours_by_day().items()},
        "all_staff": [s.to_dict() for s in staff],
        "oncalls": [o.to_dict() for o in oncalls],
    }


def validate_week_schedule(ctx: RotaContext, week_id: int) -> list[dict]:
    """Run the staffing rules engine over a stored week."""
    week = load_week(ctx, week_id)
    with store_guard("validate_week_schedule", organisation_id=ctx.organisation_id,
                     rota_week_id=week.id):
        rule = rota_config_service.load_rota_rule(ctx, week.site_id)
        inputs = _rule_inputs(ctx, week)
        violations = validate_week(
            inputs["week_days"],
            list_shifts(ctx, week.id),
            inputs["clinic_rooms"],
            inputs["opening_hours_by_day"],
            inputs["all_staff"],
            week.site_id,
            bool(rule and rule.require_oncall),
            inputs["oncalls"],
        )
    return [v.to_dict() for v in violations]


def staffing_summary(ctx: RotaContext, week_id: int) -> list[dict]:
    """Per-day staffing headcount against the site's staffing rules."""
    week = load_week(ctx, week_id)
    rule = rota_config_service.load_rota_rule(ctx, week.site_id)
    rules = [r.to_dict() for r in rule.staffing_rules] if rule else []
    shifts = list_shifts(ctx, week.id)

    summary = []
    for day in get_week_days(week.week_start):
        key = format_date_key(day)
        day_shifts = [s for s in shifts if s["shift_date"] == key]
        summary.append({"date": key, "requirements": staffing_requirements(day_shifts, rules)})
    return summary
