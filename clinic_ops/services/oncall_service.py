"""
Organisation-wide on-call assignments.

One record per (organisation, date, slot); slot 1 is the on-call manager,
slots 2 and 3 the on-duty doctors. Adding to an occupied slot replaces the
assignment in place.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import selectinload

from clinic_ops.context import RotaContext
from clinic_ops.core.exceptions import StoreError, ValidationError
from clinic_ops.models import db
from clinic_ops.models.organisation import StaffProfile
from clinic_ops.models.rota import ONCALL_PERIODS, ONCALL_SLOTS, RotaOncall
from clinic_ops.services.helpers.coercion import coerce_date, coerce_int, coerce_time
from clinic_ops.services.helpers.scoped_queries import get_scoped, upsert_by_key
from clinic_ops.services.helpers.store_guard import store_guard
from clinic_ops.services.shift_times import get_week_start_date

logger = logging.getLogger(__name__)


def _check_slot(slot) -> int:
    slot = coerce_int(slot, "oncall_slot", allow_none=False)
    if slot not in ONCALL_SLOTS:
        raise ValidationError("oncall_slot must be 1, 2 or 3", details={"oncall_slot": "invalid"})
    return slot


def _check_period(period) -> str:
    if period not in ONCALL_PERIODS:
        raise ValidationError(
            f"shift_period must be one of: {', '.join(sorted(ONCALL_PERIODS))}",
            details={"shift_period": "invalid"},
        )
    return period


def _select_for_dates(ctx: RotaContext, first, last):
    return (
        select(RotaOncall)
        .where(
            RotaOncall.organisation_id == ctx.organisation_id,
            RotaOncall.oncall_date >= first,
            RotaOncall.oncall_date <= last,
        )
        .options(selectinload(RotaOncall.staff).selectinload(StaffProfile.job_title))
        .order_by(RotaOncall.oncall_date, RotaOncall.oncall_slot)
    )


def list_oncalls(ctx: RotaContext, week_start) -> list[dict]:
    """On-call records for the seven days of the week containing ``week_start``."""
    monday = get_week_start_date(coerce_date(week_start, "week_start"))
    with store_guard("list_oncalls", organisation_id=ctx.organisation_id):
        rows = db.session.execute(
            _select_for_dates(ctx, monday, monday + timedelta(days=6))
        ).scalars().all()
        return [o.to_dict() for o in rows]


def list_oncalls_for_day(ctx: RotaContext, oncall_date) -> list[dict]:
    day = coerce_date(oncall_date, "oncall_date")
    with store_guard("list_oncalls_for_day", organisation_id=ctx.organisation_id):
        rows = db.session.execute(_select_for_dates(ctx, day, day)).scalars().all()
        return [o.to_dict() for o in rows]


def add_oncall(
    ctx: RotaContext,
    oncall_date,
    oncall_slot: int,
    shift_period: str = "am",
    user_id: int | None = None,
    is_temp_staff: bool = False,
    temp_confirmed: bool = False,
    temp_staff_name: str | None = None,
    custom_start_time: str | None = None,
    custom_end_time: str | None = None,
) -> dict:
    """Assign a slot for a day, replacing any existing assignment of that slot.

    Raises:
        ValidationError: bad slot/period, or neither a staff member nor a
            temp name.
        NotFoundError: staff member outside the organisation.
    """
    day = coerce_date(oncall_date, "oncall_date")
    slot = _check_slot(oncall_slot)
    period = _check_period(shift_period)
    user_id = coerce_int(user_id, "user_id")
    if user_id is not None:
        get_scoped(StaffProfile, user_id, organisation_id=ctx.organisation_id)
    elif not temp_staff_name:
        raise ValidationError("user_id or temp_staff_name is required",
                              details={"user_id": "required"})

    values = {
        "shift_period": period,
        "user_id": user_id,
        "is_temp_staff": bool(is_temp_staff),
        "temp_confirmed": bool(temp_confirmed),
        "temp_staff_name": temp_staff_name or None,
        "custom_start_time": coerce_time(custom_start_time, "custom_start_time"),
        "custom_end_time": coerce_time(custom_end_time, "custom_end_time"),
    }
    key = {"organisation_id": ctx.organisation_id, "oncall_date": day, "oncall_slot": slot}

    with store_guard("add_oncall", organisation_id=ctx.organisation_id):
        oncall, created = upsert_by_key(RotaOncall, key, values)
        db.session.commit()

    logger.info("On-call %s date=%s slot=%s user=%s",
                "assigned" if created else "reassigned", day, slot, user_id,
                extra={"organisation_id": ctx.organisation_id, "shift_date": day.isoformat()})
    return oncall.to_dict()


def delete_oncall(ctx: RotaContext, oncall_date, oncall_slot: int,
                  shift_period: str | None = None) -> int:
    """Remove a slot's assignment for a day; returns rows deleted."""
    day = coerce_date(oncall_date, "oncall_date")
    slot = _check_slot(oncall_slot)
    stmt = delete(RotaOncall).where(
        RotaOncall.organisation_id == ctx.organisation_id,
        RotaOncall.oncall_date == day,
        RotaOncall.oncall_slot == slot,
    )
    if shift_period:
        stmt = stmt.where(RotaOncall.shift_period == _check_period(shift_period))

    with store_guard("delete_oncall", organisation_id=ctx.organisation_id):
        result = db.session.execute(stmt)
        db.session.commit()

    logger.info("On-call removed date=%s slot=%s rows=%d", day, slot, result.rowcount,
                extra={"organisation_id": ctx.organisation_id})
    return result.rowcount


def delete_oncalls_for_day(ctx: RotaContext, oncall_date) -> int:
    day = coerce_date(oncall_date, "oncall_date")
    with store_guard("delete_oncalls_for_day", organisation_id=ctx.organisation_id):
        result = db.session.execute(
            delete(RotaOncall).where(
                RotaOncall.organisation_id == ctx.organisation_id,
                RotaOncall.oncall_date == day,
            )
        )
        db.session.commit()
    return result.rowcount


def copy_oncalls_from_day(ctx: RotaContext, source_date, target_date) -> int:
    """Replace the target day's on-calls with copies of the source day's.

    Destructive then additive: the target day is cleared first, then each
    source record is copied with its own commit. A copy that fails is logged
    and not counted; earlier copies stay. Returns the number copied, 0
    without touching the target when the source day is empty.
    """
    source = coerce_date(source_date, "source_date")
    target = coerce_date(target_date, "target_date")
    source_oncalls = list_oncalls_for_day(ctx, source)
    if not source_oncalls:
        return 0

    delete_oncalls_for_day(ctx, target)

    copied = 0
    for oc in source_oncalls:
        try:
            add_oncall(
                ctx,
                target,
                oc["oncall_slot"],
                oc["shift_period"],
                oc["user_id"],
                oc["is_temp_staff"],
                oc["temp_confirmed"],
                oc["temp_staff_name"],
                oc["custom_start_time"],
                oc["custom_end_time"],
            )
        except (StoreError, ValidationError) as exc:
            logger.warning("On-call copy failed slot=%s %s -> %s: %s",
                           oc["oncall_slot"], source, target, exc,
                           extra={"organisation_id": ctx.organisation_id})
            continue
        copied += 1

    logger.info("Copied %d/%d on-calls %s -> %s", copied, len(source_oncalls), source, target,
                extra={"organisation_id": ctx.organisation_id})
    return copied
