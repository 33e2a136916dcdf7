"""
Day confirmation tracker.

Records that a day of a rota week was reviewed, optionally accepting the
detected violations as overrides. Confirmations are upserted per
(week, date); overrides are an append-only audit trail.

Known gap, kept on purpose: the confirmation upsert and the override inserts
are two separate commits. If the second fails the day stays confirmed
without its overrides and the caller gets a StoreError.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select

from clinic_ops.context import RotaContext
from clinic_ops.core.exceptions import ValidationError
from clinic_ops.models import db
from clinic_ops.models.rota import CONFIRMATION_STATUSES, DayConfirmation, RuleOverride
from clinic_ops.services.helpers.coercion import coerce_date, coerce_int
from clinic_ops.services.helpers.scoped_queries import require_actor, upsert_by_key
from clinic_ops.services.helpers.store_guard import store_guard
from clinic_ops.services.rota_service import load_week

logger = logging.getLogger(__name__)


def _override_rows(ctx: RotaContext, week_id: int, shift_date, overrides) -> list[RuleOverride]:
    rows = []
    for i, item in enumerate(overrides):
        rule_type = (item.get("rule_type") or "").strip()
        description = (item.get("rule_description") or "").strip()
        reason = (item.get("reason") or "").strip()
        if not rule_type or not description or not reason:
            raise ValidationError(
                "each override needs rule_type, rule_description and reason",
                details={f"overrides[{i}]": "incomplete"},
            )
        rows.append(RuleOverride(
            organisation_id=ctx.organisation_id,
            rota_week_id=week_id,
            overridden_by=ctx.actor_id,
            rule_type=rule_type,
            rule_description=description,
            reason=reason,
            shift_date=coerce_date(item["shift_date"], "shift_date") if item.get("shift_date") else shift_date,
            facility_id=coerce_int(item.get("facility_id"), "facility_id"),
            created_at=ctx.now(),
        ))
    return rows


def confirm_day(ctx: RotaContext, week_id: int, shift_date, status: str,
                overrides: list[dict] | None = None) -> dict:
    """Confirm a day; re-confirming overwrites the previous confirmation.

    Returns the confirmation dict with the overrides recorded by this call.
    """
    week = load_week(ctx, week_id)
    day = coerce_date(shift_date, "shift_date")
    if status not in CONFIRMATION_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(CONFIRMATION_STATUSES))}",
            details={"status": "invalid"},
        )
    require_actor(ctx)
    rows = _override_rows(ctx, week.id, day, overrides or [])

    log_extra = {"organisation_id": ctx.organisation_id, "rota_week_id": week.id,
                 "shift_date": day.isoformat()}
    with store_guard("confirm_day", **log_extra):
        confirmation, _ = upsert_by_key(
            DayConfirmation,
            {"rota_week_id": week.id, "shift_date": day},
            {"organisation_id": ctx.organisation_id, "status": status,
             "confirmed_by": ctx.actor_id, "confirmed_at": ctx.now()},
        )
        db.session.commit()

    if rows:
        with store_guard("confirm_day.overrides", **log_extra):
            db.session.add_all(rows)
            db.session.commit()

    logger.info("Day confirmed week=%s date=%s status=%s overrides=%d",
                week.id, day, status, len(rows), extra=log_extra)
    result = confirmation.to_dict()
    result["overrides"] = [r.to_dict() for r in rows]
    return result


def reset_day_confirmation(ctx: RotaContext, week_id: int, shift_date) -> int:
    """Delete the day's confirmation. Recorded overrides are kept."""
    week = load_week(ctx, week_id)
    day = coerce_date(shift_date, "shift_date")
    with store_guard("reset_day_confirmation", organisation_id=ctx.organisation_id):
        result = db.session.execute(
            delete(DayConfirmation).where(
                DayConfirmation.rota_week_id == week.id,
                DayConfirmation.shift_date == day,
            )
        )
        db.session.commit()
    logger.info("Day confirmation reset week=%s date=%s", week.id, day,
                extra={"organisation_id": ctx.organisation_id, "rota_week_id": week.id})
    return result.rowcount


def list_confirmations(ctx: RotaContext, week_id: int) -> list[dict]:
    week = load_week(ctx, week_id)
    with store_guard("list_confirmations", organisation_id=ctx.organisation_id):
        rows = db.session.execute(
            select(DayConfirmation)
            .where(DayConfirmation.rota_week_id == week.id)
            .order_by(DayConfirmation.shift_date)
        ).scalars().all()
        return [c.to_dict() for c in rows]


def get_confirmation_status(confirmations: list[dict], shift_date) -> str | None:
    """Status of ``shift_date`` within an already fetched confirmation list."""
    key = coerce_date(shift_date, "shift_date").isoformat()
    for confirmation in confirmations:
        if confirmation["shift_date"] == key:
            return confirmation["status"]
    return None


def list_overrides(ctx: RotaContext, week_id: int) -> list[dict]:
    """Override audit trail of the week, newest first."""
    week = load_week(ctx, week_id)
    with store_guard("list_overrides", organisation_id=ctx.organisation_id):
        rows = db.session.execute(
            select(RuleOverride)
            .where(RuleOverride.rota_week_id == week.id)
            .order_by(RuleOverride.created_at.desc(), RuleOverride.id.desc())
        ).scalars().all()
        return [r.to_dict() for r in rows]
