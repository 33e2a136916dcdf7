"""
Rota rule configuration service.

Per-site AM/PM shift boundaries, the on-call requirement flag and staffing
minimums per job title.

Rules:
  - organisation comes from the RotaContext, never from Flask globals.
  - db.session.commit() happens only in service modules.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from clinic_ops.context import RotaContext
from clinic_ops.core.exceptions import ConflictError, ValidationError
from clinic_ops.models import db
from clinic_ops.models.organisation import JobTitle
from clinic_ops.models.rota import (
    DEFAULT_AM_END,
    DEFAULT_AM_START,
    DEFAULT_PM_END,
    DEFAULT_PM_START,
    RotaRule,
    StaffingRule,
)
from clinic_ops.models.site import Site
from clinic_ops.services.helpers.coercion import coerce_int, coerce_time
from clinic_ops.services.helpers.scoped_queries import get_scoped
from clinic_ops.services.helpers.store_guard import store_guard

logger = logging.getLogger(__name__)

_TIME_FIELDS = ("am_shift_start", "am_shift_end", "pm_shift_start", "pm_shift_end")


def load_rota_rule(ctx: RotaContext, site_id: int) -> RotaRule | None:
    """The site's RotaRule model (staffing rules eager-loaded), or None."""
    return db.session.execute(
        select(RotaRule)
        .where(RotaRule.organisation_id == ctx.organisation_id, RotaRule.site_id == site_id)
        .options(selectinload(RotaRule.staffing_rules).selectinload(StaffingRule.job_title))
    ).scalar_one_or_none()


def shift_boundaries(rule: RotaRule | None) -> dict:
    """AM/PM start/end times of a rule, falling back to the defaults."""
    if rule is None:
        return {
            "am_shift_start": DEFAULT_AM_START,
            "am_shift_end": DEFAULT_AM_END,
            "pm_shift_start": DEFAULT_PM_START,
            "pm_shift_end": DEFAULT_PM_END,
        }
    return {
        "am_shift_start": rule.am_shift_start or DEFAULT_AM_START,
        "am_shift_end": rule.am_shift_end or DEFAULT_AM_END,
        "pm_shift_start": rule.pm_shift_start or DEFAULT_PM_START,
        "pm_shift_end": rule.pm_shift_end or DEFAULT_PM_END,
    }


def get_rota_rule(ctx: RotaContext, site_id: int) -> dict | None:
    get_scoped(Site, site_id, organisation_id=ctx.organisation_id)
    with store_guard("get_rota_rule", organisation_id=ctx.organisation_id, site_id=site_id):
        rule = load_rota_rule(ctx, site_id)
        return rule.to_dict(include_staffing=True) if rule else None


def save_rota_rule(ctx: RotaContext, site_id: int, data: dict) -> dict:
    """Create or update the site's rota rule.

    A new rule starts from 09:00-13:00 / 13:00-18:00 with on-call not
    required; only the keys present in ``data`` are changed.

    Raises:
        NotFoundError: site not in the organisation.
        ValidationError: a boundary is not an ``HH:MM`` time.
    """
    get_scoped(Site, site_id, organisation_id=ctx.organisation_id)
    times = {f: coerce_time(data[f], f, required=True) for f in _TIME_FIELDS if f in data}

    with store_guard("save_rota_rule", organisation_id=ctx.organisation_id, site_id=site_id):
        rule = load_rota_rule(ctx, site_id)
        is_new = rule is None
        if is_new:
            rule = RotaRule(
                organisation_id=ctx.organisation_id,
                site_id=site_id,
                require_oncall=False,
                **shift_boundaries(None),
            )
            db.session.add(rule)

        for field, value in times.items():
            setattr(rule, field, value)
        if "require_oncall" in data:
            rule.require_oncall = bool(data["require_oncall"])

        db.session.commit()

    logger.info(
        "Rota rule %s site_id=%s", "created" if is_new else "updated", site_id,
        extra={"organisation_id": ctx.organisation_id, "site_id": site_id},
    )
    return rule.to_dict(include_staffing=True)


def _validate_limits(min_staff, max_staff) -> tuple[int, int | None]:
    min_staff = coerce_int(min_staff, "min_staff", minimum=0, allow_none=False)
    max_staff = coerce_int(max_staff, "max_staff", minimum=0)
    if max_staff is not None and max_staff < min_staff:
        raise ValidationError("max_staff must be >= min_staff",
                              details={"max_staff": "less than min_staff"})
    return min_staff, max_staff


def add_staffing_rule(
    ctx: RotaContext,
    rota_rule_id: int,
    job_title_id: int,
    min_staff: int = 0,
    max_staff: int | None = None,
) -> dict:
    """Add a staffing minimum for a job title.

    Raises:
        ConflictError: the rule already has a staffing rule for the job title.
        ValidationError: negative minimum or maximum below minimum.
    """
    rule = get_scoped(RotaRule, rota_rule_id, organisation_id=ctx.organisation_id)
    get_scoped(JobTitle, job_title_id, organisation_id=ctx.organisation_id)
    min_staff, max_staff = _validate_limits(min_staff, max_staff)

    with store_guard("add_staffing_rule", organisation_id=ctx.organisation_id):
        staffing = StaffingRule(
            organisation_id=ctx.organisation_id,
            rota_rule_id=rule.id,
            job_title_id=job_title_id,
            min_staff=min_staff,
            max_staff=max_staff,
        )
        db.session.add(staffing)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("StaffingRule", "job_title_id", str(job_title_id))
        db.session.commit()

    logger.info("Staffing rule added rota_rule_id=%s job_title_id=%s min=%s",
                rule.id, job_title_id, min_staff,
                extra={"organisation_id": ctx.organisation_id})
    return staffing.to_dict()


def update_staffing_rule(ctx: RotaContext, staffing_rule_id: int, data: dict) -> dict:
    staffing = get_scoped(StaffingRule, staffing_rule_id, organisation_id=ctx.organisation_id)
    min_staff, max_staff = _validate_limits(
        data.get("min_staff", staffing.min_staff),
        data.get("max_staff", staffing.max_staff),
    )
    with store_guard("update_staffing_rule", organisation_id=ctx.organisation_id):
        staffing.min_staff = min_staff
        staffing.max_staff = max_staff
        db.session.commit()
    return staffing.to_dict()


def delete_staffing_rule(ctx: RotaContext, staffing_rule_id: int) -> None:
    staffing = get_scoped(StaffingRule, staffing_rule_id, organisation_id=ctx.organisation_id)
    with store_guard("delete_staffing_rule", organisation_id=ctx.organisation_id):
        db.session.delete(staffing)
        db.session.commit()
    logger.info("Staffing rule deleted id=%s", staffing_rule_id,
                extra={"organisation_id": ctx.organisation_id})
