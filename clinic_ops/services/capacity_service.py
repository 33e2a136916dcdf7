"""Patient capacity of a site for one day, from the clinic rooms staffed on the rota."""

from __future__ import annotations

import logging

from sqlalchemy import select

from clinic_ops.context import RotaContext
from clinic_ops.models import db
from clinic_ops.models.rota import RotaShift, RotaWeek
from clinic_ops.models.site import CLINIC_ROOM, Facility, Site
from clinic_ops.services.helpers.coercion import coerce_date
from clinic_ops.services.helpers.scoped_queries import get_scoped
from clinic_ops.services.helpers.store_guard import store_guard
from clinic_ops.services.shift_times import get_week_start_date

logger = logging.getLogger(__name__)

AM_TYPES = {"am", "full_day", "custom"}
PM_TYPES = {"pm", "full_day", "custom"}


def calculate_patient_capacity(ctx: RotaContext, site_id: int, on_date=None) -> dict:
    """Staffed clinic rooms per half-day times the site's per-room capacity.

    Each room counts once per half-day however many shifts it has. Custom
    shifts count towards both halves; on-call shifts and shifts outside a
    clinic room are ignored. All zeros when the week has no rota yet.
    """
    site = get_scoped(Site, site_id, organisation_id=ctx.organisation_id)
    day = coerce_date(on_date, "date") if on_date is not None else ctx.today()

    with store_guard("calculate_patient_capacity", organisation_id=ctx.organisation_id,
                     site_id=site_id):
        rows = db.session.execute(
            select(RotaShift.facility_id, RotaShift.shift_type)
            .join(RotaWeek, RotaShift.rota_week_id == RotaWeek.id)
            .join(Facility, RotaShift.facility_id == Facility.id)
            .where(
                RotaWeek.organisation_id == ctx.organisation_id,
                RotaWeek.site_id == site.id,
                RotaWeek.week_start == get_week_start_date(day),
                RotaShift.shift_date == day,
                RotaShift.is_oncall.is_(False),
                Facility.facility_type == CLINIC_ROOM,
            )
        ).all()

    am_rooms = {facility_id for facility_id, shift_type in rows if shift_type in AM_TYPES}
    pm_rooms = {facility_id for facility_id, shift_type in rows if shift_type in PM_TYPES}
    am_capacity = len(am_rooms) * (site.am_capacity_per_room or 0)
    pm_capacity = len(pm_rooms) * (site.pm_capacity_per_room or 0)

    return {
        "site_id": site.id,
        "date": day.isoformat(),
        "am_rooms": len(am_rooms),
        "pm_rooms": len(pm_rooms),
        "am_capacity": am_capacity,
        "pm_capacity": pm_capacity,
        "total_capacity": am_capacity + pm_capacity,
    }
