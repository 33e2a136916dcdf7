"""
Rota domain models.

Models:
    - RotaWeek: one week's schedule for one site (unique per site + week_start)
    - RotaShift: a single staff assignment to a date within a RotaWeek
    - RotaOncall: organisation-wide on-call slot per day (unique per org + date + slot)
    - RotaRule: per-site AM/PM boundaries and on-call requirement
    - StaffingRule: min/max headcount per job title within a RotaRule
    - DayConfirmation: a reviewed day (unique per week + date, upserted)
    - RuleOverride: append-only record of a violation knowingly accepted
"""

from clinic_ops.models import db
from clinic_ops.models.base import OrganisationModel, iso, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

ROTA_STATUSES = {"draft", "published", "archived"}
SHIFT_TYPES = {"am", "pm", "full_day", "custom"}
ONCALL_PERIODS = {"am", "pm", "full_day"}
ONCALL_SLOTS = (1, 2, 3)
ONCALL_SLOT_LABELS = {1: "On Call Manager", 2: "On Duty Doctor 1", 3: "On Duty Doctor 2"}
CONFIRMATION_STATUSES = {"confirmed", "confirmed_with_overrides"}

DEFAULT_AM_START = "09:00"
DEFAULT_AM_END = "13:00"
DEFAULT_PM_START = "13:00"
DEFAULT_PM_END = "18:00"


class RotaWeek(OrganisationModel):
    __tablename__ = "rota_weeks"
    __table_args__ = (
        db.UniqueConstraint("site_id", "week_start", name="uq_rota_week_site_start"),
    )

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    week_start = db.Column(db.Date, nullable=False, comment="Monday of the week")
    status = db.Column(db.String(20), default="draft", nullable=False,
                       comment="draft, published, archived")
    created_by = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                           nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    site = db.relationship("Site")
    shifts = db.relationship("RotaShift", back_populates="rota_week", lazy="dynamic",
                             cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "site_id": self.site_id,
            "week_start": iso(self.week_start),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<RotaWeek site={self.site_id} {self.week_start} [{self.status}]>"


class RotaShift(OrganisationModel):
    """
    One staff assignment on one date.

    ``user_id`` is NULL for external temporary staff, who are named by
    ``temp_staff_name`` instead. ``facility_id`` NULL means the whole site.
    A custom shift spanning the AM/PM boundary is stored as two rows that
    point at each other through ``linked_shift_id``.
    """

    __tablename__ = "rota_shifts"
    __table_args__ = (
        db.Index("ix_rota_shifts_week_date", "rota_week_id", "shift_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rota_week_id = db.Column(db.Integer, db.ForeignKey("rota_weeks.id", ondelete="CASCADE"),
                             nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                        nullable=True, index=True)
    shift_date = db.Column(db.Date, nullable=False)
    shift_type = db.Column(db.String(20), nullable=False, comment="am, pm, full_day, custom")
    custom_start_time = db.Column(db.String(8), nullable=True)
    custom_end_time = db.Column(db.String(8), nullable=True)
    is_oncall = db.Column(db.Boolean, default=False, nullable=False)
    oncall_slot = db.Column(db.Integer, nullable=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id", ondelete="SET NULL"),
                            nullable=True)
    is_temp_staff = db.Column(db.Boolean, default=False, nullable=False)
    temp_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    temp_staff_name = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    linked_shift_id = db.Column(db.Integer, nullable=True,
                                comment="Other half of a custom shift split at the PM boundary")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    rota_week = db.relationship("RotaWeek", back_populates="shifts")
    staff = db.relationship("StaffProfile")
    facility = db.relationship("Facility")

    @property
    def user_name(self) -> str:
        if self.is_temp_staff and not self.user_id and self.temp_staff_name:
            return self.temp_staff_name
        return self.staff.display_name if self.staff else "Unknown"

    def to_dict(self):
        job_title = self.staff.job_title if self.staff else None
        return {
            "id": self.id,
            "rota_week_id": self.rota_week_id,
            "user_id": self.user_id,
            "shift_date": iso(self.shift_date),
            "shift_type": self.shift_type,
            "custom_start_time": self.custom_start_time,
            "custom_end_time": self.custom_end_time,
            "is_oncall": self.is_oncall,
            "oncall_slot": self.oncall_slot,
            "facility_id": self.facility_id,
            "facility_name": self.facility.name if self.facility else None,
            "is_temp_staff": self.is_temp_staff,
            "temp_confirmed": self.temp_confirmed,
            "temp_staff_name": self.temp_staff_name,
            "notes": self.notes,
            "linked_shift_id": self.linked_shift_id,
            "user_name": self.user_name,
            "job_title_id": job_title.id if job_title else None,
            "job_title_name": job_title.name if job_title else "",
        }

    def __repr__(self):
        return f"<RotaShift {self.id} {self.shift_date} {self.shift_type} user={self.user_id}>"


class RotaOncall(OrganisationModel):
    """
    On-call cover for one slot on one day, organisation-wide.

    Slot 1 is the on-call manager, slots 2 and 3 are doctors. Not tied to a
    site or a room, which is why it lives outside RotaShift.
    """

    __tablename__ = "rota_oncalls"
    __table_args__ = (
        db.UniqueConstraint("organisation_id", "oncall_date", "oncall_slot",
                            name="uq_rota_oncall_org_date_slot"),
    )

    id = db.Column(db.Integer, primary_key=True)
    oncall_date = db.Column(db.Date, nullable=False, index=True)
    oncall_slot = db.Column(db.Integer, nullable=False, comment="1 = manager, 2/3 = doctors")
    shift_period = db.Column(db.String(20), default="am", nullable=False,
                             comment="am, pm, full_day")
    user_id = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                        nullable=True)
    is_temp_staff = db.Column(db.Boolean, default=False, nullable=False)
    temp_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    temp_staff_name = db.Column(db.String(200), nullable=True)
    custom_start_time = db.Column(db.String(8), nullable=True)
    custom_end_time = db.Column(db.String(8), nullable=True)

    staff = db.relationship("StaffProfile")

    @property
    def user_name(self):
        if self.is_temp_staff and not self.user_id:
            return self.temp_staff_name
        return self.staff.full_name if self.staff else None

    def to_dict(self):
        job_title = self.staff.job_title if self.staff else None
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "oncall_date": iso(self.oncall_date),
            "oncall_slot": self.oncall_slot,
            "shift_period": self.shift_period,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "job_title_name": job_title.name if job_title else None,
            "is_temp_staff": self.is_temp_staff,
            "temp_staff_name": self.temp_staff_name,
            "temp_confirmed": self.temp_confirmed,
            "custom_start_time": self.custom_start_time,
            "custom_end_time": self.custom_end_time,
        }

    def __repr__(self):
        return f"<RotaOncall {self.oncall_date} slot={self.oncall_slot} user={self.user_id}>"


class RotaRule(OrganisationModel):
    __tablename__ = "rota_rules"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
                        nullable=False, unique=True)
    am_shift_start = db.Column(db.String(8), default=DEFAULT_AM_START, nullable=False)
    am_shift_end = db.Column(db.String(8), default=DEFAULT_AM_END, nullable=False)
    pm_shift_start = db.Column(db.String(8), default=DEFAULT_PM_START, nullable=False)
    pm_shift_end = db.Column(db.String(8), default=DEFAULT_PM_END, nullable=False)
    require_oncall = db.Column(db.Boolean, default=False, nullable=False)

    staffing_rules = db.relationship("StaffingRule", back_populates="rota_rule",
                                     cascade="all, delete-orphan", order_by="StaffingRule.id")

    def to_dict(self, include_staffing=False):
        d = {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "site_id": self.site_id,
            "am_shift_start": self.am_shift_start,
            "am_shift_end": self.am_shift_end,
            "pm_shift_start": self.pm_shift_start,
            "pm_shift_end": self.pm_shift_end,
            "require_oncall": self.require_oncall,
        }
        if include_staffing:
            d["staffing_rules"] = [r.to_dict() for r in self.staffing_rules]
        return d


class StaffingRule(OrganisationModel):
    __tablename__ = "rota_staffing_rules"
    __table_args__ = (
        db.UniqueConstraint("rota_rule_id", "job_title_id", name="uq_staffing_rule_job_title"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rota_rule_id = db.Column(db.Integer, db.ForeignKey("rota_rules.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    job_title_id = db.Column(db.Integer, db.ForeignKey("job_titles.id", ondelete="CASCADE"),
                             nullable=False)
    min_staff = db.Column(db.Integer, default=0, nullable=False)
    max_staff = db.Column(db.Integer, nullable=True)

    rota_rule = db.relationship("RotaRule", back_populates="staffing_rules")
    job_title = db.relationship("JobTitle")

    def to_dict(self):
        return {
            "id": self.id,
            "rota_rule_id": self.rota_rule_id,
            "job_title_id": self.job_title_id,
            "job_title_name": self.job_title.name if self.job_title else None,
            "min_staff": self.min_staff,
            "max_staff": self.max_staff,
        }


class DayConfirmation(OrganisationModel):
    __tablename__ = "rota_day_confirmations"
    __table_args__ = (
        db.UniqueConstraint("rota_week_id", "shift_date", name="uq_day_confirmation_week_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rota_week_id = db.Column(db.Integer, db.ForeignKey("rota_weeks.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    shift_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(30), nullable=False,
                       comment="confirmed, confirmed_with_overrides")
    confirmed_by = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                             nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "rota_week_id": self.rota_week_id,
            "shift_date": iso(self.shift_date),
            "status": self.status,
            "confirmed_by": self.confirmed_by,
            "confirmed_at": iso(self.confirmed_at),
        }

    def __repr__(self):
        return f"<DayConfirmation week={self.rota_week_id} {self.shift_date} [{self.status}]>"


class RuleOverride(OrganisationModel):
    """
    Append-only audit row: one detected violation knowingly accepted when a
    day was confirmed with overrides. Never updated or deleted, including
    when the day confirmation itself is reset.
    """

    __tablename__ = "rota_rule_overrides"

    id = db.Column(db.Integer, primary_key=True)
    rota_week_id = db.Column(db.Integer, db.ForeignKey("rota_weeks.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    overridden_by = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                              nullable=True)
    rule_type = db.Column(db.String(50), nullable=False)
    rule_description = db.Column(db.String(500), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    shift_date = db.Column(db.Date, nullable=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id", ondelete="SET NULL"),
                            nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "rota_week_id": self.rota_week_id,
            "overridden_by": self.overridden_by,
            "rule_type": self.rule_type,
            "rule_description": self.rule_description,
            "reason": self.reason,
            "shift_date": iso(self.shift_date),
            "facility_id": self.facility_id,
            "created_at": iso(self.created_at),
        }
