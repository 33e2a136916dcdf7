"""
Site models: operating locations, their opening hours and facilities.

Models:
    - Site: location with per-room AM/PM patient capacity
    - SiteOpeningHours: one row per weekday (0 = Monday … 6 = Sunday)
    - Facility: a resource inside a site; ``clinic_room`` is the unit shifts
      are assigned into and capacity is counted by
"""

from clinic_ops.models import db
from clinic_ops.models.base import OrganisationModel, iso, utcnow

CLINIC_ROOM = "clinic_room"


class Site(OrganisationModel):
    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    am_capacity_per_room = db.Column(db.Integer, default=0, nullable=False,
                                     comment="Patients per staffed clinic room, AM")
    pm_capacity_per_room = db.Column(db.Integer, default=0, nullable=False,
                                     comment="Patients per staffed clinic room, PM")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    opening_hours = db.relationship(
        "SiteOpeningHours", back_populates="site", lazy="select",
        cascade="all, delete-orphan", order_by="SiteOpeningHours.day_of_week",
    )
    facilities = db.relationship(
        "Facility", back_populates="site", lazy="select",
        cascade="all, delete-orphan", order_by="Facility.id",
    )

    def clinic_rooms(self):
        return [f for f in self.facilities if f.facility_type == CLINIC_ROOM and f.is_active]

    def hours_by_day(self) -> dict[int, "SiteOpeningHours"]:
        return {h.day_of_week: h for h in self.opening_hours}

    def to_dict(self):
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "name": self.name,
            "am_capacity_per_room": self.am_capacity_per_room,
            "pm_capacity_per_room": self.pm_capacity_per_room,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Site {self.id}: {self.name}>"


class SiteOpeningHours(db.Model):
    __tablename__ = "site_opening_hours"
    __table_args__ = (
        db.UniqueConstraint("site_id", "day_of_week", name="uq_opening_hours_site_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    day_of_week = db.Column(db.Integer, nullable=False, comment="0 = Monday … 6 = Sunday")
    is_closed = db.Column(db.Boolean, default=False, nullable=False)
    am_open_time = db.Column(db.String(8), nullable=True)
    am_close_time = db.Column(db.String(8), nullable=True)
    pm_open_time = db.Column(db.String(8), nullable=True)
    pm_close_time = db.Column(db.String(8), nullable=True)

    site = db.relationship("Site", back_populates="opening_hours")

    @property
    def open_time(self):
        return self.am_open_time or self.pm_open_time

    @property
    def close_time(self):
        return self.pm_close_time or self.am_close_time

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "day_of_week": self.day_of_week,
            "is_closed": self.is_closed,
            "am_open_time": self.am_open_time,
            "am_close_time": self.am_close_time,
            "pm_open_time": self.pm_open_time,
            "pm_close_time": self.pm_close_time,
        }


class Facility(OrganisationModel):
    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    facility_type = db.Column(db.String(50), default=CLINIC_ROOM, nullable=False)
    capacity = db.Column(db.Integer, default=1, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    site = db.relationship("Site", back_populates="facilities")

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "name": self.name,
            "facility_type": self.facility_type,
            "capacity": self.capacity,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Facility {self.id}: {self.name} [{self.facility_type}]>"
