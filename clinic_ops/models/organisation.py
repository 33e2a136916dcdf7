"""
Organisation & staff directory models.

Models:
    - Organisation: the tenant boundary; every other table hangs off it
    - JobFamily: grouping of job titles (workflow tasks can target a family)
    - JobTitle: role label used by staffing rules
    - StaffProfile: a staff member (home site, job title, contracted hours)
"""

from clinic_ops.models import db
from clinic_ops.models.base import OrganisationModel, iso, utcnow


class Organisation(db.Model):
    __tablename__ = "organisations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Organisation {self.slug}>"


class JobFamily(OrganisationModel):
    __tablename__ = "job_families"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)

    job_titles = db.relationship("JobTitle", back_populates="job_family", lazy="select")

    def to_dict(self):
        return {"id": self.id, "organisation_id": self.organisation_id, "name": self.name}


class JobTitle(OrganisationModel):
    __tablename__ = "job_titles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    job_family_id = db.Column(
        db.Integer, db.ForeignKey("job_families.id", ondelete="SET NULL"), nullable=True
    )

    job_family = db.relationship("JobFamily", back_populates="job_titles")

    def to_dict(self):
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "name": self.name,
            "job_family_id": self.job_family_id,
        }


class StaffProfile(OrganisationModel):
    """
    A member of staff as seen by the rota.

    ``primary_site_id`` is the staff member's home site; the rules engine
    flags shifts placing them at any other site.
    """

    __tablename__ = "staff_profiles"
    __table_args__ = (
        db.UniqueConstraint("organisation_id", "email", name="uq_staff_org_email"),
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    job_title_id = db.Column(
        db.Integer, db.ForeignKey("job_titles.id", ondelete="SET NULL"), nullable=True
    )
    primary_site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="SET NULL"), nullable=True, index=True
    )
    contracted_hours = db.Column(db.Float, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    job_title = db.relationship("JobTitle")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def display_name(self) -> str:
        return self.full_name or "Unknown"

    def to_dict(self):
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "job_title_id": self.job_title_id,
            "job_title_name": self.job_title.name if self.job_title else None,
            "primary_site_id": self.primary_site_id,
            "contracted_hours": self.contracted_hours,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<StaffProfile {self.id}: {self.full_name}>"
