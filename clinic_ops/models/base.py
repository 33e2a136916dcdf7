"""
OrganisationModel: abstract base class for organisation-scoped models.

All models that need organisation isolation inherit from OrganisationModel
instead of db.Model directly. This adds:
  - organisation_id FK column with index
  - query_for_organisation(organisation_id) classmethod
"""

from datetime import datetime, timezone

from clinic_ops.models import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value):
    """Serialise a date/datetime column value (None-safe)."""
    return value.isoformat() if value is not None else None


class OrganisationModel(db.Model):
    """Abstract base for organisation-scoped tables."""
    __abstract__ = True

    organisation_id = db.Column(
        db.Integer,
        db.ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_organisation(cls, organisation_id):
        """Return a query filtered by organisation_id."""
        return cls.query.filter_by(organisation_id=organisation_id)

