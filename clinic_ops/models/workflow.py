"""
Workflow task models.

Models:
    - WorkflowTask: recurring task template; occurrences are derived, never stored
    - TaskCompletion: one completed occurrence, keyed by (task, due_date)
"""

from clinic_ops.models import db
from clinic_ops.models.base import OrganisationModel, iso, utcnow

RECURRENCE_PATTERNS = {"daily", "weekly", "monthly", "custom"}


class WorkflowTask(OrganisationModel):
    __tablename__ = "workflow_tasks"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id", ondelete="SET NULL"),
                            nullable=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                            nullable=True, index=True)
    job_family_id = db.Column(db.Integer, db.ForeignKey("job_families.id", ondelete="SET NULL"),
                              nullable=True)
    initial_due_date = db.Column(db.Date, nullable=False)
    recurrence_pattern = db.Column(db.String(20), nullable=False,
                                   comment="daily, weekly, monthly, custom")
    recurrence_interval_days = db.Column(db.Integer, nullable=True,
                                         comment="Only used by the custom pattern")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                           nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    site = db.relationship("Site")
    facility = db.relationship("Facility")
    assignee = db.relationship("StaffProfile", foreign_keys=[assignee_id])
    job_family = db.relationship("JobFamily")

    @property
    def is_job_family_assignment(self) -> bool:
        return self.assignee_id is None and self.job_family_id is not None

    def to_dict(self):
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "name": self.name,
            "description": self.description,
            "site_id": self.site_id,
            "site_name": self.site.name if self.site else None,
            "facility_id": self.facility_id,
            "facility_name": self.facility.name if self.facility else None,
            "assignee_id": self.assignee_id,
            "assignee_name": self.assignee.full_name if self.assignee else None,
            "job_family_id": self.job_family_id,
            "job_family_name": self.job_family.name if self.job_family else None,
            "is_job_family_assignment": self.is_job_family_assignment,
            "initial_due_date": iso(self.initial_due_date),
            "recurrence_pattern": self.recurrence_pattern,
            "recurrence_interval_days": self.recurrence_interval_days,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<WorkflowTask {self.id}: {self.name} [{self.recurrence_pattern}]>"


class TaskCompletion(OrganisationModel):
    __tablename__ = "task_completions"
    __table_args__ = (
        db.UniqueConstraint("workflow_task_id", "due_date", name="uq_task_completion_due"),
    )

    id = db.Column(db.Integer, primary_key=True)
    workflow_task_id = db.Column(db.Integer, db.ForeignKey("workflow_tasks.id", ondelete="CASCADE"),
                                 nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=False)
    completed_by = db.Column(db.Integer, db.ForeignKey("staff_profiles.id", ondelete="SET NULL"),
                             nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    comments = db.Column(db.Text, nullable=True)
    declaration_confirmed = db.Column(db.Boolean, default=False, nullable=False)

    task = db.relationship("WorkflowTask")

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_task_id": self.workflow_task_id,
            "task_name": self.task.name if self.task else None,
            "due_date": iso(self.due_date),
            "completed_by": self.completed_by,
            "completed_at": iso(self.completed_at),
            "comments": self.comments,
            "declaration_confirmed": self.declaration_confirmed,
        }
