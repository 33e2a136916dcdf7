"""
Workflow task service.

Recurring task templates, their derived due dates, and completion records.
Occurrences are computed from the template on every read (see
``recurrence``); only completions are stored.

Rules:
  - organisation, actor and clock come from the RotaContext.
  - db.session.commit() happens only in service modules.
  - A task targets either one assignee or a whole job family, never both.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from clinic_ops.context import RotaContext
from clinic_ops.core.exceptions import ConflictError, NotFoundError, ValidationError
from clinic_ops.models import db
from clinic_ops.models.organisation import JobFamily, StaffProfile
from clinic_ops.models.site import Facility, Site
from clinic_ops.models.workflow import RECURRENCE_PATTERNS, TaskCompletion, WorkflowTask
from clinic_ops.services.helpers.coercion import coerce_date, coerce_int
from clinic_ops.services.helpers.scoped_queries import get_scoped, require_actor
from clinic_ops.services.helpers.store_guard import store_guard
from clinic_ops.services.recurrence import (
    calculate_current_due_date,
    calculate_eta,
    expand_task_occurrences,
    format_eta,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 7
MAX_WINDOW_DAYS = 366


# ── Serialisation ────────────────────────────────────────────────────────────


def _with_due_date(task: WorkflowTask, due, today) -> dict:
    eta = calculate_eta(due, today)
    d = task.to_dict()
    d.update({
        "current_due_date": due.isoformat(),
        "eta": eta.eta,
        "is_overdue": eta.is_overdue,
        "is_today": eta.is_today,
        "eta_label": format_eta(eta.eta, eta.is_overdue, eta.is_today),
    })
    return d


def _enrich(task: WorkflowTask, today) -> dict:
    due = calculate_current_due_date(
        task.initial_due_date, task.recurrence_pattern, task.recurrence_interval_days, today
    )
    return _with_due_date(task, due, today)


# ── Validation ───────────────────────────────────────────────────────────────


def _apply_fields(ctx: RotaContext, task: WorkflowTask, data: dict) -> None:
    """Validate ``data`` and copy it onto ``task`` (new or existing)."""
    org = ctx.organisation_id

    if "name" in data or task.name is None:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        task.name = name
    if "description" in data:
        task.description = data.get("description") or None

    if "site_id" in data or task.site_id is None:
        site_id = coerce_int(data.get("site_id"), "site_id", allow_none=False)
        get_scoped(Site, site_id, organisation_id=org)
        task.site_id = site_id
    if "facility_id" in data:
        facility_id = coerce_int(data.get("facility_id"), "facility_id")
        if facility_id is not None:
            get_scoped(Facility, facility_id, organisation_id=org, site_id=task.site_id)
        task.facility_id = facility_id

    assignee_id, job_family_id = task.assignee_id, task.job_family_id
    if "assignee_id" in data:
        assignee_id = coerce_int(data.get("assignee_id"), "assignee_id")
        if assignee_id is not None:
            get_scoped(StaffProfile, assignee_id, organisation_id=org)
    if "job_family_id" in data:
        job_family_id = coerce_int(data.get("job_family_id"), "job_family_id")
        if job_family_id is not None:
            get_scoped(JobFamily, job_family_id, organisation_id=org)
    if (assignee_id is None) == (job_family_id is None):
        raise ValidationError("a task needs exactly one of assignee_id or job_family_id",
                              details={"assignee_id": "exactly one target required"})
    task.assignee_id, task.job_family_id = assignee_id, job_family_id

    if "initial_due_date" in data or task.initial_due_date is None:
        task.initial_due_date = coerce_date(data.get("initial_due_date"), "initial_due_date")

    if "recurrence_pattern" in data or task.recurrence_pattern is None:
        pattern = data.get("recurrence_pattern")
        if pattern not in RECURRENCE_PATTERNS:
            raise ValidationError(
                f"recurrence_pattern must be one of: {', '.join(sorted(RECURRENCE_PATTERNS))}",
                details={"recurrence_pattern": "invalid"},
            )
        task.recurrence_pattern = pattern
    if "recurrence_interval_days" in data:
        task.recurrence_interval_days = coerce_int(
            data.get("recurrence_interval_days"), "recurrence_interval_days", minimum=1
        )
    if task.recurrence_pattern == "custom" and not task.recurrence_interval_days:
        raise ValidationError("custom recurrence needs recurrence_interval_days >= 1",
                              details={"recurrence_interval_days": "required"})
    if task.recurrence_pattern != "custom":
        task.recurrence_interval_days = None


# ── Tasks ────────────────────────────────────────────────────────────────────


def create_task(ctx: RotaContext, data: dict) -> dict:
    task = WorkflowTask(organisation_id=ctx.organisation_id, created_by=ctx.actor_id,
                        is_active=True)
    _apply_fields(ctx, task, data)

    with store_guard("create_task", organisation_id=ctx.organisation_id):
        db.session.add(task)
        db.session.commit()

    logger.info("Workflow task created id=%s pattern=%s", task.id, task.recurrence_pattern,
                extra={"organisation_id": ctx.organisation_id, "task_id": task.id})
    return _enrich(task, ctx.today())


def update_task(ctx: RotaContext, task_id: int, data: dict) -> dict:
    task = get_scoped(WorkflowTask, task_id, organisation_id=ctx.organisation_id)
    with store_guard("update_task", organisation_id=ctx.organisation_id, task_id=task_id):
        try:
            with db.session.no_autoflush:
                _apply_fields(ctx, task, data)
        except (ValidationError, NotFoundError):
            db.session.rollback()
            raise
        if "is_active" in data:
            task.is_active = bool(data["is_active"])
        db.session.commit()
    return _enrich(task, ctx.today())


def deactivate_task(ctx: RotaContext, task_id: int) -> dict:
    """Soft delete: completions keep pointing at the template."""
    task = get_scoped(WorkflowTask, task_id, organisation_id=ctx.organisation_id)
    with store_guard("deactivate_task", organisation_id=ctx.organisation_id, task_id=task_id):
        task.is_active = False
        db.session.commit()
    logger.info("Workflow task deactivated id=%s", task_id,
                extra={"organisation_id": ctx.organisation_id, "task_id": task_id})
    return task.to_dict()


def _task_query(ctx: RotaContext, site_id=None, assignee_id=None, job_family_id=None,
                include_inactive=False):
    stmt = select(WorkflowTask).where(WorkflowTask.organisation_id == ctx.organisation_id)
    if site_id is not None:
        stmt = stmt.where(WorkflowTask.site_id == site_id)
    if assignee_id is not None:
        stmt = stmt.where(WorkflowTask.assignee_id == assignee_id)
    if job_family_id is not None:
        stmt = stmt.where(WorkflowTask.job_family_id == job_family_id)
    if not include_inactive:
        stmt = stmt.where(WorkflowTask.is_active.is_(True))
    return stmt.order_by(WorkflowTask.id)


def list_tasks(ctx: RotaContext, site_id=None, assignee_id=None, job_family_id=None,
               include_inactive=False) -> list[dict]:
    """Task templates with their current due date and ETA as of the context clock."""
    today = ctx.today()
    with store_guard("list_tasks", organisation_id=ctx.organisation_id):
        tasks = db.session.execute(
            _task_query(ctx, site_id, assignee_id, job_family_id, include_inactive)
        ).scalars().all()
        return [_enrich(t, today) for t in tasks]


def list_due_occurrences(ctx: RotaContext, window_days: int = DEFAULT_WINDOW_DAYS,
                         site_id=None, assignee_id=None, job_family_id=None) -> list[dict]:
    """Open occurrences of active tasks from the current due date through the window.

    Completed occurrences are left out. Sorted overdue first, then by due date.
    """
    window_days = coerce_int(window_days, "window_days", minimum=1, allow_none=False)
    if window_days > MAX_WINDOW_DAYS:
        raise ValidationError(f"window_days must be <= {MAX_WINDOW_DAYS}",
                              details={"window_days": "out of range"})
    today = ctx.today()

    with store_guard("list_due_occurrences", organisation_id=ctx.organisation_id):
        tasks = db.session.execute(
            _task_query(ctx, site_id, assignee_id, job_family_id)
        ).scalars().all()
        completed = set()
        if tasks:
            completed = set(db.session.execute(
                select(TaskCompletion.workflow_task_id, TaskCompletion.due_date).where(
                    TaskCompletion.organisation_id == ctx.organisation_id,
                    TaskCompletion.workflow_task_id.in_([t.id for t in tasks]),
                )
            ).tuples().all())

        occurrences = []
        for task in tasks:
            for due in expand_task_occurrences(
                task.initial_due_date, task.recurrence_pattern,
                task.recurrence_interval_days, window_days, today,
            ):
                if (task.id, due) not in completed:
                    occurrences.append(_with_due_date(task, due, today))

    occurrences.sort(key=lambda o: (not o["is_overdue"], o["current_due_date"]))
    return occurrences


# ── Completions ──────────────────────────────────────────────────────────────


def complete_task(ctx: RotaContext, task_id: int, due_date, comments: str | None = None,
                  declaration_confirmed: bool = False) -> dict:
    """Record the occurrence of ``task_id`` due on ``due_date`` as done.

    Raises:
        ConflictError: that occurrence was already completed.
        ValidationError: no actor, or the actor is not staff of the organisation.
    """
    task = get_scoped(WorkflowTask, task_id, organisation_id=ctx.organisation_id)
    due = coerce_date(due_date, "due_date")
    require_actor(ctx)

    with store_guard("complete_task", organisation_id=ctx.organisation_id, task_id=task.id):
        completion = TaskCompletion(
            organisation_id=ctx.organisation_id,
            workflow_task_id=task.id,
            due_date=due,
            completed_by=ctx.actor_id,
            completed_at=ctx.now(),
            comments=(comments or "").strip() or None,
            declaration_confirmed=bool(declaration_confirmed),
        )
        db.session.add(completion)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("TaskCompletion", "workflow_task_id,due_date",
                                f"{task.id},{due.isoformat()}")
        db.session.commit()

    logger.info("Task %s completed for %s by %s", task.id, due, ctx.actor_id,
                extra={"organisation_id": ctx.organisation_id, "task_id": task.id})
    return completion.to_dict()


def list_completions(ctx: RotaContext, task_id: int | None = None, since=None) -> list[dict]:
    """Completion audit trail, newest first."""
    stmt = select(TaskCompletion).where(TaskCompletion.organisation_id == ctx.organisation_id)
    if task_id is not None:
        get_scoped(WorkflowTask, task_id, organisation_id=ctx.organisation_id)
        stmt = stmt.where(TaskCompletion.workflow_task_id == task_id)
    if since is not None:
        start = datetime.combine(coerce_date(since, "since"), time.min, tzinfo=timezone.utc)
        stmt = stmt.where(TaskCompletion.completed_at >= start)

    with store_guard("list_completions", organisation_id=ctx.organisation_id):
        rows = db.session.execute(
            stmt.order_by(TaskCompletion.completed_at.desc(), TaskCompletion.id.desc())
        ).scalars().all()
        return [c.to_dict() for c in rows]
