"""
Tests for recurring workflow tasks and their completions.

Covers:
    - Task validation (single target, known pattern, custom interval)
    - Derived current due date / ETA on the context clock
    - Due occurrence window, completion exclusion, ordering
    - Completions: duplicate conflict, audit listing, staff actor required
    - Updates never persist an unchecked assignee
"""

from dataclasses import replace

import pytest

from clinic_ops.core.exceptions import ConflictError, NotFoundError, ValidationError
from clinic_ops.models import db as _db
from clinic_ops.models.organisation import Organisation, StaffProfile
from clinic_ops.models.workflow import TaskCompletion, WorkflowTask
from clinic_ops.services import workflow_service as wfs


# ── Helpers ──────────────────────────────────────────────────────────────


def _task_data(site, assignee=None, family_id=None, **kw):
    data = {
        "name": "Fridge temperature check",
        "site_id": site.id,
        "initial_due_date": "2024-06-05",
        "recurrence_pattern": "daily",
    }
    if assignee is not None:
        data["assignee_id"] = assignee.id
    if family_id is not None:
        data["job_family_id"] = family_id
    data.update(kw)
    return data


def _foreign_staff():
    org = Organisation(name="Elsewhere", slug="elsewhere")
    _db.session.add(org)
    _db.session.flush()
    person = StaffProfile(organisation_id=org.id, email="olga@elsewhere.test",
                          first_name="Olga", last_name="Other")
    _db.session.add(person)
    _db.session.commit()
    return person


def _reload(task_id):
    _db.session.expire_all()
    return _db.session.get(WorkflowTask, task_id)


# ── Validation ───────────────────────────────────────────────────────────


class TestCreateTask:
    def test_create_for_assignee(self, ctx, site, staff, manager):
        task = wfs.create_task(ctx, _task_data(site, staff["nurse"]))
        assert task["assignee_name"] == "Noah Reed"
        assert task["is_job_family_assignment"] is False
        assert task["current_due_date"] == "2024-06-05"
        assert task["eta_label"] == "Due today"

    def test_create_for_job_family(self, ctx, site, job_titles):
        family_id = job_titles["gp"].job_family_id
        task = wfs.create_task(ctx, _task_data(site, family_id=family_id))
        assert task["is_job_family_assignment"] is True
        assert task["job_family_name"] == "Clinical"

    def test_needs_exactly_one_target(self, ctx, site, staff, job_titles):
        with pytest.raises(ValidationError):
            wfs.create_task(ctx, _task_data(site))
        with pytest.raises(ValidationError):
            wfs.create_task(ctx, _task_data(site, staff["gp"],
                                            family_id=job_titles["gp"].job_family_id))

    def test_unknown_pattern(self, ctx, site, staff):
        with pytest.raises(ValidationError):
            wfs.create_task(ctx, _task_data(site, staff["gp"], recurrence_pattern="yearly"))

    def test_custom_needs_interval(self, ctx, site, staff):
        with pytest.raises(ValidationError):
            wfs.create_task(ctx, _task_data(site, staff["gp"], recurrence_pattern="custom"))
        task = wfs.create_task(ctx, _task_data(site, staff["gp"], recurrence_pattern="custom",
                                               recurrence_interval_days=14))
        assert task["recurrence_interval_days"] == 14

    def test_interval_dropped_for_non_custom(self, ctx, site, staff):
        task = wfs.create_task(ctx, _task_data(site, staff["gp"], recurrence_interval_days=5))
        assert task["recurrence_interval_days"] is None

    def test_blank_name(self, ctx, site, staff):
        with pytest.raises(ValidationError):
            wfs.create_task(ctx, _task_data(site, staff["gp"], name="  "))

    def test_unknown_site(self, ctx, staff, site):
        with pytest.raises(NotFoundError):
            wfs.create_task(ctx, _task_data(site, staff["gp"], site_id=9999))


class TestUpdateTask:
    def test_switch_target_to_family(self, ctx, site, staff, job_titles):
        task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
        updated = wfs.update_task(ctx, task["id"], {
            "assignee_id": None, "job_family_id": job_titles["gp"].job_family_id,
        })
        assert updated["assignee_id"] is None
        assert updated["is_job_family_assignment"] is True

    def test_invalid_update_leaves_task_unchanged(self, ctx, site, staff):
        task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
        with pytest.raises(ValidationError):
            wfs.update_task(ctx, task["id"], {"recurrence_pattern": "hourly"})
        assert wfs.list_tasks(ctx)[0]["recurrence_pattern"] == "daily"

    def test_unknown_assignee_is_not_found_and_not_saved(self, ctx, site, staff):
        task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
        with pytest.raises(NotFoundError):
            wfs.update_task(ctx, task["id"], {"name": "Renamed", "assignee_id": 99999})

        wfs.deactivate_task(ctx, task["id"])
        stored = _reload(task["id"])
        assert stored.name == "Fridge temperature check"
        assert stored.assignee_id == staff["gp"].id

    def test_other_organisation_assignee_is_never_committed(self, ctx, site, staff):
        outsider = _foreign_staff()
        task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
        with pytest.raises(NotFoundError):
            wfs.update_task(ctx, task["id"], {"name": "Renamed", "assignee_id": outsider.id})

        wfs.deactivate_task(ctx, task["id"])
        stored = _reload(task["id"])
        assert stored.name == "Fridge temperature check"
        assert stored.assignee_id == staff["gp"].id

    def test_deactivate_hides_from_lists(self, ctx, site, staff):
        task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
        assert wfs.deactivate_task(ctx, task["id"])["is_active"] is False
        assert wfs.list_tasks(ctx) == []
        assert len(wfs.list_tasks(ctx, include_inactive=True)) == 1
        assert wfs.list_due_occurrences(ctx) == []


# ── Due dates ────────────────────────────────────────────────────────────


def test_list_tasks_reports_overdue(ctx, site, staff):
    wfs.create_task(ctx, _task_data(site, staff["gp"], initial_due_date="2024-05-20",
                                    recurrence_pattern="weekly"))
    (task,) = wfs.list_tasks(ctx)
    assert task["current_due_date"] == "2024-06-03"
    assert task["eta"] == -2
    assert task["is_overdue"] is True
    assert task["eta_label"] == "Overdue by 2 days"


def test_list_tasks_filters(ctx, site, other_site, staff):
    wfs.create_task(ctx, _task_data(site, staff["gp"]))
    wfs.create_task(ctx, _task_data(other_site, staff["nurse"]))
    assert len(wfs.list_tasks(ctx, site_id=site.id)) == 1
    assert len(wfs.list_tasks(ctx, assignee_id=staff["nurse"].id)) == 1


def test_due_occurrences_window_and_order(ctx, site, staff):
    weekly = wfs.create_task(ctx, _task_data(site, staff["gp"], name="Weekly audit",
                                             initial_due_date="2024-05-20",
                                             recurrence_pattern="weekly"))
    daily = wfs.create_task(ctx, _task_data(site, staff["nurse"], name="Daily check"))

    occ = wfs.list_due_occurrences(ctx, 3)

    assert [(o["id"], o["current_due_date"]) for o in occ] == [
        (weekly["id"], "2024-06-03"),
        (daily["id"], "2024-06-05"),
        (daily["id"], "2024-06-06"),
        (daily["id"], "2024-06-07"),
    ]


def test_completed_occurrence_is_excluded(ctx, site, staff):
    task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
    wfs.complete_task(ctx, task["id"], "2024-06-05")

    dates = [o["current_due_date"] for o in wfs.list_due_occurrences(ctx, 2)]

    assert dates == ["2024-06-06"]


@pytest.mark.parametrize("window", [0, 367, "week"])
def test_window_bounds(ctx, window):
    with pytest.raises(ValidationError):
        wfs.list_due_occurrences(ctx, window)


# ── Completions ──────────────────────────────────────────────────────────


def test_complete_task_records_actor_and_clock(ctx, site, staff, manager):
    task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
    done = wfs.complete_task(ctx, task["id"], "2024-06-05", comments="  4.5C  ",
                             declaration_confirmed=True)
    assert done["completed_by"] == manager.id
    assert done["comments"] == "4.5C"
    assert done["declaration_confirmed"] is True
    assert done["completed_at"].startswith("2024-06-05T09:30")


@pytest.mark.parametrize("actor", ["missing", "outsider"])
def test_completion_needs_a_staff_actor(ctx, site, staff, actor):
    task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
    actor_id = None if actor == "missing" else _foreign_staff().id

    with pytest.raises(ValidationError) as exc:
        wfs.complete_task(replace(ctx, actor_id=actor_id), task["id"], "2024-06-05")

    assert "actor_id" in exc.value.details
    assert _db.session.query(TaskCompletion).count() == 0


def test_duplicate_completion_conflicts(ctx, site, staff):
    task = wfs.create_task(ctx, _task_data(site, staff["gp"]))
    wfs.complete_task(ctx, task["id"], "2024-06-05")
    with pytest.raises(ConflictError):
        wfs.complete_task(ctx, task["id"], "2024-06-05")
    assert _db.session.query(TaskCompletion).count() == 1


def test_list_completions_filters(ctx, site, staff):
    a = wfs.create_task(ctx, _task_data(site, staff["gp"]))
    b = wfs.create_task(ctx, _task_data(site, staff["nurse"], name="Other"))
    wfs.complete_task(ctx, a["id"], "2024-06-04")
    wfs.complete_task(ctx, a["id"], "2024-06-05")
    wfs.complete_task(ctx, b["id"], "2024-06-05")

    assert len(wfs.list_completions(ctx)) == 3
    assert [c["due_date"] for c in wfs.list_completions(ctx, task_id=a["id"])] == [
        "2024-06-05", "2024-06-04",
    ]
    assert wfs.list_completions(ctx, since="2024-06-06") == []
