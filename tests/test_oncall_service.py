"""
Tests for organisation-wide on-call assignments.

Covers:
    - Upsert per (organisation, date, slot)
    - Validation of slot, period and assignee
    - Week listing and per-day delete
    - copy_oncalls_from_day: replace semantics, empty source
"""

import pytest

from clinic_ops.core.exceptions import NotFoundError, ValidationError
from clinic_ops.models.rota import RotaOncall
from clinic_ops.services import oncall_service as ocs

MON = "2024-06-03"
TUE = "2024-06-04"


def _snapshot(oncalls):
    return sorted(
        (o["oncall_slot"], o["shift_period"], o["user_id"], o["is_temp_staff"],
         o["temp_confirmed"], o["temp_staff_name"])
        for o in oncalls
    )


# ── Add / upsert ─────────────────────────────────────────────────────────


def test_add_oncall_returns_named_record(ctx, staff):
    oc = ocs.add_oncall(ctx, MON, 1, user_id=staff["gp"].id)
    assert oc["oncall_slot"] == 1
    assert oc["shift_period"] == "am"
    assert oc["user_name"] == "Grace Patel"
    assert oc["job_title_name"] == "GP"


def test_same_slot_is_replaced_not_duplicated(ctx, staff):
    first = ocs.add_oncall(ctx, MON, 2, user_id=staff["gp"].id)
    second = ocs.add_oncall(ctx, MON, 2, "full_day", user_id=staff["nurse"].id)

    assert first["id"] == second["id"]
    assert second["user_id"] == staff["nurse"].id
    assert second["shift_period"] == "full_day"
    assert RotaOncall.query.count() == 1


def test_temp_oncall_needs_a_name(ctx):
    with pytest.raises(ValidationError):
        ocs.add_oncall(ctx, MON, 1, is_temp_staff=True)
    oc = ocs.add_oncall(ctx, MON, 1, is_temp_staff=True, temp_staff_name="Dr Locum")
    assert oc["user_name"] == "Dr Locum"


@pytest.mark.parametrize("slot", [0, 4, "x", None])
def test_invalid_slot(ctx, staff, slot):
    with pytest.raises(ValidationError):
        ocs.add_oncall(ctx, MON, slot, user_id=staff["gp"].id)


def test_invalid_period(ctx, staff):
    with pytest.raises(ValidationError):
        ocs.add_oncall(ctx, MON, 1, "night", user_id=staff["gp"].id)


def test_unknown_staff(ctx):
    with pytest.raises(NotFoundError):
        ocs.add_oncall(ctx, MON, 1, user_id=424242)


# ── Listing / deleting ───────────────────────────────────────────────────


def test_list_week_is_monday_to_sunday(ctx, staff):
    ocs.add_oncall(ctx, "2024-06-02", 1, user_id=staff["gp"].id)   # previous Sunday
    ocs.add_oncall(ctx, MON, 1, user_id=staff["gp"].id)
    ocs.add_oncall(ctx, "2024-06-09", 3, user_id=staff["gp"].id)
    ocs.add_oncall(ctx, "2024-06-10", 1, user_id=staff["gp"].id)   # next Monday

    listed = ocs.list_oncalls(ctx, "2024-06-05")

    assert [(o["oncall_date"], o["oncall_slot"]) for o in listed] == [
        ("2024-06-03", 1), ("2024-06-09", 3),
    ]


def test_delete_oncall_slot(ctx, staff):
    ocs.add_oncall(ctx, MON, 1, user_id=staff["gp"].id)
    ocs.add_oncall(ctx, MON, 2, user_id=staff["nurse"].id)

    assert ocs.delete_oncall(ctx, MON, 1) == 1
    assert ocs.delete_oncall(ctx, MON, 1) == 0
    assert [o["oncall_slot"] for o in ocs.list_oncalls_for_day(ctx, MON)] == [2]


def test_delete_oncall_respects_period_filter(ctx, staff):
    ocs.add_oncall(ctx, MON, 1, "pm", user_id=staff["gp"].id)
    assert ocs.delete_oncall(ctx, MON, 1, "am") == 0
    assert ocs.delete_oncall(ctx, MON, 1, "pm") == 1


# ── Copy ─────────────────────────────────────────────────────────────────


def test_copy_replaces_target_day(ctx, staff):
    ocs.add_oncall(ctx, MON, 1, user_id=staff["gp"].id)
    ocs.add_oncall(ctx, MON, 2, "full_day", user_id=staff["nurse"].id)
    ocs.add_oncall(ctx, MON, 3, is_temp_staff=True, temp_confirmed=True,
                   temp_staff_name="Dr Locum")
    ocs.add_oncall(ctx, TUE, 1, user_id=staff["visitor"].id)
    ocs.add_oncall(ctx, TUE, 3, user_id=staff["visitor"].id)

    copied = ocs.copy_oncalls_from_day(ctx, MON, TUE)

    assert copied == 3
    source = ocs.list_oncalls_for_day(ctx, MON)
    target = ocs.list_oncalls_for_day(ctx, TUE)
    assert _snapshot(target) == _snapshot(source)
    assert staff["visitor"].id not in {o["user_id"] for o in target}


def test_copy_from_empty_day_leaves_target_alone(ctx, staff):
    ocs.add_oncall(ctx, TUE, 1, user_id=staff["gp"].id)

    assert ocs.copy_oncalls_from_day(ctx, MON, TUE) == 0
    assert len(ocs.list_oncalls_for_day(ctx, TUE)) == 1


def test_copy_failure_is_counted_not_rolled_back(ctx, staff, monkeypatch):
    from clinic_ops.core.exceptions import StoreError
    for slot in (1, 2, 3):
        ocs.add_oncall(ctx, MON, slot, user_id=staff["gp"].id)
    ocs.add_oncall(ctx, TUE, 1, user_id=staff["nurse"].id)

    real_add = ocs.add_oncall

    def flaky_add(ctx_, day, slot, *args):
        if slot == 2:
            raise StoreError("add_oncall")
        return real_add(ctx_, day, slot, *args)

    monkeypatch.setattr(ocs, "add_oncall", flaky_add)

    assert ocs.copy_oncalls_from_day(ctx, MON, TUE) == 2
    assert [o["oncall_slot"] for o in ocs.list_oncalls_for_day(ctx, TUE)] == [1, 3]


def test_store_failure_surfaces_as_store_error(ctx, staff, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from clinic_ops.core.exceptions import StoreError
    from clinic_ops.models import db as _db

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(_db.session, "commit", broken_commit)
    with pytest.raises(StoreError) as exc:
        ocs.add_oncall(ctx, MON, 1, user_id=staff["gp"].id)
    assert exc.value.operation == "add_oncall"
