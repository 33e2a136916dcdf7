"""
Organisation-scoped query helpers.

Every get-by-id in the service layer goes through these helpers instead of
``db.session.get(Model, pk)``. A direct ``.get()`` would return rows from
any organisation; scoping here keeps tenant isolation in one place.

Usage:
    # Scope by organisation_id (OrganisationModel subclasses)
    week = get_scoped(RotaWeek, week_id, organisation_id=ctx.organisation_id)

    # Scope by site_id as well
    room = get_scoped(Facility, facility_id, organisation_id=org, site_id=site_id)

    # When None is an acceptable outcome
    rule = get_scoped_or_none(StaffingRule, rule_id, organisation_id=org)

    # Insert-or-update on a composite natural key
    row, created = upsert_by_key(RotaOncall,
                                 {"organisation_id": 1, "oncall_date": d, "oncall_slot": 2},
                                 {"user_id": 7, "shift_period": "am"})

Scope field resolution:
    Each keyword argument maps directly to a column name on the model. If the
    model lacks that column a ValueError is raised at call time so the bug
    surfaces in tests instead of silently allowing an unscoped read.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from clinic_ops.core.exceptions import NotFoundError, ValidationError
from clinic_ops.models import db
from clinic_ops.models.organisation import StaffProfile

logger = logging.getLogger(__name__)


def get_scoped(
    model,
    pk: int,
    *,
    organisation_id: int | None = None,
    site_id: int | None = None,
    rota_week_id: int | None = None,
):
    """Fetch a single entity by PK with mandatory scope filter.

    At least one scope parameter MUST be provided and MUST correspond to a
    column on the model. Cross-organisation access is indistinguishable from
    a missing record: both raise NotFoundError (HTTP 404).

    Raises:
        ValueError: no scope given, or a given scope column does not exist.
        NotFoundError: the entity does not exist within the scope.
    """
    provided_scopes = {
        "organisation_id": organisation_id,
        "site_id": site_id,
        "rota_week_id": rota_week_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            "(organisation_id, site_id or rota_week_id)."
        )

    missing_fields = sorted(f for f in provided_scopes if not hasattr(model, f))
    if missing_fields:
        raise ValueError(
            f"{model.__name__} id={pk}: scope field(s) {missing_fields} "
            f"are not columns on {model.__name__}."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s",
                     model.__name__, pk, provided_scopes)
        raise NotFoundError(resource=model.__name__, resource_id=pk,
                            organisation_id=organisation_id)

    return result


def get_scoped_or_none(
    model,
    pk: int,
    *,
    organisation_id: int | None = None,
    site_id: int | None = None,
    rota_week_id: int | None = None,
):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, organisation_id=organisation_id,
                          site_id=site_id, rota_week_id=rota_week_id)
    except NotFoundError:
        return None


def require_actor(ctx) -> int:
    """Return ``ctx.actor_id`` once it is known to be on the organisation's staff.

    Audit columns (confirmed_by, overridden_by, completed_by) are stamped
    with this id.

    Raises:
        ValidationError: no actor on the context, or not a staff member of
            the context's organisation.
    """
    if ctx.actor_id is None:
        raise ValidationError("an actor is required for this operation",
                              details={"actor_id": "required"})
    if get_scoped_or_none(StaffProfile, ctx.actor_id, organisation_id=ctx.organisation_id) is None:
        raise ValidationError("actor is not a staff member of this organisation",
                              details={"actor_id": "unknown"})
    return ctx.actor_id


def _find_by_key(model, key: dict):
    stmt = select(model)
    for column, value in key.items():
        stmt = stmt.where(getattr(model, column) == value)
    return db.session.execute(stmt).scalar_one_or_none()


def upsert_by_key(model, key: dict, values: dict):
    """Insert a row, or update the row that already holds ``key``.

    ``key`` must name the columns of a unique constraint on ``model``. A
    concurrent insert of the same key loses at the constraint inside a
    savepoint and is retried as an update. The session is flushed but not
    committed, the caller owns the commit.

    Returns:
        (instance, created) tuple.
    """
    instance = _find_by_key(model, key)
    if instance is None:
        try:
            with db.session.begin_nested():
                instance = model(**key, **values)
                db.session.add(instance)
            return instance, True
        except IntegrityError:
            logger.info("upsert_by_key: %s %s inserted concurrently, updating",
                        model.__name__, key)
            instance = _find_by_key(model, key)
            if instance is None:
                raise

    for column, value in values.items():
        setattr(instance, column, value)

    db.session.flush()
    return instance, False
