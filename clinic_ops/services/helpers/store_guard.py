"""
Store failure boundary for service operations.

Wrap the store-touching body of a service operation so any SQLAlchemy
failure rolls the session back, is logged with its traceback and surfaces
as a single ``StoreError``. Domain errors (NotFoundError, ValidationError,
ConflictError) pass through untouched.

Usage:
    with store_guard("add_oncall", organisation_id=ctx.organisation_id):
        ...
        db.session.commit()
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from clinic_ops.core.exceptions import StoreError
from clinic_ops.models import db

logger = logging.getLogger(__name__)


@contextmanager
def store_guard(operation: str, **log_fields):
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store failure in %s", operation, extra=log_fields)
        raise StoreError(operation, exc) from exc
