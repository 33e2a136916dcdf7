"""
Clinic Rota Service
Blueprint helpers shared by every API blueprint.

Organisation and actor resolution:
    X-Organisation-Id / X-Actor-Id headers, else ``organisation_id`` /
    ``actor_id`` in the query string, else in the JSON body.
"""

import logging

from flask import current_app, request
from werkzeug.exceptions import HTTPException

from clinic_ops.context import RotaContext
from clinic_ops.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from clinic_ops.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _lookup(header: str, field: str):
    raw = request.headers.get(header) or request.args.get(field)
    if raw is None:
        data = request.get_json(silent=True) or {}
        raw = data.get(field) if isinstance(data, dict) else None
    if raw in (None, ""):
        return None
    return int(raw)


def context_required() -> tuple[RotaContext | None, tuple | None]:
    """Build the request's RotaContext, or a 400 response when it cannot."""
    try:
        organisation_id = _lookup("X-Organisation-Id", "organisation_id")
        actor_id = _lookup("X-Actor-Id", "actor_id")
    except (TypeError, ValueError):
        return None, api_error(E.VALIDATION_INVALID, "organisation_id and actor_id must be integers")
    if not organisation_id:
        return None, api_error(E.VALIDATION_REQUIRED, "organisation_id is required")
    return RotaContext(
        organisation_id=organisation_id,
        actor_id=actor_id,
        clock=current_app.config["CLOCK"],
    ), None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp):
    """Map service exceptions to JSON error responses on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(StoreError)
    def _handle_store(error: StoreError):
        return api_error(E.DATABASE, "Database error", details={"operation": error.operation})

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
