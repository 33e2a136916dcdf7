"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from clinic_ops.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="RotaWeek", resource_id=42)
    raise ValidationError("custom shifts need a start and end time",
                          details={"custom_start_time": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-organisation access
    attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable model/entity name (e.g. "RotaWeek", "RotaShift").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        organisation_id: Optional, the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organisation_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organisation_id = organisation_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if organisation_id is not None:
            msg += f" (organisation={organisation_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint); this
    exception signals that the data was well-formed but violated a business
    rule (e.g. custom shift without times, unknown recurrence pattern).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or composite key) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class StoreError(Exception):
    """Raised when the backing store fails (connection loss, query error).

    Services catch ``SQLAlchemyError`` at each operation boundary, roll back
    the session and re-raise as ``StoreError`` so callers get a single failure
    signal. Maps to HTTP 500.

    Args:
        operation: Name of the service operation that failed.
        cause: The underlying exception, kept for logging.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store operation failed: {operation}")
