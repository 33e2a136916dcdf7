"""Input coercion shared by services: ISO dates, ``HH:MM`` times, ints."""

from datetime import date, datetime

from clinic_ops.core.exceptions import ValidationError
from clinic_ops.services.shift_times import is_valid_time


def coerce_date(value, field: str) -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a date (YYYY-MM-DD)",
                          details={field: "invalid date"})


def coerce_time(value, field: str, *, required: bool = False) -> str | None:
    """Normalise ``HH:MM[:SS]`` to ``HH:MM``; blank means None."""
    if value in (None, ""):
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if not is_valid_time(value):
        raise ValidationError(f"{field} must be a time (HH:MM)", details={field: "invalid time"})
    return value[:5]


def coerce_int(value, field: str, *, minimum: int | None = None, allow_none: bool = True):
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required", details={field: "required"})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: "out of range"})
    return number
