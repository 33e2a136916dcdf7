"""Rota schedule blueprint.

REST API over the weekly rota of a site: weeks, shifts, derived views
(violations, hours, staffing) and day confirmations.

Endpoint groups:
  Week aggregate     GET    /api/v1/sites/<site_id>/rota/weeks/<week_start>
  Week status        PUT    /api/v1/rota/weeks/<week_id>/status
  Shifts             GET/POST /api/v1/rota/weeks/<week_id>/shifts
                     PATCH/DELETE /api/v1/rota/shifts/<shift_id>
                     DELETE /api/v1/rota/weeks/<week_id>/days/<date>/shifts
  Derived views      GET    /api/v1/rota/weeks/<week_id>/violations|hours|staffing
  Confirmations      GET/POST /api/v1/rota/weeks/<week_id>/confirmations
                     DELETE /api/v1/rota/weeks/<week_id>/confirmations/<date>
                     GET    /api/v1/rota/weeks/<week_id>/overrides

Every shift mutation answers with the week's re-read shift list.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

import clinic_ops.services.day_confirmation_service as dcs
import clinic_ops.services.rota_service as rs
from clinic_ops.blueprints import context_required, json_body, register_error_handlers
from clinic_ops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

rota_bp = Blueprint("rota", __name__, url_prefix="/api/v1")
register_error_handlers(rota_bp)


# ── Weeks ─────────────────────────────────────────────────────────────────────


@rota_bp.route("/sites/<int:site_id>/rota/weeks/<week_start>", methods=["GET"])
def get_week(site_id: int, week_start: str):
    """Fetch (creating on first access) the week and its full schedule."""
    ctx, err = context_required()
    if err:
        return err
    week = rs.fetch_or_create_week(ctx, site_id, week_start)
    return jsonify(rs.get_week_schedule(ctx, week["id"])), 200


@rota_bp.route("/rota/weeks/<int:week_id>/status", methods=["PUT"])
def update_week_status(week_id: int):
    """Body: { status: draft | published | archived }"""
    ctx, err = context_required()
    if err:
        return err
    status = json_body().get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    return jsonify(rs.update_week_status(ctx, week_id, status)), 200


# ── Shifts ────────────────────────────────────────────────────────────────────


@rota_bp.route("/rota/weeks/<int:week_id>/shifts", methods=["GET"])
def list_shifts(week_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"shifts": rs.list_shifts(ctx, week_id)}), 200


@rota_bp.route("/rota/weeks/<int:week_id>/shifts", methods=["POST"])
def add_shift(week_id: int):
    """Add a shift.

    Body: {
        shift_date, shift_type, user_id?, custom_start_time?, custom_end_time?,
        is_oncall?, oncall_slot?, facility_id?, is_temp_staff?,
        temp_confirmed?, temp_staff_name?, pm_boundary?
    }
    Returns: { shifts: [...] } (201).
    """
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    for field in ("shift_date", "shift_type"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")

    shifts = rs.add_shift(
        ctx,
        week_id,
        data.get("user_id"),
        data["shift_date"],
        data["shift_type"],
        custom_start=data.get("custom_start_time"),
        custom_end=data.get("custom_end_time"),
        is_oncall=bool(data.get("is_oncall", False)),
        facility_id=data.get("facility_id"),
        is_temp_staff=bool(data.get("is_temp_staff", False)),
        temp_confirmed=bool(data.get("temp_confirmed", False)),
        temp_staff_name=data.get("temp_staff_name"),
        oncall_slot=data.get("oncall_slot"),
        pm_boundary=data.get("pm_boundary"),
    )
    return jsonify({"shifts": shifts}), 201


@rota_bp.route("/rota/shifts/<int:shift_id>", methods=["PATCH"])
def update_shift(shift_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"shifts": rs.update_shift(ctx, shift_id, json_body())}), 200


@rota_bp.route("/rota/shifts/<int:shift_id>", methods=["DELETE"])
def delete_shift(shift_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"shifts": rs.delete_shift(ctx, shift_id)}), 200


@rota_bp.route("/rota/weeks/<int:week_id>/days/<shift_date>/shifts", methods=["DELETE"])
def clear_day(week_id: int, shift_date: str):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"shifts": rs.clear_day(ctx, week_id, shift_date)}), 200


# ── Derived views ─────────────────────────────────────────────────────────────


@rota_bp.route("/rota/weeks/<int:week_id>/violations", methods=["GET"])
def week_violations(week_id: int):
    """Staffing rule violations of the week, in day then check order."""
    ctx, err = context_required()
    if err:
        return err
    violations = rs.validate_week_schedule(ctx, week_id)
    return jsonify({
        "violations": violations,
        "errors": sum(1 for v in violations if v["severity"] == "error"),
        "warnings": sum(1 for v in violations if v["severity"] == "warning"),
    }), 200


@rota_bp.route("/rota/weeks/<int:week_id>/hours", methods=["GET"])
def week_hours(week_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"staff_hours": rs.staff_scheduled_hours(ctx, week_id)}), 200


@rota_bp.route("/rota/weeks/<int:week_id>/staffing", methods=["GET"])
def week_staffing(week_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"days": rs.staffing_summary(ctx, week_id)}), 200


# ── Day confirmations ─────────────────────────────────────────────────────────


@rota_bp.route("/rota/weeks/<int:week_id>/confirmations", methods=["GET"])
def list_confirmations(week_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"confirmations": dcs.list_confirmations(ctx, week_id)}), 200


@rota_bp.route("/rota/weeks/<int:week_id>/confirmations", methods=["POST"])
def confirm_day(week_id: int):
    """Confirm a day, optionally accepting violations as overrides.

    Body: {
        shift_date, status: confirmed | confirmed_with_overrides,
        overrides?: [{ rule_type, rule_description, reason, shift_date?, facility_id? }]
    }
    """
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    for field in ("shift_date", "status"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")
    overrides = data.get("overrides") or []
    if not isinstance(overrides, list) or not all(isinstance(o, dict) for o in overrides):
        return api_error(E.VALIDATION_INVALID, "overrides must be a list of objects")

    result = dcs.confirm_day(ctx, week_id, data["shift_date"], data["status"], overrides)
    return jsonify(result), 200


@rota_bp.route("/rota/weeks/<int:week_id>/confirmations/<shift_date>", methods=["DELETE"])
def reset_confirmation(week_id: int, shift_date: str):
    ctx, err = context_required()
    if err:
        return err
    dcs.reset_day_confirmation(ctx, week_id, shift_date)
    return "", 204


@rota_bp.route("/rota/weeks/<int:week_id>/overrides", methods=["GET"])
def list_overrides(week_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"overrides": dcs.list_overrides(ctx, week_id)}), 200
