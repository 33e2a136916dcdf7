"""On-call blueprint.

Organisation-wide on-call slots per day.

  GET    /api/v1/rota/oncalls?week_start=YYYY-MM-DD
  POST   /api/v1/rota/oncalls
  DELETE /api/v1/rota/oncalls/<date>/<slot>[?shift_period=am]
  DELETE /api/v1/rota/oncalls/<date>
  POST   /api/v1/rota/oncalls/copy        { source_date, target_date }
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import clinic_ops.services.oncall_service as ocs
from clinic_ops.blueprints import context_required, json_body, register_error_handlers
from clinic_ops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

oncall_bp = Blueprint("oncall", __name__, url_prefix="/api/v1/rota/oncalls")
register_error_handlers(oncall_bp)


@oncall_bp.route("", methods=["GET"])
def list_oncalls():
    ctx, err = context_required()
    if err:
        return err
    week_start = request.args.get("week_start")
    if not week_start:
        return api_error(E.VALIDATION_REQUIRED, "week_start is required")
    return jsonify({"oncalls": ocs.list_oncalls(ctx, week_start)}), 200


@oncall_bp.route("", methods=["POST"])
def add_oncall():
    """Assign (or reassign) an on-call slot.

    Body: {
        oncall_date, oncall_slot, shift_period?, user_id?, is_temp_staff?,
        temp_confirmed?, temp_staff_name?, custom_start_time?, custom_end_time?
    }
    """
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    for field in ("oncall_date", "oncall_slot"):
        if data.get(field) in (None, ""):
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")

    oncall = ocs.add_oncall(
        ctx,
        data["oncall_date"],
        data["oncall_slot"],
        data.get("shift_period") or "am",
        data.get("user_id"),
        bool(data.get("is_temp_staff", False)),
        bool(data.get("temp_confirmed", False)),
        data.get("temp_staff_name"),
        data.get("custom_start_time"),
        data.get("custom_end_time"),
    )
    return jsonify(oncall), 201


@oncall_bp.route("/<oncall_date>/<int:slot>", methods=["DELETE"])
def delete_oncall(oncall_date: str, slot: int):
    ctx, err = context_required()
    if err:
        return err
    deleted = ocs.delete_oncall(ctx, oncall_date, slot, request.args.get("shift_period"))
    return jsonify({"deleted": deleted}), 200


@oncall_bp.route("/<oncall_date>", methods=["DELETE"])
def delete_oncalls_for_day(oncall_date: str):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"deleted": ocs.delete_oncalls_for_day(ctx, oncall_date)}), 200


@oncall_bp.route("/copy", methods=["POST"])
def copy_oncalls():
    """Replace the target day's on-calls with the source day's.

    Returns: { copied: int, oncalls: [...target day...] }
    """
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    for field in ("source_date", "target_date"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")

    copied = ocs.copy_oncalls_from_day(ctx, data["source_date"], data["target_date"])
    return jsonify({
        "copied": copied,
        "oncalls": ocs.list_oncalls_for_day(ctx, data["target_date"]),
    }), 200
