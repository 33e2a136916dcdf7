"""Rota configuration & capacity blueprint.

  GET/PUT    /api/v1/sites/<site_id>/rota-rule
  POST       /api/v1/sites/<site_id>/staffing-rules
  PUT/DELETE /api/v1/rota/staffing-rules/<staffing_rule_id>
  GET        /api/v1/sites/<site_id>/capacity?date=YYYY-MM-DD
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import clinic_ops.services.capacity_service as caps
import clinic_ops.services.rota_config_service as rcs
from clinic_ops.blueprints import context_required, json_body, register_error_handlers
from clinic_ops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

rota_config_bp = Blueprint("rota_config", __name__, url_prefix="/api/v1")
register_error_handlers(rota_config_bp)


@rota_config_bp.route("/sites/<int:site_id>/rota-rule", methods=["GET"])
def get_rota_rule(site_id: int):
    """Returns: { rule: {...} } or { rule: null } when the site has none."""
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"rule": rcs.get_rota_rule(ctx, site_id)}), 200


@rota_config_bp.route("/sites/<int:site_id>/rota-rule", methods=["PUT"])
def save_rota_rule(site_id: int):
    """Body: { am_shift_start?, am_shift_end?, pm_shift_start?, pm_shift_end?, require_oncall? }"""
    ctx, err = context_required()
    if err:
        return err
    return jsonify(rcs.save_rota_rule(ctx, site_id, json_body())), 200


@rota_config_bp.route("/sites/<int:site_id>/staffing-rules", methods=["POST"])
def add_staffing_rule(site_id: int):
    """Add a staffing minimum, creating the site's rota rule with defaults if needed.

    Body: { job_title_id, min_staff?, max_staff? }
    """
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    if not data.get("job_title_id"):
        return api_error(E.VALIDATION_REQUIRED, "job_title_id is required")

    rule = rcs.get_rota_rule(ctx, site_id) or rcs.save_rota_rule(ctx, site_id, {})
    staffing = rcs.add_staffing_rule(
        ctx, rule["id"], data["job_title_id"], data.get("min_staff", 0), data.get("max_staff"),
    )
    return jsonify(staffing), 201


@rota_config_bp.route("/rota/staffing-rules/<int:staffing_rule_id>", methods=["PUT"])
def update_staffing_rule(staffing_rule_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify(rcs.update_staffing_rule(ctx, staffing_rule_id, json_body())), 200


@rota_config_bp.route("/rota/staffing-rules/<int:staffing_rule_id>", methods=["DELETE"])
def delete_staffing_rule(staffing_rule_id: int):
    ctx, err = context_required()
    if err:
        return err
    rcs.delete_staffing_rule(ctx, staffing_rule_id)
    return "", 204


@rota_config_bp.route("/sites/<int:site_id>/capacity", methods=["GET"])
def site_capacity(site_id: int):
    """Patient capacity for ``date`` (defaults to today on the service clock)."""
    ctx, err = context_required()
    if err:
        return err
    return jsonify(caps.calculate_patient_capacity(ctx, site_id, request.args.get("date"))), 200
