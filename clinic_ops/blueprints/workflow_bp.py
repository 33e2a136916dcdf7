"""Workflow task blueprint.

  GET/POST   /api/v1/workflows/tasks
  PUT/DELETE /api/v1/workflows/tasks/<task_id>
  POST       /api/v1/workflows/tasks/<task_id>/complete
  GET        /api/v1/workflows/due?window_days=7
  GET        /api/v1/workflows/completions?task_id=&since=

Filters on list endpoints: site_id, assignee_id, job_family_id.
DELETE deactivates the task; completions keep their history.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import clinic_ops.services.workflow_service as wfs
from clinic_ops.blueprints import context_required, json_body, register_error_handlers
from clinic_ops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1/workflows")
register_error_handlers(workflow_bp)


def _filters() -> dict:
    return {
        "site_id": request.args.get("site_id", type=int),
        "assignee_id": request.args.get("assignee_id", type=int),
        "job_family_id": request.args.get("job_family_id", type=int),
    }


@workflow_bp.route("/tasks", methods=["GET"])
def list_tasks():
    ctx, err = context_required()
    if err:
        return err
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    tasks = wfs.list_tasks(ctx, include_inactive=include_inactive, **_filters())
    return jsonify({"tasks": tasks, "total": len(tasks)}), 200


@workflow_bp.route("/tasks", methods=["POST"])
def create_task():
    """Body: {
        name, site_id, initial_due_date, recurrence_pattern,
        recurrence_interval_days?, assignee_id | job_family_id,
        facility_id?, description?
    }
    """
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if len(data["name"]) > 200:
        return api_error(E.VALIDATION_INVALID, "name must be <= 200 characters")
    return jsonify(wfs.create_task(ctx, data)), 201


@workflow_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task(task_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify(wfs.update_task(ctx, task_id, json_body())), 200


@workflow_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def deactivate_task(task_id: int):
    ctx, err = context_required()
    if err:
        return err
    return jsonify(wfs.deactivate_task(ctx, task_id)), 200


@workflow_bp.route("/tasks/<int:task_id>/complete", methods=["POST"])
def complete_task(task_id: int):
    """Body: { due_date, comments?, declaration_confirmed? }"""
    ctx, err = context_required()
    if err:
        return err
    data = json_body()
    if not data.get("due_date"):
        return api_error(E.VALIDATION_REQUIRED, "due_date is required")
    completion = wfs.complete_task(
        ctx, task_id, data["due_date"],
        comments=data.get("comments"),
        declaration_confirmed=bool(data.get("declaration_confirmed", False)),
    )
    return jsonify(completion), 201


@workflow_bp.route("/due", methods=["GET"])
def list_due():
    ctx, err = context_required()
    if err:
        return err
    window_days = request.args.get("window_days", wfs.DEFAULT_WINDOW_DAYS)
    occurrences = wfs.list_due_occurrences(ctx, window_days, **_filters())
    return jsonify({"occurrences": occurrences, "total": len(occurrences)}), 200


@workflow_bp.route("/completions", methods=["GET"])
def list_completions():
    ctx, err = context_required()
    if err:
        return err
    completions = wfs.list_completions(
        ctx, task_id=request.args.get("task_id", type=int), since=request.args.get("since"),
    )
    return jsonify({"completions": completions}), 200
