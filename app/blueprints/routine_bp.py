"""
Routine blueprint.

Endpoints:
    GET    /api/v1/users/<user_profile_id>/routine       user's routine (with steps)
    POST   /api/v1/users/<user_profile_id>/routine       create draft routine
    PATCH  /api/v1/routines/<routine_id>                 name / start_date / end_date
    DELETE /api/v1/routines/<routine_id>
    POST   /api/v1/routines/<routine_id>/publish         draft -> published
    POST   /api/v1/routines/<routine_id>/steps           add step
    PUT    /api/v1/routines/<routine_id>/steps/order     reorder one time-of-day group
    PATCH  /api/v1/steps/<step_id>
    DELETE /api/v1/steps/<step_id>

Request parsing only; the routine service owns validation, reconciliation
and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

import app.services.routine_service as rs
from app.blueprints import json_body
from app.core.exceptions import NotFoundError
from app.utils.errors import E, api_error, error_response

logger = logging.getLogger(__name__)

routine_bp = Blueprint("routine_bp", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@routine_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return error_response(error.to_error())


# ═══════════════════════════════════════════════════════════════════════════
#  Routines
# ═══════════════════════════════════════════════════════════════════════════


@routine_bp.route("/users/<user_profile_id>/routine", methods=["GET"])
def get_routine(user_profile_id):
    routine = rs.get_routine(user_profile_id)
    if routine is None:
        raise NotFoundError("Routine for user", user_profile_id)
    return jsonify(routine.to_dict(include_steps=True))


@routine_bp.route("/users/<user_profile_id>/routine", methods=["POST"])
def create_routine(user_profile_id):
    """Body: {name, start_date, end_date?, saved_as_template?}"""
    routine, err = rs.create_routine(user_profile_id, json_body())
    if err:
        return error_response(err)
    return jsonify(routine.to_dict()), 201


@routine_bp.route("/routines/<routine_id>", methods=["PATCH"])
def update_routine(routine_id):
    """Body: any of {name, start_date, end_date}; end_date null = indefinite."""
    data = json_body()
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body is required")
    routine, err = rs.update_routine(routine_id, data)
    if err:
        return error_response(err)
    return jsonify(routine.to_dict(include_steps=True))


@routine_bp.route("/routines/<routine_id>", methods=["DELETE"])
def delete_routine(routine_id):
    _, err = rs.delete_routine(routine_id)
    if err:
        return error_response(err)
    return jsonify({"deleted": True, "id": routine_id})


@routine_bp.route("/routines/<routine_id>/publish", methods=["POST"])
def publish_routine(routine_id):
    routine, err = rs.publish_routine(routine_id)
    if err:
        return error_response(err)
    return jsonify(routine.to_dict(include_steps=True))


# ═══════════════════════════════════════════════════════════════════════════
#  Steps
# ═══════════════════════════════════════════════════════════════════════════


@routine_bp.route("/routines/<routine_id>/steps", methods=["POST"])
def create_step(routine_id):
    """Body: {routine_step, product_name, time_of_day, frequency?, days?,
    product_url?, instructions?}"""
    step, err = rs.create_routine_step(routine_id, json_body())
    if err:
        return error_response(err)
    return jsonify(step.to_dict()), 201


@routine_bp.route("/routines/<routine_id>/steps/order", methods=["PUT"])
def reorder_steps(routine_id):
    """Body: {time_of_day, step_ids: [...]}"""
    data = json_body()
    steps, err = rs.reorder_routine_steps(
        routine_id, data.get("time_of_day"), data.get("step_ids"),
    )
    if err:
        return error_response(err)
    return jsonify({"steps": [s.to_dict() for s in steps]})


@routine_bp.route("/steps/<step_id>", methods=["PATCH"])
def update_step(step_id):
    data = json_body()
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body is required")
    step, err = rs.update_routine_step(step_id, data)
    if err:
        return error_response(err)
    return jsonify(step.to_dict())


@routine_bp.route("/steps/<step_id>", methods=["DELETE"])
def delete_step(step_id):
    _, err = rs.delete_routine_step(step_id)
    if err:
        return error_response(err)
    return jsonify({"deleted": True, "id": step_id})
