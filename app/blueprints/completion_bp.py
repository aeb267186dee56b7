"""
Completion & compliance blueprint.

Endpoints:
    GET   /api/v1/users/<uid>/completions?start=&end=
    PATCH /api/v1/users/<uid>/completions/<completion_id>   {completed: bool}
    POST  /api/v1/users/<uid>/completions/by-date           {date, completed}
    POST  /api/v1/users/<uid>/completions/batch             {completion_ids, completed}
    POST  /api/v1/users/<uid>/completions/mark-overdue
    GET   /api/v1/users/<uid>/compliance?start=&end=
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.compliance_service as cs
from app.blueprints import json_body, paginate_items
from app.utils.errors import error_response

logger = logging.getLogger(__name__)

completion_bp = Blueprint("completion_bp", __name__, url_prefix="/api/v1")


@completion_bp.route("/users/<user_profile_id>/completions", methods=["GET"])
def list_completions(user_profile_id):
    items, err = cs.list_completions(
        user_profile_id, request.args.get("start"), request.args.get("end"),
    )
    if err:
        return error_response(err)
    page, total = paginate_items(items)
    return jsonify({"items": [c.to_dict() for c in page], "total": total})


@completion_bp.route("/users/<user_profile_id>/completions/<completion_id>", methods=["PATCH"])
def update_completion(user_profile_id, completion_id):
    data = json_body()
    completion, err = cs.update_completion(completion_id, user_profile_id, data.get("completed"))
    if err:
        return error_response(err)
    return jsonify(completion.to_dict())


@completion_bp.route("/users/<user_profile_id>/completions/by-date", methods=["POST"])
def update_completions_by_date(user_profile_id):
    data = json_body()
    result, err = cs.update_completions_by_date(
        user_profile_id, data.get("date"), data.get("completed"),
    )
    if err:
        return error_response(err)
    return jsonify({
        "updated": result["updated"],
        "rejected": result["rejected"],
        "items": [c.to_dict() for c in result["completions"]],
    })


@completion_bp.route("/users/<user_profile_id>/completions/batch", methods=["POST"])
def update_completions_batch(user_profile_id):
    """Body: {completion_ids: [...], completed: bool}"""
    data = json_body()
    result, err = cs.update_completions_by_ids(
        user_profile_id, data.get("completion_ids"), data.get("completed"),
    )
    if err:
        return error_response(err)
    return jsonify({
        "updated": result["updated"],
        "rejected": result["rejected"],
        "items": [c.to_dict() for c in result["completions"]],
    })


@completion_bp.route("/users/<user_profile_id>/completions/mark-overdue", methods=["POST"])
def mark_overdue(user_profile_id):
    marked, err = cs.mark_overdue_as_missed(user_profile_id)
    if err:
        return error_response(err)
    return jsonify({"marked_missed": marked})


@completion_bp.route("/users/<user_profile_id>/compliance", methods=["GET"])
def compliance_stats(user_profile_id):
    stats, err = cs.get_compliance_stats(
        user_profile_id, request.args.get("start"), request.args.get("end"),
    )
    if err:
        return error_response(err)
    return jsonify(stats)
