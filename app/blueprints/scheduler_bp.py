"""
Scheduler blueprint.

Endpoints:
    GET   /api/v1/scheduler/jobs
    GET   /api/v1/scheduler/jobs/<job_name>
    POST  /api/v1/scheduler/jobs/<job_name>/trigger
    PATCH /api/v1/scheduler/jobs/<job_name>/toggle     {enabled: bool}
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.models.scheduling import ScheduledJob
from app.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler_bp", __name__, url_prefix="/api/v1")


@scheduler_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    """List all scheduled jobs with their status."""
    jobs = ScheduledJob.query.all()
    return jsonify({
        "jobs": [j.to_dict() for j in jobs],
        "total": len(jobs),
    })


@scheduler_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    """Get status of a specific scheduled job."""
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    return jsonify(job)


@scheduler_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Manually trigger a scheduled job (runs even when disabled)."""
    result = SchedulerService.run_job(job_name, force=True)
    if result.get("status") == "error" and "Unknown job" in result.get("error", ""):
        return jsonify(result), 404
    return jsonify(result)


@scheduler_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return jsonify({"error": "'enabled' field is required (true/false)"}), 400

    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404

    return jsonify(result)
