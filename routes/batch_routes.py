# routes/batch_routes.py
# Trigger and monitor the insights batch job
from flask import Blueprint, request, jsonify, current_app
from services.errors import ConflictError

batch_blueprint = Blueprint("batch", __name__)


@batch_blueprint.route("/run", methods=["POST"])
def run_batch():
    data = request.get_json(silent=True) or {}
    force = bool(data.get("force", False))
    processor = current_app.extensions["batch_processor"]

    try:
        job = processor.start(force=force)
    except ConflictError as e:
        return jsonify({"error": "Batch job is already running", "jobId": e.job_id}), 409

    processor.run_in_background(current_app._get_current_object(), job)
    return jsonify({
        "message": "Batch job started",
        "jobId": job.id,
        "note": "Check /api/batch/status for progress",
    }), 202


@batch_blueprint.route("/status", methods=["GET"])
def batch_status():
    job = current_app.extensions["batch_store"].get_current_job()
    if not job:
        return jsonify({"status": "idle", "message": "No batch job running"})
    return jsonify(job.to_dict())


@batch_blueprint.route("/history", methods=["GET"])
def batch_history():
    limit = request.args.get("limit", default=10, type=int)
    history = current_app.extensions["batch_store"].get_job_history(limit)
    return jsonify({
        "history": [job.to_dict() for job in history],
        "total": len(history),
    })
