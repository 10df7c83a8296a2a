# routes/analytics_routes.py
from datetime import timedelta
from itertools import islice

from flask import Blueprint, jsonify, request, current_app
from db import db
from repositories.graph import GraphStore
from services.pain_points import PainPointDetector, DetectionPolicy
from services.posthog_client import parse_timestamp
from utils import utcnow

analytics_blueprint = Blueprint("analytics", __name__)


def _detector():
    return PainPointDetector(GraphStore(db.session), DetectionPolicy.from_config(current_app.config))


@analytics_blueprint.route("/summary", methods=["GET"])
def analytics_summary():
    try:
        end = parse_timestamp(request.args["endDate"]) if request.args.get("endDate") else utcnow()
        start = parse_timestamp(request.args["startDate"]) if request.args.get("startDate") else end - timedelta(days=7)
    except ValueError:
        return jsonify({"error": "Invalid date format. Use ISO format."}), 400

    detector = _detector()
    top_dropoffs = list(detector.dropoff_rows())
    user_cycles = list(detector.cycle_rows())
    underused = list(detector.underused_rows())
    common_paths = list(islice(detector.graph_store.common_paths(max_length=5), 5))

    return jsonify({
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "painPoints": {
            "dropoffs": len(top_dropoffs),
            "cycles": len(user_cycles),
            "underused": len(underused),
        },
        "topDropoffs": top_dropoffs[:5],
        "commonPaths": common_paths,
        "underusedFeatures": underused[:5],
    })


@analytics_blueprint.route("/paths", methods=["GET"])
def user_paths():
    start_page = request.args.get("startPage")
    max_length = request.args.get("maxLength", default=5, type=int)
    if not 1 <= max_length <= 5:
        return jsonify({"error": "maxLength must be between 1 and 5"}), 400

    paths = list(GraphStore(db.session).common_paths(start_url=start_page, max_length=max_length))
    return jsonify({"startPage": start_page, "maxLength": max_length, "paths": paths})


@analytics_blueprint.route("/pages/performance", methods=["GET"])
def page_performance():
    return jsonify({
        "pages": list(_detector().page_timings()),
        "metadata": {
            "unit": "milliseconds",
            "description": "Average time spent on each page",
        },
    })
