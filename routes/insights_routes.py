# routes/insights_routes.py
from flask import Blueprint, jsonify, request, current_app
from db import db
from models import InsightCategory, InsightStatus, Priority
from repositories.insights import InsightStore
from services.errors import TicketingError

insights_blueprint = Blueprint("insights", __name__)

FILTERS = {"status": InsightStatus, "category": InsightCategory, "priority": Priority}


@insights_blueprint.route("/", methods=["GET"])
def list_insights():
    filters = {name: request.args.get(name) for name in FILTERS}
    for name, value in filters.items():
        if value and value not in {member.value for member in FILTERS[name]}:
            return jsonify({"error": f"Invalid {name} filter: {value}"}), 400

    insights = InsightStore(db.session).get_insights(**filters)
    return jsonify({
        "insights": [insight.to_dict() for insight in insights],
        "total": len(insights),
        "filters": filters,
    })


@insights_blueprint.route("/<insight_id>", methods=["GET"])
def get_insight(insight_id):
    insight = InsightStore(db.session).get_insight(insight_id)
    if not insight:
        return jsonify({"error": "Insight not found"}), 404
    return jsonify(insight.to_dict())


@insights_blueprint.route("/<insight_id>/status", methods=["PATCH"])
def update_insight_status(insight_id):
    data = request.get_json(silent=True) or {}
    valid_statuses = [status.value for status in InsightStatus]
    if data.get("status") not in valid_statuses:
        return jsonify({"error": f"Invalid status. Must be one of: {', '.join(valid_statuses)}"}), 400

    updated = InsightStore(db.session).update_status(insight_id, InsightStatus(data["status"]))
    if not updated:
        return jsonify({"error": "Insight not found"}), 404
    return jsonify(updated.to_dict())


@insights_blueprint.route("/<insight_id>/jira", methods=["POST"])
def create_jira_ticket(insight_id):
    store = InsightStore(db.session)
    insight = store.get_insight(insight_id)
    if not insight:
        return jsonify({"error": "Insight not found"}), 404
    if insight.ticket_ref:
        return jsonify({"error": "Jira ticket already created", "ticketId": insight.ticket_ref}), 400

    jira = current_app.extensions["jira_client"]
    if not jira.is_available():
        return jsonify({"error": "Jira integration not configured"}), 503

    try:
        issue = jira.create_issue(insight)
    except TicketingError as e:
        current_app.logger.error(f"Error creating Jira ticket: {e}")
        return jsonify({"error": "Failed to create Jira ticket"}), 502

    store.attach_ticket(insight.id, issue["key"])
    return jsonify({
        "message": "Jira ticket created successfully",
        "ticketKey": issue["key"],
        "ticketUrl": jira.browse_url(issue),
    })
