"""
Plan change ledger blueprint.

Endpoints:
    GET  /api/v1/plan-change-logs               — list / filter ledger entries
    GET  /api/v1/plan-change-logs/<int:log_id>  — single entry
"""

from flask import Blueprint, jsonify, request

from allocation_planner.blueprints import parse_datetime
from allocation_planner.services import change_ledger

plan_change_log_bp = Blueprint("plan_change_logs", __name__, url_prefix="/api/v1")


@plan_change_log_bp.route("/plan-change-logs", methods=["GET"])
def list_change_logs():
    """
    Return paginated ledger entries, newest first.

    Query params:
        plan_id      — filter by plan
        entity_type  — filter by entity type
        change_type  — CREATE | UPDATE | STATUS_CHANGE | …
        start / end  — ISO-8601 bounds on event_timestamp
        actor        — filter by changed_by
        page         — page number (default 1)
        per_page     — items per page (default 50, max 200)
    """
    result = change_ledger.logs_by_filters(
        plan_id=request.args.get("plan_id", type=int),
        entity_type=request.args.get("entity_type") or None,
        change_type=request.args.get("change_type") or None,
        start=parse_datetime(request.args.get("start"), "start"),
        end=parse_datetime(request.args.get("end"), "end"),
        actor=request.args.get("actor") or None,
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", change_ledger.PER_PAGE_DEFAULT, type=int),
    )
    return jsonify(result)


@plan_change_log_bp.route("/plan-change-logs/<int:log_id>", methods=["GET"])
def get_change_log(log_id):
    return jsonify(change_ledger.get_log(log_id).to_dict())
