"""
Allocation plan blueprint.

Endpoints:
    GET  /api/v1/allocation-plans                          — list (year_id, status, is_current, page, per_page)
    POST /api/v1/allocation-plans                          — create
    GET  /api/v1/allocation-plans/current?year_id=         — current plan of a year
    GET  /api/v1/allocation-plans/<id>                     — single plan
    PUT  /api/v1/allocation-plans/<id>                     — partial update (keys present in body)
    POST /api/v1/allocation-plans/<id>/current             — make current
    POST /api/v1/allocation-plans/<id>/archive             — archive
    POST /api/v1/allocation-plans/<id>/run-allocation      — run the allocation algorithm
    GET  /api/v1/allocation-plans/<id>/change-logs         — ledger of one plan

The acting user is taken from the X-Actor header ("system" when absent).
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from allocation_planner.blueprints import parse_bool, parse_datetime
from allocation_planner.services import change_ledger
from allocation_planner.services import plan_lifecycle as lifecycle
from allocation_planner.services.allocation_runner import run_allocation_for_year
from allocation_planner.utils.errors import E, api_error

logger = logging.getLogger(__name__)

allocation_plan_bp = Blueprint("allocation_plans", __name__, url_prefix="/api/v1")


def _actor() -> str:
    return (request.headers.get("X-Actor") or "").strip() or "system"


# ── Listing / reads ──────────────────────────────────────────────────────────


@allocation_plan_bp.route("/allocation-plans", methods=["GET"])
def list_plans():
    result = lifecycle.list_plans(
        year_id=request.args.get("year_id", type=int),
        status=request.args.get("status") or None,
        is_current=parse_bool(request.args.get("is_current"), "is_current"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result)


@allocation_plan_bp.route("/allocation-plans/current", methods=["GET"])
def get_current_plan():
    year_id = request.args.get("year_id", type=int)
    if year_id is None:
        return api_error(E.VALIDATION_REQUIRED, "year_id is required")
    return jsonify(lifecycle.get_current_plan_for_year(year_id))


@allocation_plan_bp.route("/allocation-plans/<int:plan_id>", methods=["GET"])
def get_plan(plan_id):
    return jsonify(lifecycle.get_plan(plan_id))


# ── Mutations ────────────────────────────────────────────────────────────────


@allocation_plan_bp.route("/allocation-plans", methods=["POST"])
def create_plan():
    data = request.get_json(silent=True) or {}
    missing = [k for k in ("academic_year_id", "plan_name", "plan_version") if data.get(k) in (None, "")]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required field(s): {', '.join(missing)}",
            details={"missing": missing},
        )
    if not isinstance(data["academic_year_id"], int):
        return api_error(E.VALIDATION_INVALID, "academic_year_id must be an integer")

    plan = lifecycle.create_plan(
        data["academic_year_id"],
        data["plan_name"],
        data["plan_version"],
        data.get("status", "draft"),
        data.get("is_current", False),
        data.get("notes"),
        actor=_actor(),
    )
    return jsonify(plan), 201


@allocation_plan_bp.route("/allocation-plans/<int:plan_id>", methods=["PUT"])
def update_plan(plan_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    patch = lifecycle.PlanPatch.from_mapping(data)
    return jsonify(lifecycle.update_plan(plan_id, patch, actor=_actor()))


@allocation_plan_bp.route("/allocation-plans/<int:plan_id>/current", methods=["POST"])
def set_current_plan(plan_id):
    return jsonify(lifecycle.set_current_plan(plan_id, actor=_actor()))


@allocation_plan_bp.route("/allocation-plans/<int:plan_id>/archive", methods=["POST"])
def archive_plan(plan_id):
    return jsonify(lifecycle.archive_plan(plan_id, actor=_actor()))


@allocation_plan_bp.route("/allocation-plans/<int:plan_id>/run-allocation", methods=["POST"])
def run_allocation(plan_id):
    data = request.get_json(silent=True) or {}
    new_plan_id = run_allocation_for_year(
        plan_id,
        is_current=data.get("is_current"),
        plan_version=data.get("plan_version") or None,
        actor=_actor(),
    )
    return jsonify({"new_plan_id": new_plan_id}), 201


# ── Ledger ───────────────────────────────────────────────────────────────────


@allocation_plan_bp.route("/allocation-plans/<int:plan_id>/change-logs", methods=["GET"])
def plan_change_logs(plan_id):
    result = change_ledger.logs_by_plan(
        plan_id,
        entity_type=request.args.get("entity_type") or None,
        change_type=request.args.get("change_type") or None,
        start=parse_datetime(request.args.get("start"), "start"),
        end=parse_datetime(request.args.get("end"), "end"),
        actor=request.args.get("actor") or None,
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", change_ledger.PER_PAGE_DEFAULT, type=int),
    )
    return jsonify(result)
