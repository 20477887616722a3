"""JSON error bodies for the allocation planner API.

Every error response has the shape ``{"error", "code"[, "details"]}``.

Usage:
    from allocation_planner.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "AllocationPlan id=42 not found")
    return api_error(E.INVALID_TRANSITION, str(exc), details={"status": "archived"})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes returned in the ``code`` field."""

    # 400: malformed request
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # 422: well-formed but breaks a plan rule
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    NOT_FOUND = "ERR_NOT_FOUND"

    # 409: plan state or version conflicts
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    DUPLICATE_VERSION = "ERR_DUPLICATE_VERSION"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"

    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DUPLICATE_VERSION: 409,
    E.INVALID_TRANSITION: 409,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a view or error handler.

    *status* defaults to the code's usual HTTP status, or 400 for codes
    not in the table.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)
