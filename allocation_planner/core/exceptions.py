"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from allocation_planner.core.exceptions import NotFoundError, InvalidTransitionError

    raise NotFoundError(resource="AllocationPlan", resource_id=42)
    raise InvalidTransitionError(42, "archive", "archived", "Plan is already archived")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "AllocationPlan", "AcademicYear").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class DuplicateVersionError(ConflictError):
    """A plan with this version already exists for the academic year."""

    def __init__(self, academic_year_id: int, plan_version: str) -> None:
        self.academic_year_id = academic_year_id
        super().__init__("AllocationPlan", "plan_version", plan_version)
        self.args = (
            f"Allocation plan with version {plan_version!r} already exists "
            f"for academic year {academic_year_id}",
        )


class InvalidTransitionError(Exception):
    """Raised when a plan lifecycle action is not allowed from its current state.

    Maps to HTTP 409.
    """

    def __init__(self, plan_id: int, action: str, current: str, reason: str | None = None) -> None:
        msg = f"Cannot '{action}' allocation plan {plan_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.plan_id = plan_id
        self.action = action
        self.current_status = current
        self.reason = reason


class SerializationDegraded(Exception):
    """A ledger snapshot could not be serialised canonically.

    Never escapes the change ledger: it is caught, logged, and the value is
    stored in its plain string form instead.
    """
