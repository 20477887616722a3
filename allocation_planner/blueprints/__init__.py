"""Query-string parsing shared by the JSON blueprints."""

from datetime import datetime

from allocation_planner.core.exceptions import ValidationError

_TRUE = {"1", "true", "yes"}
_FALSE = {"0", "false", "no"}


def parse_bool(raw: str | None, name: str) -> bool | None:
    """``None`` when absent; ValidationError when not a recognised flag."""
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValidationError(f"{name} must be true or false", details={name: "invalid"})


def parse_datetime(raw: str | None, name: str) -> datetime | None:
    """ISO-8601 timestamp or ``None``."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 timestamp",
                              details={name: "invalid"}) from exc
