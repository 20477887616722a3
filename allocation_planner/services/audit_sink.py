"""
Allocation Planner
Best-effort global audit sink.

Writes AuditLog rows *after* the business transaction committed. Unlike the
plan change ledger this trail is fire-and-forget: every failure is logged
and swallowed, and the caller never waits for the outcome.

Modes:
    AUDIT_SINK_ASYNC=True   → write on a small ThreadPoolExecutor, each job in
                              a fresh app context with its own session.
    AUDIT_SINK_ASYNC=False  → write inline (tests), still never raising.
    AUDIT_SINK_ENABLED=False → nothing is written.
"""

import atexit
import logging
from concurrent.futures import ThreadPoolExecutor

from flask import current_app

from allocation_planner.models import db
from allocation_planner.models.audit import write_audit

logger = logging.getLogger(__name__)


class AuditSink:
    """Fire-and-forget writer for the global audit trail."""

    def __init__(self, app=None):
        self._app = None
        self._executor: ThreadPoolExecutor | None = None
        self.enabled = True
        self.asynchronous = True
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self._app = app
        self.enabled = app.config.get("AUDIT_SINK_ENABLED", True)
        self.asynchronous = app.config.get("AUDIT_SINK_ASYNC", True)
        if self.enabled and self.asynchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=app.config.get("AUDIT_SINK_WORKERS", 2),
                thread_name_prefix="audit-sink",
            )
            atexit.register(self.shutdown)
        app.extensions["audit_sink"] = self

    def record_async(self, actor, action, entity_type, entity_id, before=None, after=None):
        """Queue one audit row. Never raises."""
        if not self.enabled:
            return
        payload = {
            "actor": actor or "system",
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "before": before,
            "after": after,
        }
        try:
            if self._executor is not None:
                self._executor.submit(self._write_in_context, self._app, payload)
            else:
                self._write(payload)
        except Exception:
            logger.warning("Audit sink could not accept %s for %s/%s",
                           action, entity_type, entity_id, exc_info=True)

    def shutdown(self, wait: bool = True):
        """Drain queued writes and stop the worker threads; runs at interpreter exit."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    # ── Internal ──────────────────────────────────────────────────────────

    def _write_in_context(self, app, payload: dict):
        with app.app_context():
            self._write(payload)

    @staticmethod
    def _write(payload: dict):
        try:
            write_audit(
                entity_type=payload["entity_type"],
                entity_id=payload["entity_id"],
                action=payload["action"],
                actor=payload["actor"],
                before=payload["before"],
                after=payload["after"],
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.warning("Audit sink failed to write %s for %s/%s",
                           payload["action"], payload["entity_type"], payload["entity_id"],
                           extra={"actor": payload["actor"]}, exc_info=True)


def get_audit_sink() -> AuditSink | None:
    """The sink registered on the current app, if any."""
    return current_app.extensions.get("audit_sink")
