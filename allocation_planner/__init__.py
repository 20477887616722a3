"""
Allocation Planner
Flask Application Factory.

Usage:
    from allocation_planner import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import IntegrityError

from allocation_planner.config import config
from allocation_planner.core.exceptions import (
    ConflictError,
    DuplicateVersionError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from allocation_planner.middleware.logging_config import configure_logging
from allocation_planner.middleware.timing import init_request_timing
from allocation_planner.models import db
from allocation_planner.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def _load_algorithm(app):
    """Instantiate ALLOCATION_ALGORITHM ("pkg.module:ClassName") if configured."""
    from allocation_planner.services.allocation_runner import register_allocation_algorithm

    target = app.config.get("ALLOCATION_ALGORITHM")
    if not target:
        return
    module_name, _, class_name = target.partition(":")
    algorithm_cls = getattr(importlib.import_module(module_name), class_name)
    register_allocation_algorithm(app, algorithm_cls())
    app.logger.info("Allocation algorithm registered: %s", target)


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def _validation(e):
        return api_error(E.VALIDATION_RULE, str(e), details=e.details)

    @app.errorhandler(DuplicateVersionError)
    def _duplicate_version(e):
        return api_error(
            E.DUPLICATE_VERSION, str(e),
            details={"academic_year_id": e.academic_year_id, "plan_version": e.value},
        )

    @app.errorhandler(ConflictError)
    def _conflict(e):
        return api_error(E.CONFLICT_DUPLICATE, str(e), details={"field": e.field})

    @app.errorhandler(InvalidTransitionError)
    def _invalid_transition(e):
        return api_error(
            E.INVALID_TRANSITION, str(e),
            details={"plan_id": e.plan_id, "action": e.action, "status": e.current_status},
        )

    @app.errorhandler(IntegrityError)
    def _integrity(e):
        # A concurrent writer won the unique/partial index race
        db.session.rollback()
        logger.warning("Integrity error on %s %s: %s", request.method, request.path, e.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Conflicting concurrent change, retry the request")

    @app.errorhandler(404)
    def _route_not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error on %s %s", request.method, request.path,
                     exc_info=getattr(e, "original_exception", None) or e)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    from allocation_planner.services.audit_sink import AuditSink
    AuditSink(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from allocation_planner.models import academic as _academic_models        # noqa: F401
    from allocation_planner.models import allocation as _allocation_models    # noqa: F401
    from allocation_planner.models import plan_change_log as _ledger_models   # noqa: F401
    from allocation_planner.models import audit as _audit_models              # noqa: F401

    # ── Auto-create tables (development convenience) ─────────────────────
    if not app.testing:
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from allocation_planner.blueprints.allocation_plan_bp import allocation_plan_bp
    from allocation_planner.blueprints.health_bp import health_bp
    from allocation_planner.blueprints.plan_change_log_bp import plan_change_log_bp
    from allocation_planner.blueprints.report_bp import report_bp

    app.register_blueprint(allocation_plan_bp)
    app.register_blueprint(plan_change_log_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(health_bp)

    _register_error_handlers(app)
    _load_algorithm(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("export-allocation-report")
    @click.argument("plan_id")
    @click.option("--out", "out_path", default=None, help="Target .xlsx path.")
    def export_allocation_report_cmd(plan_id, out_path):
        """Write the allocation report of PLAN_ID (or "latest") to an .xlsx file."""
        from allocation_planner.services.export_service import export_allocation_report_xlsx
        from allocation_planner.services.report_engine import ReportEngine

        if plan_id == "latest":
            report = ReportEngine.generate_latest_report()
        elif plan_id.isdigit():
            report = ReportEngine.generate_report(int(plan_id))
        else:
            raise click.BadParameter("must be a plan id or 'latest'", param_hint="PLAN_ID")

        out_path = out_path or f"allocation_report_{report['header']['plan_id']}.xlsx"
        with open(out_path, "wb") as fh:
            fh.write(export_allocation_report_xlsx(report).getvalue())
        logger.info("Allocation report written to %s", out_path)
        click.echo(out_path)

    return app
