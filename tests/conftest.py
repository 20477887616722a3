"""
Shared pytest fixtures for the Allocation Planner test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - academic_year: Pre-created AcademicYear with a 100 credit-hour budget
"""

import pytest

from allocation_planner import create_app
from allocation_planner.models import db as _db
from allocation_planner.models.academic import AcademicYear


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def academic_year():
    """Committed academic year; lifecycle failures roll back, so fixtures commit."""
    year = AcademicYear(year_name="2025/26", total_credit_hours=100)
    _db.session.add(year)
    _db.session.commit()
    return year
