"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi export-allocation-report latest --out report.xlsx
    gunicorn wsgi:app
"""

from allocation_planner import create_app

app = create_app()
