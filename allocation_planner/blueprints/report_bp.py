"""
Allocation report blueprint.

Endpoints:
    GET /api/v1/reports/allocation/latest             — report for the newest plan
    GET /api/v1/reports/allocation/<plan_id>          — report for a plan
    GET /api/v1/reports/allocation/<plan_id>/export   — same report as .xlsx
    GET /api/v1/reports/allocation/<plan_id>/health   — budget compliance of a plan
"""

from datetime import datetime

from flask import Blueprint, jsonify, send_file

from allocation_planner.services.export_service import export_allocation_report_xlsx
from allocation_planner.services.report_engine import ReportEngine

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@report_bp.route("/allocation/latest", methods=["GET"])
def latest_allocation_report():
    return jsonify(ReportEngine.generate_latest_report())


@report_bp.route("/allocation/<int:plan_id>", methods=["GET"])
def allocation_report(plan_id):
    return jsonify(ReportEngine.generate_report(plan_id))


@report_bp.route("/allocation/<int:plan_id>/export", methods=["GET"])
def export_allocation_report(plan_id):
    report = ReportEngine.generate_report(plan_id)
    buf = export_allocation_report_xlsx(report)
    filename = f"allocation_report_{plan_id}_{datetime.now().strftime('%Y%m%d')}.xlsx"
    return send_file(buf, download_name=filename, mimetype=XLSX_MIMETYPE, as_attachment=True)


@report_bp.route("/allocation/<int:plan_id>/health", methods=["GET"])
def allocation_health_report(plan_id):
    return jsonify(ReportEngine.generate_health_report(plan_id))
