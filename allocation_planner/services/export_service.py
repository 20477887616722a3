import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

ASSIGNMENT_HEADERS = [
    "Assignment ID", "Teacher Name", "Teacher Email", "School Name", "School Zone",
    "Internship Type", "Subject Code", "Student Group Size", "Assignment Status",
]
UTILIZATION_HEADERS = ["Teacher ID", "Teacher Name", "Email", "School Name", "Assignment Count", "Notes"]

# (sheet title, key in report["utilization_analysis"])
UTILIZATION_SHEETS = (
    ("Unassigned Teachers", "unassigned"),
    ("Under-Utilized Teachers", "under_utilized"),
    ("Over-Utilized Teachers", "over_utilized"),
    ("Perfectly Utilized Teachers", "perfectly_utilized"),
)


def _text(value) -> str:
    return "" if value is None else str(value)


def _write_header(ws, headers):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER


def _autosize(ws, width_cap: int = 50):
    for col_cells in ws.columns:
        length = max(len(_text(c.value)) for c in col_cells)
        ws.column_dimensions[get_column_letter(col_cells[0].column)].width = min(length + 2, width_cap)


def export_allocation_report_xlsx(report: dict) -> io.BytesIO:
    """
    Render an allocation report (as built by ReportEngine) into a workbook
    with one sheet per list. Returns a BytesIO buffer ready for send_file.
    """
    wb = Workbook()

    # ── Assignments ───────────────────────────────────────────────────
    ws = wb.active
    ws.title = "Assignments"
    _write_header(ws, ASSIGNMENT_HEADERS)
    for row, item in enumerate(report.get("assignments", []), 2):
        values = [
            _text(item.get("assignment_id")),
            item.get("teacher_name"),
            _text(item.get("teacher_email")),
            item.get("school_name"),
            item.get("school_zone"),
            item.get("internship_code"),
            item.get("subject_code"),
            item.get("student_group_size", 0),
            item.get("assignment_status"),
        ]
        for col, value in enumerate(values, 1):
            ws.cell(row=row, column=col, value=value).border = THIN_BORDER
    _autosize(ws)

    # ── Budget Summary ────────────────────────────────────────────────
    budget = report.get("budget_summary", {})
    ws = wb.create_sheet("Budget Summary")
    _write_header(ws, ["Metric", "Value"])
    metrics = [
        ("Total Budget Hours", budget.get("total_budget_hours", 0.0)),
        ("Used Hours", budget.get("used_hours", 0.0)),
        ("Remaining Hours", budget.get("remaining_hours", 0.0)),
        ("Elementary School Hours Used", budget.get("elementary_hours_used", 0.0)),
        ("Middle School Hours Used", budget.get("middle_school_hours_used", 0.0)),
        ("Over Budget", "YES" if budget.get("is_over_budget") else "NO"),
    ]
    for row, (metric, value) in enumerate(metrics, 2):
        ws.cell(row=row, column=1, value=metric).border = THIN_BORDER
        ws.cell(row=row, column=2, value=value).border = THIN_BORDER
    _autosize(ws)

    # ── Utilization sheets ────────────────────────────────────────────
    utilization = report.get("utilization_analysis", {})
    for title, key in UTILIZATION_SHEETS:
        ws = wb.create_sheet(title)
        _write_header(ws, UTILIZATION_HEADERS)
        for row, teacher in enumerate(utilization.get(key, []), 2):
            values = [
                _text(teacher.get("teacher_id")),
                teacher.get("teacher_name"),
                teacher.get("email"),
                teacher.get("school_name"),
                teacher.get("assignment_count", 0),
                _text(teacher.get("notes")),
            ]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=value).border = THIN_BORDER
        _autosize(ws)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.debug("Allocation report workbook rendered (%d bytes)", buf.getbuffer().nbytes)
    return buf
