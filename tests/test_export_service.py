"""Tests for the allocation report xlsx export."""

from openpyxl import load_workbook

from allocation_planner.services.export_service import export_allocation_report_xlsx


def _report() -> dict:
    return {
        "header": {"plan_id": 1, "plan_name": "P", "plan_version": "v1",
                   "academic_year": "2025/26", "status": "DRAFT", "generated_at": "2026-01-01T00:00:00"},
        "assignments": [{
            "assignment_id": 7, "teacher_name": "Doe, Jane", "teacher_email": None,
            "school_name": "Nord", "school_zone": "Zone 1", "internship_code": "PDP1",
            "subject_code": "MATH", "student_group_size": 3, "assignment_status": "PLANNED",
        }],
        "budget_summary": {
            "total_budget_hours": 100.0, "used_hours": 105.0, "remaining_hours": -5.0,
            "elementary_hours_used": 60.0, "middle_school_hours_used": 45.0, "is_over_budget": True,
        },
        "utilization_analysis": {
            "unassigned": [{"teacher_id": 2, "teacher_name": "Roe, Rick", "email": "r@x.org",
                            "school_name": "Unknown", "assignment_count": 0,
                            "notes": "Warning: Unused Resource"}],
            "under_utilized": [],
            "perfectly_utilized": [{"teacher_id": 3, "teacher_name": "Poe, Pat", "email": "p@x.org",
                                    "school_name": "Nord", "assignment_count": 2, "notes": None}],
            "over_utilized": [],
        },
    }


def _rows(ws) -> list[tuple]:
    return [tuple(r) for r in ws.iter_rows(values_only=True)]


class TestAllocationReportWorkbook:
    def test_sheet_order(self):
        wb = load_workbook(export_allocation_report_xlsx(_report()))
        assert wb.sheetnames == [
            "Assignments", "Budget Summary", "Unassigned Teachers",
            "Under-Utilized Teachers", "Over-Utilized Teachers", "Perfectly Utilized Teachers",
        ]

    def test_assignment_rows(self):
        wb = load_workbook(export_allocation_report_xlsx(_report()))
        rows = _rows(wb["Assignments"])
        assert rows[0][0] == "Assignment ID"
        assert rows[1][:2] == ("7", "Doe, Jane")
        assert rows[1][3:] == ("Nord", "Zone 1", "PDP1", "MATH", 3, "PLANNED")

    def test_budget_sheet(self):
        wb = load_workbook(export_allocation_report_xlsx(_report()))
        metrics = dict(_rows(wb["Budget Summary"])[1:])
        assert metrics["Used Hours"] == 105
        assert metrics["Remaining Hours"] == -5
        assert metrics["Over Budget"] == "YES"

    def test_utilization_sheets(self):
        wb = load_workbook(export_allocation_report_xlsx(_report()))
        assert _rows(wb["Unassigned Teachers"])[1][5] == "Warning: Unused Resource"
        assert _rows(wb["Perfectly Utilized Teachers"])[1][4] == 2
        assert len(_rows(wb["Over-Utilized Teachers"])) == 1  # header only

    def test_not_over_budget(self):
        report = _report()
        report["budget_summary"]["is_over_budget"] = False
        wb = load_workbook(export_allocation_report_xlsx(report))
        assert dict(_rows(wb["Budget Summary"])[1:])["Over Budget"] == "NO"
