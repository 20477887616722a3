"""HTTP contract tests for the allocation plan, ledger, report and health endpoints."""

import io

from openpyxl import load_workbook

from allocation_planner.models import db
from allocation_planner.models.academic import Teacher
from allocation_planner.models.allocation import TeacherAssignment


# ── Helpers ─────────────────────────────────────────────────────────────────


def _create(client, year_id, version="v1", actor="registrar", **extra):
    payload = {"academic_year_id": year_id, "plan_name": "API plan", "plan_version": version, **extra}
    return client.post("/api/v1/allocation-plans", json=payload, headers={"X-Actor": actor})


# ── Plans ───────────────────────────────────────────────────────────────────


class TestPlanEndpoints:
    def test_create_and_get(self, client, academic_year):
        res = _create(client, academic_year.id)
        assert res.status_code == 201
        plan = res.get_json()
        assert plan["created_by"] == "registrar"

        got = client.get(f"/api/v1/allocation-plans/{plan['id']}")
        assert got.status_code == 200
        assert got.get_json()["plan_version"] == "v1"

    def test_create_missing_fields(self, client):
        res = client.post("/api/v1/allocation-plans", json={"plan_name": "x"})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_REQUIRED"
        assert "academic_year_id" in body["details"]["missing"]

    def test_create_unknown_year(self, client):
        res = _create(client, 999)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_duplicate_version(self, client, academic_year):
        _create(client, academic_year.id)
        res = _create(client, academic_year.id)
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_DUPLICATE_VERSION"
        assert body["details"]["plan_version"] == "v1"

    def test_update_only_present_keys(self, client, academic_year):
        plan = _create(client, academic_year.id, notes="keep").get_json()
        res = client.put(f"/api/v1/allocation-plans/{plan['id']}", json={"status": "in_review"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "in_review"
        assert body["notes"] == "keep"

    def test_update_unknown_field(self, client, academic_year):
        plan = _create(client, academic_year.id).get_json()
        res = client.put(f"/api/v1/allocation-plans/{plan['id']}", json={"created_by": "x"})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_set_current_and_lookup(self, client, academic_year):
        a = _create(client, academic_year.id, "v1", is_current=True).get_json()
        b = _create(client, academic_year.id, "v2").get_json()

        res = client.post(f"/api/v1/allocation-plans/{b['id']}/current")
        assert res.status_code == 200

        current = client.get(f"/api/v1/allocation-plans/current?year_id={academic_year.id}")
        assert current.get_json()["id"] == b["id"]
        assert client.get(f"/api/v1/allocation-plans/{a['id']}").get_json()["is_current"] is False

    def test_current_requires_year_id(self, client):
        res = client.get("/api/v1/allocation-plans/current")
        assert res.status_code == 400

    def test_archive_twice(self, client, academic_year):
        plan = _create(client, academic_year.id).get_json()
        assert client.post(f"/api/v1/allocation-plans/{plan['id']}/archive").status_code == 200

        res = client.post(f"/api/v1/allocation-plans/{plan['id']}/archive")
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["details"]["status"] == "archived"

    def test_list_with_filters(self, client, academic_year):
        _create(client, academic_year.id, "v1")
        _create(client, academic_year.id, "v2", is_current=True)

        body = client.get(
            f"/api/v1/allocation-plans?year_id={academic_year.id}&is_current=true"
        ).get_json()
        assert body["total"] == 1
        assert body["items"][0]["plan_version"] == "v2"

    def test_list_bad_flag(self, client):
        assert client.get("/api/v1/allocation-plans?is_current=maybe").status_code == 422

    def test_run_allocation_without_algorithm(self, client, academic_year):
        plan = _create(client, academic_year.id).get_json()
        res = client.post(f"/api/v1/allocation-plans/{plan['id']}/run-allocation")
        assert res.status_code == 422


# ── Ledger ──────────────────────────────────────────────────────────────────


class TestChangeLogEndpoints:
    def test_plan_change_logs(self, client, academic_year):
        plan = _create(client, academic_year.id).get_json()
        client.put(f"/api/v1/allocation-plans/{plan['id']}", json={"notes": "n"},
                   headers={"X-Actor": "editor"})

        body = client.get(f"/api/v1/allocation-plans/{plan['id']}/change-logs").get_json()
        assert [i["change_type"] for i in body["items"]] == ["UPDATE", "CREATE"]
        assert body["items"][0]["changed_by"] == "editor"

        by_actor = client.get("/api/v1/plan-change-logs?actor=editor").get_json()
        assert by_actor["total"] == 1

        log_id = body["items"][0]["id"]
        assert client.get(f"/api/v1/plan-change-logs/{log_id}").get_json()["id"] == log_id
        assert client.get(f"/api/v1/plan-change-logs/{log_id + 50}").status_code == 404

    def test_bad_date_filter(self, client):
        assert client.get("/api/v1/plan-change-logs?start=yesterday").status_code == 422


# ── Reports ─────────────────────────────────────────────────────────────────


class TestReportEndpoints:
    def test_report_and_export(self, client, academic_year):
        plan = _create(client, academic_year.id).get_json()
        teacher = Teacher(email="t@x.org", last_name="Doe", first_name="Jane")
        db.session.add(teacher)
        db.session.commit()
        db.session.add(TeacherAssignment(plan_id=plan["id"], teacher_id=teacher.id))
        db.session.commit()

        report = client.get(f"/api/v1/reports/allocation/{plan['id']}").get_json()
        assert report["budget_summary"]["used_hours"] == 0.5
        assert report["utilization_analysis"]["under_utilized"][0]["teacher_name"] == "Doe, Jane"

        latest = client.get("/api/v1/reports/allocation/latest").get_json()
        assert latest["header"]["plan_id"] == plan["id"]

        res = client.get(f"/api/v1/reports/allocation/{plan['id']}/export")
        assert res.status_code == 200
        assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        wb = load_workbook(io.BytesIO(res.data))
        assert "Budget Summary" in wb.sheetnames

    def test_health_report(self, client, academic_year):
        plan = _create(client, academic_year.id).get_json()
        body = client.get(f"/api/v1/reports/allocation/{plan['id']}/health").get_json()
        assert body["plan_id"] == plan["id"]
        assert body["total_budget"] == {"allocated": 100.0, "used": 0.0, "remaining": 100.0}
        assert body["is_budget_compliant"] is True

    def test_report_unknown_plan(self, client):
        assert client.get("/api/v1/reports/allocation/4040").status_code == 404
        assert client.get("/api/v1/reports/allocation/4040/health").status_code == 404

    def test_latest_without_plans(self, client):
        assert client.get("/api/v1/reports/allocation/latest").status_code == 404


# ── Health ──────────────────────────────────────────────────────────────────


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["audit_sink"]["mode"] == "inline"

    def test_request_id_echoed(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"

    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
