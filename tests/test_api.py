from decimal import Decimal

from fastapi.testclient import TestClient

from conftest import admin_headers, employee_headers
from portal.main import app


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"status": "healthy"}, "error": None}
    assert response.headers["X-Request-ID"]


def test_missing_identity_is_rejected(client):
    response = client.post("/api/v1/time-entries/clock-in", json={})

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["code"] == "AUTH_FAILED"


def test_clock_in_and_out_round_trip(client):
    headers = employee_headers()

    response = client.post("/api/v1/time-entries/clock-in", json={"location": "HQ"}, headers=headers)
    assert response.status_code == 200
    entry = response.json()["data"]
    assert entry["employee_id"] == "emp-1"
    assert entry["status"] == "active"

    current = client.get("/api/v1/time-entries/current", headers=headers).json()["data"]
    assert current["entry"]["id"] == entry["id"]
    assert current["elapsed"]["break_elapsed"] == "00:00:00"

    response = client.post("/api/v1/time-entries/clock-in", json={}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"

    response = client.post("/api/v1/time-entries/clock-out", json={}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "completed"

    current = client.get("/api/v1/time-entries/current", headers=headers).json()["data"]
    assert current == {"entry": None, "elapsed": None}


def test_break_without_open_entry_is_not_found(client):
    response = client.post("/api/v1/time-entries/start-break", json={}, headers=employee_headers())

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


def test_employee_cannot_act_for_someone_else(client):
    response = client.post(
        "/api/v1/time-entries/clock-in",
        json={"employee_id": "emp-2"},
        headers=employee_headers("emp-1")
    )
    assert response.status_code == 403

    response = client.post("/api/v1/time-entries/clock-in", json={"employee_id": "emp-2"}, headers=admin_headers())
    assert response.status_code == 200
    assert response.json()["data"]["employee_id"] == "emp-2"


def test_delete_time_entry_is_admin_only(client):
    entry = client.post("/api/v1/time-entries/clock-in", json={}, headers=employee_headers()).json()["data"]

    response = client.delete(f"/api/v1/time-entries/{entry['id']}", headers=employee_headers())
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

    response = client.delete(f"/api/v1/time-entries/{entry['id']}", headers=admin_headers())
    assert response.status_code == 200
    assert response.json()["data"]["deleted"] is True

    listing = client.get("/api/v1/time-entries", headers=employee_headers()).json()["data"]
    assert listing == []


def test_leave_workflow_over_http(client):
    grant = client.put(
        "/api/v1/leave/balances",
        json={"employee_id": "emp-1", "leave_type": "Casual leave", "year": 2024, "total_days": 5},
        headers=admin_headers()
    )
    assert grant.status_code == 200
    assert Decimal(grant.json()["data"]["remaining_days"]) == Decimal("5")

    submitted = client.post(
        "/api/v1/leave/requests",
        json={"leave_type": "Casual leave", "start_date": "2024-04-01", "end_date": "2024-04-05"},
        headers=employee_headers()
    )
    assert submitted.status_code == 201
    request_id = submitted.json()["data"]["id"]

    response = client.post(
        f"/api/v1/leave/requests/{request_id}/finalize",
        json={"decision": "approved"},
        headers=employee_headers()
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/v1/leave/requests/{request_id}/finalize",
        json={"decision": "approved", "admin_notes": "Enjoy"},
        headers=admin_headers()
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "approved"
    assert response.json()["data"]["approved_by"] == "admin-1"

    response = client.post(
        f"/api/v1/leave/requests/{request_id}/finalize",
        json={"decision": "rejected"},
        headers=admin_headers()
    )
    assert response.status_code == 409

    balance = client.get("/api/v1/leave/balances/emp-1/Casual leave/2024", headers=employee_headers()).json()["data"]
    assert Decimal(balance["used_days"]) == Decimal("5")
    assert Decimal(balance["remaining_days"]) == Decimal("0")

    response = client.post(
        "/api/v1/leave/requests",
        json={"leave_type": "Casual leave", "start_date": "2024-06-03", "end_date": "2024-06-03"},
        headers=employee_headers()
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INSUFFICIENT_BALANCE"


def test_invalid_leave_dates_are_a_validation_error(client):
    response = client.post(
        "/api/v1/leave/requests",
        json={"leave_type": "Casual leave", "start_date": "2024-04-05", "end_date": "2024-04-01"},
        headers=employee_headers()
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_leave_types_listed(client):
    response = client.get("/api/v1/leave/types", headers=employee_headers())

    assert response.status_code == 200
    names = [t["name"] for t in response.json()["data"]]
    assert "Sick leave" in names


def test_net_pay_endpoint(client):
    response = client.post(
        "/api/v1/payroll/net-pay",
        json={"gross_pay": "5000", "overtime_pay": "200", "bonus": "100", "deductions": "300"},
        headers=employee_headers()
    )

    assert response.status_code == 200
    assert Decimal(response.json()["data"]["net_pay"]) == Decimal("5000")


def test_payroll_record_mismatch_rejected(client):
    payload = {
        "employee_id": "emp-1",
        "pay_period_start": "2024-03-01",
        "pay_period_end": "2024-03-31",
        "gross_pay": "5000",
        "overtime_pay": "200",
        "bonus": "100",
        "deductions": "300",
        "net_pay": "5300",
    }

    response = client.post("/api/v1/payroll/records", json=payload, headers=admin_headers())
    assert response.status_code == 422
    assert response.json()["error"]["details"]["expected_net_pay"] == "5000.00"

    payload["net_pay"] = "5000"
    response = client.post("/api/v1/payroll/records", json=payload, headers=admin_headers())
    assert response.status_code == 201
    record_id = response.json()["data"]["id"]

    response = client.get(f"/api/v1/payroll/records/{record_id}", headers=employee_headers("emp-2"))
    assert response.status_code == 403

    response = client.get(f"/api/v1/payroll/records/{record_id}", headers=employee_headers("emp-1"))
    assert response.status_code == 200


def test_unexpected_failure_is_internal_error(monkeypatch):
    from portal.attendance.service import AttendanceService

    def explode(self, employee_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(AttendanceService, "get_employee_stats", explode)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/v1/time-entries/stats", headers=employee_headers())

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_SERVER_ERROR"


def test_unknown_route_uses_the_envelope(client):
    response = client.get("/api/v1/nowhere", headers=employee_headers())

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "HTTP_EXCEPTION"


def test_database_outage_is_service_unavailable(monkeypatch):
    from sqlalchemy.exc import OperationalError
    from portal.leave.service import LeaveService

    def unreachable(self):
        raise OperationalError("SELECT leave_types", {}, Exception("connection refused"))

    monkeypatch.setattr(LeaveService, "list_leave_types", unreachable)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/v1/leave/types", headers=employee_headers())

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "DATABASE_UNAVAILABLE"
