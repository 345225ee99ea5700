from datetime import datetime, timedelta

from app.models.models import Attendance, AttendanceStatus
from app.services.time_rules import local_now

from conftest import PASSWORD, auth_headers, make_assignment, save_settings


def current_assignment(db, user):
    """A shift that started five minutes ago, so a clock-in now is on time."""
    start = local_now().replace(second=0, microsecond=0) - timedelta(minutes=5)
    return make_assignment(db, user, start=start, end=start + timedelta(hours=8))


def add_record(db, assignment, status, created_at, **values):
    record = Attendance(shift_assignment_id=assignment.id, status=status, created_at=created_at, **values)
    db.add(record)
    db.commit()
    return record


def test_health_carries_request_id(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Request-ID"] == "req-123"


def test_requests_need_a_token(client):
    resp = client.get("/attendance")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Not authenticated"}

    resp = client.get("/attendance", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid token"}


def test_login_and_me(client, employee):
    resp = client.post("/auth/login", json={"email": employee.email, "password": PASSWORD})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == employee.email
    assert me.json()["role"] == "EMPLOYEE"


def test_login_with_wrong_password(client, employee):
    resp = client.post("/auth/login", json={"email": employee.email, "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid credentials"}


def test_clock_in_and_out_over_http(client, db, employee):
    assignment = current_assignment(db, employee)
    headers = auth_headers(employee)

    resp = client.post("/attendance", json={"shiftAssignmentId": str(assignment.id), "action": "clock_in"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "PRESENT"
    assert body["minutesLate"] == 0
    assert body["shiftAssignmentId"] == str(assignment.id)
    assert body["clockedInBy"] is None
    assert body["shiftAssignment"]["user"]["id"] == str(employee.id)
    assert body["shiftAssignment"]["shift"]["title"] == "Morning"

    again = client.post("/attendance", json={"shiftAssignmentId": str(assignment.id), "action": "clock_in"}, headers=headers)
    assert again.status_code == 409
    assert again.json() == {"error": "Clock-in already registered"}


def test_clock_out_before_clock_in_over_http(client, db, employee):
    assignment = current_assignment(db, employee)
    resp = client.post(
        "/attendance",
        json={"shiftAssignmentId": str(assignment.id), "action": "clock_out"},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Clock-in not registered"}


def test_invalid_action(client, assignment, employee):
    resp = client.post(
        "/attendance",
        json={"shiftAssignmentId": str(assignment.id), "action": "teleport"},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid action"}


def test_missing_assignment_id_is_a_validation_error(client, employee):
    resp = client.post("/attendance", json={"action": "clock_in"}, headers=auth_headers(employee))
    assert resp.status_code == 400
    assert "shiftAssignmentId" in resp.json()["error"]


def test_manual_entry_ordering_fails_for_any_role(client, assignment, employee, manager):
    payload = {
        "shiftAssignmentId": str(assignment.id),
        "action": "manual_entry",
        "clockInTime": "2024-03-04T17:00:00",
        "clockOutTime": "2024-03-04T09:00:00",
    }
    for actor in (employee, manager):
        resp = client.post("/attendance", json=payload, headers=auth_headers(actor))
        assert resp.status_code == 400
        assert resp.json() == {"error": "Clock-out time must be after clock-in time"}


def test_forbidden_and_not_found(client, assignment, coworker, outsider):
    body = {"shiftAssignmentId": str(assignment.id), "action": "clock_in"}

    resp = client.post("/attendance", json=body, headers=auth_headers(coworker))
    assert resp.status_code == 403
    assert resp.json() == {"error": "Not allowed to record attendance for another employee"}

    resp = client.post("/attendance", json=body, headers=auth_headers(outsider))
    assert resp.status_code == 404
    assert resp.json() == {"error": "Shift assignment not found"}


def test_geofence_error_body(client, db, company, employee):
    save_settings(db, company, require_gps=True, company_latitude=38.7223, company_longitude=-9.1393)
    assignment = current_assignment(db, employee)

    resp = client.post(
        "/attendance",
        json={"shiftAssignmentId": str(assignment.id), "action": "clock_in", "latitude": 38.7241, "longitude": -9.1393},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "You are 200m from the company. Maximum allowed: 100m",
        "distanceMeters": 200,
        "maxMeters": 100,
    }

    resp = client.post(
        "/attendance",
        json={"shiftAssignmentId": str(assignment.id), "action": "clock_in"},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "GPS location is required"}


def test_manager_marks_absence_over_http(client, assignment, manager):
    resp = client.post(
        "/attendance",
        json={"shiftAssignmentId": str(assignment.id), "action": "mark_absent", "justification": "Sick leave"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ABSENT_JUSTIFIED"
    assert body["justifiedBy"] == str(manager.id)
    assert body["clockInTime"] is None


def test_listing_is_newest_first_and_filterable(client, db, employee, coworker, manager):
    first = make_assignment(db, employee)
    second = make_assignment(db, coworker)
    next_day = make_assignment(db, employee, start=datetime(2024, 3, 5, 9, 0))
    older = add_record(db, first, AttendanceStatus.PRESENT, datetime(2024, 3, 4, 9, 0), clock_in_time=datetime(2024, 3, 4, 9, 0))
    newer = add_record(db, second, AttendanceStatus.ABSENT_UNJUSTIFIED, datetime(2024, 3, 4, 10, 0))
    newest = add_record(db, next_day, AttendanceStatus.LATE, datetime(2024, 3, 5, 9, 30), clock_in_time=datetime(2024, 3, 5, 9, 30), minutes_late=30)
    headers = auth_headers(manager)

    resp = client.get("/attendance", headers=headers)
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [str(newest.id), str(newer.id), str(older.id)]

    by_day = client.get("/attendance", params={"date": "2024-03-04"}, headers=headers).json()
    assert [r["id"] for r in by_day] == [str(newer.id), str(older.id)]

    by_user = client.get("/attendance", params={"userId": str(employee.id)}, headers=headers).json()
    assert [r["id"] for r in by_user] == [str(newest.id), str(older.id)]

    by_status = client.get("/attendance", params={"status": "LATE"}, headers=headers).json()
    assert [r["id"] for r in by_status] == [str(newest.id)]

    # Assignment filter wins over the others
    by_assignment = client.get(
        "/attendance",
        params={"shiftAssignmentId": str(first.id), "status": "LATE"},
        headers=headers,
    ).json()
    assert [r["id"] for r in by_assignment] == [str(older.id)]


def test_listing_is_company_scoped(client, db, employee, outsider):
    own = make_assignment(db, employee)
    add_record(db, own, AttendanceStatus.PRESENT, datetime(2024, 3, 4, 9, 0), clock_in_time=datetime(2024, 3, 4, 9, 0))

    resp = client.get("/attendance", headers=auth_headers(outsider))
    assert resp.status_code == 200
    assert resp.json() == []


def test_listing_rejects_unknown_status(client, manager):
    resp = client.get("/attendance", params={"status": "ON_VACATION"}, headers=auth_headers(manager))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid status: ON_VACATION"}


def test_report_endpoint(client, db, assignment, employee, manager):
    add_record(
        db, assignment, AttendanceStatus.PRESENT, datetime(2024, 3, 4, 9, 5),
        clock_in_time=datetime(2024, 3, 4, 9, 5),
        clock_out_time=datetime(2024, 3, 4, 16, 50),
        total_minutes=465,
    )

    resp = client.get(
        "/reports/attendance",
        params={"startDate": "2024-03-04", "endDate": "2024-03-04"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["period"] == {"startDate": "2024-03-04", "endDate": "2024-03-04"}
    assert body["summary"]["totalExpectedDays"] == 1
    assert body["summary"]["attendanceRate"] == 100
    assert body["userStats"][0]["totalMinutesWorked"] == 465


def test_report_requires_dates(client, manager):
    resp = client.get("/reports/attendance", params={"startDate": "2024-03-04"}, headers=auth_headers(manager))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Start date and end date are required"}


def test_report_rejects_inverted_range(client, manager):
    resp = client.get(
        "/reports/attendance",
        params={"startDate": "2024-03-05", "endDate": "2024-03-04"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "End date must not be before start date"}
