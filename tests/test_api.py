from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from main import app
from models_orm import MemberPackageORM, SessionORM

client = TestClient(app)


def test_read_main():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_login_and_me(factory):
    member = factory.member(email="alice@example.com", password="secret123")

    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert response.status_code == 200
    data = response.json()
    assert data["role"] == "member"
    assert data["user_id"] == member["user_id"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "alice@example.com"


def test_login_wrong_password(factory):
    factory.member(email="alice@example.com", password="secret123")
    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope"})
    assert response.status_code == 401


def test_requires_token():
    assert client.get("/api/member/bookings").status_code == 401


def test_member_cannot_use_admin_routes(factory, headers_for):
    member = factory.member()
    response = client.get("/api/admin/book-session/members", headers=headers_for(member["email"]))
    assert response.status_code == 403


def test_member_books_from_available_sessions(factory, pt_setup, headers_for):
    headers = headers_for(pt_setup["member"]["email"])

    available = client.get("/api/member/sessions/available", headers=headers)
    assert available.status_code == 200
    assert [s["id"] for s in available.json()] == [pt_setup["session_id"]]

    response = client.post("/api/member/bookings", json={"session_id": pt_setup["session_id"]}, headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["current_bookings"] == 1
    assert data["sessions_remaining"] == 0

    # Credit is used up now
    again = client.post("/api/member/bookings", json={"session_id": pt_setup["session_id"]}, headers=headers)
    assert again.status_code == 400

    assert client.get("/api/member/sessions/available", headers=headers).json() == []

    notifications = client.get("/api/notifications", headers=headers).json()
    assert [n["type"] for n in notifications] == ["session_booked"]
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread_count": 1}
    client.post("/api/notifications/read-all", headers=headers)
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread_count": 0}


def test_admin_book_session_flow(factory, pt_setup, headers_for):
    admin = factory.admin()
    headers = headers_for(admin["email"])
    member_id = pt_setup["member"]["member_id"]

    members = client.get("/api/admin/book-session/members", headers=headers).json()
    assert [m["id"] for m in members] == [member_id]
    assert members[0]["packages"][0]["type"] == "Personal Training"

    step_two = client.get(f"/api/admin/book-session/members/{member_id}/sessions", headers=headers).json()
    assert [s["id"] for s in step_two["sessions"]] == [pt_setup["session_id"]]

    response = client.post("/api/admin/book-session", headers=headers, json={
        "member_id": member_id, "session_id": pt_setup["session_id"]
    })
    assert response.status_code == 200
    assert factory.get(SessionORM, pt_setup["session_id"]).current_bookings == 1
    assert factory.get(MemberPackageORM, pt_setup["credit_id"]).sessions_remaining == 0


def test_full_session_returns_conflict(factory, pt_setup, headers_for):
    admin = factory.admin()
    other = factory.member(name="Bob Member")
    factory.credit(other["member_id"], pt_setup["package_id"], remaining=1, total=1)
    headers = headers_for(admin["email"])

    first = client.post("/api/admin/book-session", headers=headers, json={
        "member_id": pt_setup["member"]["member_id"], "session_id": pt_setup["session_id"]
    })
    second = client.post("/api/admin/book-session", headers=headers, json={
        "member_id": other["member_id"], "session_id": pt_setup["session_id"]
    })

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["detail"] == "Session is fully booked"


def test_member_cancels_own_booking(factory, pt_setup, headers_for):
    headers = headers_for(pt_setup["member"]["email"])
    booking = client.post("/api/member/bookings", json={"session_id": pt_setup["session_id"]},
                          headers=headers).json()

    response = client.post(f"/api/bookings/{booking['booking_id']}/cancel", json={"reason": "Travel"},
                           headers=headers)

    assert response.status_code == 200
    assert factory.get(SessionORM, pt_setup["session_id"]).current_bookings == 0
    bookings = client.get("/api/member/bookings", headers=headers).json()
    assert bookings[0]["status"] == "cancelled"


def test_admin_creates_and_cancels_session(factory, headers_for):
    admin = factory.admin()
    headers = headers_for(admin["email"])
    type_id = factory.package_type("Group Class")
    start = datetime.utcnow() + timedelta(days=3)

    created = client.post("/api/admin/sessions", headers=headers, json={
        "title": "HIIT", "package_type_id": type_id,
        "start_time": start.isoformat(), "end_time": (start + timedelta(hours=1)).isoformat(),
        "max_capacity": 8
    })
    assert created.status_code == 200
    session_id = created.json()["id"]

    listed = client.get("/api/admin/sessions", headers=headers).json()
    assert [s["id"] for s in listed] == [session_id]

    cancelled = client.post(f"/api/admin/sessions/{session_id}/cancel", headers=headers,
                            json={"reason": "Holiday"})
    assert cancelled.status_code == 200
    assert cancelled.json()["bookings_cancelled"] == 0
    assert factory.get(SessionORM, session_id).status == "cancelled"


def test_create_session_validates_capacity(factory, headers_for):
    admin = factory.admin()
    start = datetime.utcnow() + timedelta(days=3)
    response = client.post("/api/admin/sessions", headers=headers_for(admin["email"]), json={
        "title": "HIIT", "package_type_id": factory.package_type("Group Class"),
        "start_time": start.isoformat(), "end_time": (start + timedelta(hours=1)).isoformat(),
        "max_capacity": 0
    })
    assert response.status_code == 422


def test_admin_dashboard(factory, pt_setup, headers_for):
    admin = factory.admin()
    response = client.get("/api/admin/dashboard", headers=headers_for(admin["email"]))
    assert response.status_code == 200
    assert response.json()["total_members"] == 1


def test_trainer_roster_is_limited_to_own_sessions(factory, pt_setup, headers_for):
    other = factory.trainer(name="Other Trainer")
    url = f"/api/admin/sessions/{pt_setup['session_id']}/roster"

    response = client.get(url, headers=headers_for(pt_setup["trainer"]["email"]))
    assert response.status_code == 200
    assert response.json()["session"]["id"] == pt_setup["session_id"]

    response = client.get(url, headers=headers_for(other["email"]))
    assert response.status_code == 403


def test_admin_date_range_reports(factory, pt_setup, headers_for):
    admin = factory.admin()
    headers = headers_for(admin["email"])

    response = client.get("/api/admin/reports/sessions-by-status", headers=headers)
    assert response.status_code == 200
    assert response.json()["scheduled"] == 1

    response = client.get("/api/admin/reports/income-by-date",
                          params={"start_date": "2026-02-01", "end_date": "2026-01-01"}, headers=headers)
    assert response.status_code == 400

    for path in ("revenue-by-package", "income-by-member", "attendance"):
        response = client.get(f"/api/admin/reports/{path}", headers=headers)
        assert response.status_code == 200
