import threading
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from service_modules.session_service import session_service
from service_modules.booking_service import booking_service
from service_modules.directory_service import directory_service
from service_modules.report_service import report_service
from models import CreateSessionRequest, UpdateSessionRequest
from models_orm import BookingORM, SessionORM, MemberPackageORM, NotificationORM, EmailLogORM


def test_create_session(factory):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    trainer = factory.trainer(name="Tina Trainer")
    start = datetime.utcnow() + timedelta(days=2)

    slot = session_service.create_session(CreateSessionRequest(
        title="Spin", package_type_id=type_id, trainer_id=trainer["trainer_id"],
        start_time=start, end_time=start + timedelta(hours=1), max_capacity=12, location="Studio 2"
    ), admin["user_id"])

    assert slot.type == "Group Class"
    assert slot.trainer_name == "Tina Trainer"
    assert slot.max_capacity == 12
    assert slot.current_bookings == 0
    assert slot.status == "scheduled"


def test_create_session_rejects_bad_times_and_unknown_type(factory):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    start = datetime.utcnow() + timedelta(days=2)

    with pytest.raises(HTTPException) as exc:
        session_service.create_session(CreateSessionRequest(
            title="Backwards", package_type_id=type_id,
            start_time=start, end_time=start - timedelta(hours=1)
        ), admin["user_id"])
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        session_service.create_session(CreateSessionRequest(
            title="Nowhere", package_type_id="missing",
            start_time=start, end_time=start + timedelta(hours=1)
        ), admin["user_id"])
    assert exc.value.status_code == 404


def test_capacity_cannot_drop_below_bookings(factory):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    package_id = factory.package(type_id)
    session_id = factory.session(type_id, capacity=3)
    for name in ("Ann", "Ben"):
        member = factory.member(name=name)
        factory.credit(member["member_id"], package_id, remaining=1, total=1)
        booking_service.book_session(member["member_id"], session_id)

    with pytest.raises(HTTPException) as exc:
        session_service.update_session(session_id, UpdateSessionRequest(max_capacity=1), admin["user_id"])
    assert exc.value.status_code == 400
    assert factory.get(SessionORM, session_id).max_capacity == 3

    slot = session_service.update_session(session_id, UpdateSessionRequest(max_capacity=2), admin["user_id"])
    assert slot.max_capacity == 2
    assert slot.current_bookings == 2


def test_completed_session_is_not_editable(factory):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    session_id = factory.session(type_id, starts_in=timedelta(days=-1))

    with pytest.raises(HTTPException) as exc:
        session_service.update_session(session_id, UpdateSessionRequest(title="Renamed"), admin["user_id"])

    assert exc.value.status_code == 400
    assert factory.get(SessionORM, session_id).status == "completed"


def test_cancel_session_releases_every_booking(factory):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    package_id = factory.package(type_id)
    session_id = factory.session(type_id, capacity=5, title="Bootcamp")
    members = [factory.member(name=f"Member {i}") for i in range(3)]
    credits = [factory.credit(m["member_id"], package_id, remaining=1, total=1) for m in members]
    for m in members:
        booking_service.book_session(m["member_id"], session_id)

    result = session_service.cancel_session(session_id, admin["user_id"], "Coach unavailable")

    assert result["bookings_cancelled"] == 3
    assert result["emails"] == {"successful": 3, "failed": 0}

    session = factory.get(SessionORM, session_id)
    assert session.status == "cancelled"
    assert session.cancellation_reason == "Coach unavailable"
    assert session.current_bookings == 0
    assert all(b.status == "cancelled" for b in factory.all(BookingORM, session_id=session_id))
    for credit_id in credits:
        credit = factory.get(MemberPackageORM, credit_id)
        assert credit.sessions_remaining == 1
        assert credit.status == "active"

    assert len(factory.all(NotificationORM, type="session_cancelled")) == 3
    assert len(factory.all(EmailLogORM, template_name="session_cancellation")) == 3


def test_cancelled_session_cannot_be_cancelled_again(factory):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    session_id = factory.session(type_id, status="cancelled")

    with pytest.raises(HTTPException) as exc:
        session_service.cancel_session(session_id, admin["user_id"])
    assert exc.value.status_code == 400


def test_sweep_completed_sessions(factory):
    type_id = factory.package_type("Group Class")
    ended = factory.session(type_id, starts_in=timedelta(days=-1))
    cancelled = factory.session(type_id, starts_in=timedelta(days=-1), status="cancelled")
    upcoming = factory.session(type_id)

    assert session_service.sweep_completed_sessions() == {"status": "success", "completed": 1}
    assert factory.get(SessionORM, ended).status == "completed"
    assert factory.get(SessionORM, cancelled).status == "cancelled"
    assert factory.get(SessionORM, upcoming).status == "scheduled"


def test_trainer_sessions_and_roster(factory, pt_setup):
    booking_service.book_session(pt_setup["member"]["member_id"], pt_setup["session_id"])
    factory.session(pt_setup["type_id"], title="Someone else's session")

    sessions = session_service.get_trainer_sessions(pt_setup["trainer"]["user_id"])
    assert [s.id for s in sessions] == [pt_setup["session_id"]]

    roster = session_service.get_session_roster(pt_setup["session_id"])
    assert roster["session"].current_bookings == 1
    assert [b["member_name"] for b in roster["bookings"]] == ["Alice Member"]


def test_other_trainer_cannot_read_roster(factory, pt_setup):
    booking_service.book_session(pt_setup["member"]["member_id"], pt_setup["session_id"])
    other = factory.trainer(name="Other Trainer")

    own = session_service.get_session_roster(pt_setup["session_id"], pt_setup["trainer"]["user_id"], "trainer")
    assert len(own["bookings"]) == 1

    with pytest.raises(HTTPException) as exc:
        session_service.get_session_roster(pt_setup["session_id"], other["user_id"], "trainer")
    assert exc.value.status_code == 403

    admin = factory.admin()
    assert len(session_service.get_session_roster(pt_setup["session_id"], admin["user_id"], "admin")["bookings"]) == 1


def test_cancel_unknown_session(factory):
    admin = factory.admin()
    with pytest.raises(HTTPException) as exc:
        session_service.cancel_session("missing", admin["user_id"])
    assert exc.value.status_code == 404


def test_booking_from_stale_slot_after_session_cancel_is_refused(factory, pt_setup):
    admin = factory.admin()
    slot = directory_service.get_session_slot(pt_setup["session_id"])
    credit = directory_service.get_member_credits(pt_setup["member"]["member_id"])[0]

    session_service.cancel_session(pt_setup["session_id"], admin["user_id"], "Gym closed")

    with pytest.raises(HTTPException) as exc:
        booking_service.commit_booking(pt_setup["member"]["member_id"], slot, credit)
    assert exc.value.status_code == 400
    assert exc.value.detail == "Session is cancelled and cannot be booked"

    session = factory.get(SessionORM, pt_setup["session_id"])
    assert session.status == "cancelled"
    assert session.current_bookings == 0
    assert factory.get(MemberPackageORM, pt_setup["credit_id"]).sessions_remaining == 1
    assert factory.all(BookingORM) == []


def test_session_cancel_racing_a_booking_leaves_no_live_booking(factory, concurrently):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    package_id = factory.package(type_id)
    session_id = factory.session(type_id, capacity=3)
    alice = factory.member(name="Alice")
    bob = factory.member(name="Bob")
    alice_credit = factory.credit(alice["member_id"], package_id, remaining=2, total=2)
    bob_credit = factory.credit(bob["member_id"], package_id, remaining=2, total=2)
    booking_service.book_session(alice["member_id"], session_id)

    slot = directory_service.get_session_slot(session_id)
    credit = directory_service.get_member_credits(bob["member_id"])[0]
    barrier = threading.Barrier(2, timeout=10)

    def cancel():
        barrier.wait()
        return session_service.cancel_session(session_id, admin["user_id"], "Coach unavailable")

    def book():
        barrier.wait()
        return booking_service.commit_booking(bob["member_id"], slot, credit)

    (cancelled, cancel_error), (booked, book_error) = concurrently(cancel, book)

    assert cancel_error is None
    if book_error is None:
        # Booking landed first and was released by the cancel
        assert cancelled["bookings_cancelled"] == 2
    else:
        assert book_error.status_code == 400
        assert cancelled["bookings_cancelled"] == 1

    session = factory.get(SessionORM, session_id)
    assert session.status == "cancelled"
    assert session.current_bookings == 0
    assert [b for b in factory.all(BookingORM, session_id=session_id) if b.status != "cancelled"] == []
    assert factory.get(MemberPackageORM, alice_credit).sessions_remaining == 2
    assert factory.get(MemberPackageORM, bob_credit).sessions_remaining == 2
    assert report_service.counter_consistency()["consistent"] is True


def test_double_session_cancel_releases_bookings_once(factory, concurrently):
    admin = factory.admin()
    type_id = factory.package_type("Group Class")
    package_id = factory.package(type_id)
    session_id = factory.session(type_id, capacity=5)
    members = [factory.member(name=f"Member {i}") for i in range(2)]
    credits = [factory.credit(m["member_id"], package_id, remaining=1, total=1) for m in members]
    for m in members:
        booking_service.book_session(m["member_id"], session_id)
    barrier = threading.Barrier(2, timeout=10)

    def cancel():
        barrier.wait()
        return session_service.cancel_session(session_id, admin["user_id"])

    outcomes = concurrently(cancel, cancel)

    results = [value for value, error in outcomes if error is None]
    errors = [error for value, error in outcomes if error is not None]
    assert len(results) == 1
    assert results[0]["bookings_cancelled"] == 2
    assert len(errors) == 1
    assert errors[0].status_code == 400

    assert factory.get(SessionORM, session_id).current_bookings == 0
    assert len(factory.all(EmailLogORM, template_name="session_cancellation")) == 2
    assert len(factory.all(NotificationORM, type="session_cancelled")) == 2
    for credit_id in credits:
        assert factory.get(MemberPackageORM, credit_id).sessions_remaining == 1
