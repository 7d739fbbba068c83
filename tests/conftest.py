import os
import sys
import tempfile
import threading
import uuid
from datetime import datetime, timedelta

import pytest

# Point the app at a throwaway SQLite file before database.py is imported
_TEST_DB = os.path.join(tempfile.mkdtemp(prefix="gym_booking_tests_"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["SMTP_HOST"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, engine, get_db_session  # noqa: E402
from auth import create_access_token, get_password_hash  # noqa: E402
import models_orm  # noqa: E402,F401
from models_orm import (  # noqa: E402
    ProfileORM, MemberORM, TrainerORM, PackageTypeORM, PackageORM,
    MemberPackageORM, SessionORM
)
from service_modules.base import to_iso  # noqa: E402


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


class Factory:
    """Inserts rows straight into the test database and returns their ids."""

    def _save(self, row):
        db = get_db_session()
        try:
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    def profile(self, role="member", name=None, email=None, password=None):
        email = email or f"{role}_{uuid.uuid4().hex[:8]}@example.com"
        return self._save(ProfileORM(
            email=email,
            full_name=name or role.title(),
            role=role,
            hashed_password=get_password_hash(password) if password else None,
            is_active=True
        ))

    def member(self, name="Alice Member", email=None, password=None, status="active"):
        user_id = self.profile("member", name, email, password)
        member_id = self._save(MemberORM(user_id=user_id, membership_status=status))
        return {"member_id": member_id, "user_id": user_id, "email": self.get(ProfileORM, user_id).email}

    def trainer(self, name="Tom Trainer", email=None, password=None):
        user_id = self.profile("trainer", name, email, password)
        trainer_id = self._save(TrainerORM(user_id=user_id))
        return {"trainer_id": trainer_id, "user_id": user_id, "email": self.get(ProfileORM, user_id).email}

    def admin(self, name="Ada Admin", email=None, password=None):
        user_id = self.profile("admin", name, email, password)
        return {"user_id": user_id, "email": self.get(ProfileORM, user_id).email}

    def package_type(self, name="Personal Training"):
        return self._save(PackageTypeORM(name=name))

    def package(self, type_id, name="10 Session Pack", session_count=10, duration_days=90, price=100.0):
        return self._save(PackageORM(
            name=name, package_type_id=type_id, session_count=session_count,
            duration_days=duration_days, price=price
        ))

    def credit(self, member_id, package_id, remaining=1, total=None, start_date="2026-01-01",
               end_date=None, status="active", purchased_at=None, price=None):
        return self._save(MemberPackageORM(
            member_id=member_id,
            package_id=package_id,
            start_date=start_date,
            end_date=end_date,
            sessions_remaining=remaining,
            sessions_total=total if total is not None else max(remaining, 1),
            price=price,
            status=status,
            purchased_at=purchased_at or datetime.utcnow().replace(microsecond=0).isoformat()
        ))

    def session(self, type_id, trainer_id=None, starts_in=timedelta(days=1), hours=1,
                capacity=1, current=0, status="scheduled", title="Strength Session"):
        start = datetime.utcnow() + starts_in
        return self._save(SessionORM(
            title=title,
            package_type_id=type_id,
            trainer_id=trainer_id,
            start_time=to_iso(start),
            end_time=to_iso(start + timedelta(hours=hours)),
            max_capacity=capacity,
            current_bookings=current,
            status=status
        ))

    def get(self, orm_class, row_id):
        db = get_db_session()
        try:
            row = db.query(orm_class).filter(orm_class.id == row_id).first()
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def all(self, orm_class, **filters):
        db = get_db_session()
        try:
            rows = db.query(orm_class).filter_by(**filters).all()
            for row in rows:
                db.expunge(row)
            return rows
        finally:
            db.close()


@pytest.fixture
def factory():
    return Factory()


@pytest.fixture
def pt_setup(factory):
    """Member with one Personal Training credit (1 left) and a 1-seat PT session."""
    type_id = factory.package_type("Personal Training")
    package_id = factory.package(type_id, name="PT Single", session_count=1)
    member = factory.member()
    trainer = factory.trainer()
    credit_id = factory.credit(member["member_id"], package_id, remaining=1, total=1)
    session_id = factory.session(type_id, trainer_id=trainer["trainer_id"], capacity=1)
    return {
        "type_id": type_id,
        "package_id": package_id,
        "member": member,
        "trainer": trainer,
        "credit_id": credit_id,
        "session_id": session_id,
    }


def auth_headers(email):
    token = create_access_token(data={"sub": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


def run_in_threads(*calls, timeout=20):
    """Run each callable on its own thread; returns one (value, error) pair per call."""
    outcomes = [None] * len(calls)

    def runner(index, call):
        try:
            outcomes[index] = (call(), None)
        except Exception as e:
            outcomes[index] = (None, e)

    threads = [threading.Thread(target=runner, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout)
    assert not any(thread.is_alive() for thread in threads), "worker thread did not finish"
    return outcomes


@pytest.fixture
def concurrently():
    return run_in_threads
