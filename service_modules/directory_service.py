"""
Directory Service - read-side queries feeding the booking flow.

Every row leaving this module is normalized into PackageCredit / SessionSlot,
so callers never deal with the raw joins. Backend failures are logged and
reported as an empty result; nothing here retries.
"""
from .base import (
    HTTPException, logging,
    get_db_session, utc_now_iso, today_iso,
    ProfileORM, MemberORM, TrainerORM,
    PackageTypeORM, PackageORM, MemberPackageORM,
    SessionORM, BookingORM
)
from models import PackageCredit, SessionSlot, MemberSummary
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, List, Optional

logger = logging.getLogger("gym_app")

ACTIVE_BOOKING_STATUSES = ("confirmed", "attended")


def to_package_credit(mp: MemberPackageORM, package: Optional[PackageORM],
                      package_type: Optional[PackageTypeORM]) -> PackageCredit:
    return PackageCredit(
        id=mp.id,
        member_id=mp.member_id,
        package_id=mp.package_id,
        name=package.name if package else "Unknown Package",
        type=package_type.name if package_type else "Unknown",
        remaining=mp.sessions_remaining or 0,
        total=mp.sessions_total or 0,
        expiry=mp.end_date,
        status=mp.status
    )


def to_session_slot(session: SessionORM, package_type: Optional[PackageTypeORM],
                    trainer_profile: Optional[ProfileORM] = None) -> SessionSlot:
    return SessionSlot(
        id=session.id,
        title=session.title,
        type=package_type.name if package_type else "Unknown",
        trainer_id=session.trainer_id,
        trainer_name=(trainer_profile.full_name if trainer_profile and trainer_profile.full_name
                      else "Unknown Trainer"),
        start_time=session.start_time,
        end_time=session.end_time,
        max_capacity=session.max_capacity or 1,
        current_bookings=session.current_bookings or 0,
        status=session.status,
        location=session.location,
        description=session.description
    )


def credit_query(db):
    """member_packages joined with their package and package type."""
    return db.query(MemberPackageORM, PackageORM, PackageTypeORM).outerjoin(
        PackageORM, MemberPackageORM.package_id == PackageORM.id
    ).outerjoin(
        PackageTypeORM, PackageORM.package_type_id == PackageTypeORM.id
    )


def session_query(db):
    """sessions joined with their required type and the trainer's profile."""
    return db.query(SessionORM, PackageTypeORM, ProfileORM).outerjoin(
        PackageTypeORM, SessionORM.package_type_id == PackageTypeORM.id
    ).outerjoin(
        TrainerORM, SessionORM.trainer_id == TrainerORM.id
    ).outerjoin(
        ProfileORM, TrainerORM.user_id == ProfileORM.id
    )


def usable_credit_filters():
    return (
        MemberPackageORM.status == "active",
        MemberPackageORM.sessions_remaining > 0,
        or_(MemberPackageORM.end_date == None, MemberPackageORM.end_date >= today_iso()),
    )


class DirectoryService:
    """Member and session directory queries."""

    # --- MEMBERS ---

    def get_member(self, member_id: str) -> dict:
        db = get_db_session()
        try:
            row = db.query(MemberORM, ProfileORM).outerjoin(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            ).filter(MemberORM.id == member_id).first()
            if not row:
                raise HTTPException(status_code=404, detail="Member not found")
            return self._member_to_dict(*row)
        finally:
            db.close()

    def get_member_for_user(self, user_id: str) -> dict:
        """Resolve the member record behind a logged-in profile."""
        db = get_db_session()
        try:
            row = db.query(MemberORM, ProfileORM).join(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            ).filter(MemberORM.user_id == user_id).first()
            if not row:
                raise HTTPException(status_code=404, detail="No member record for this user")
            return self._member_to_dict(*row)
        finally:
            db.close()

    def get_member_credits(self, member_id: str) -> List[PackageCredit]:
        """Active, unexpired credits with sessions left, in matcher order."""
        db = get_db_session()
        try:
            rows = credit_query(db).filter(
                MemberPackageORM.member_id == member_id,
                *usable_credit_filters()
            ).order_by(
                MemberPackageORM.start_date, MemberPackageORM.purchased_at, MemberPackageORM.id
            ).all()
            return [to_package_credit(*row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Error loading package credits for member {member_id}: {e}")
            return []
        finally:
            db.close()

    def list_members_with_credits(self) -> List[MemberSummary]:
        """Members holding at least one usable credit (admin book-session step 1)."""
        db = get_db_session()
        try:
            credit_rows = credit_query(db).filter(*usable_credit_filters()).order_by(
                MemberPackageORM.start_date, MemberPackageORM.purchased_at, MemberPackageORM.id
            ).all()

            credits_by_member: Dict[str, List[PackageCredit]] = {}
            for row in credit_rows:
                credit = to_package_credit(*row)
                credits_by_member.setdefault(credit.member_id, []).append(credit)

            if not credits_by_member:
                return []

            members = db.query(MemberORM, ProfileORM).outerjoin(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            ).filter(MemberORM.id.in_(list(credits_by_member.keys()))).all()

            summaries = []
            for member, profile in members:
                data = self._member_to_dict(member, profile)
                summaries.append(MemberSummary(packages=credits_by_member[member.id], **data))

            summaries.sort(key=lambda m: m.name.lower())
            return summaries

        except SQLAlchemyError as e:
            logger.error(f"Error loading member directory: {e}")
            return []
        finally:
            db.close()

    # --- SESSIONS ---

    def get_bookable_sessions(self, member_id: str) -> List[SessionSlot]:
        """
        Upcoming scheduled sessions with open capacity whose required type the
        member holds with sessions remaining, excluding ones already booked.
        Runs the completion sweep first.
        """
        from .session_service import session_service

        db = get_db_session()
        try:
            session_service.sweep_completed(db)
            db.commit()

            type_rows = credit_query(db).filter(
                MemberPackageORM.member_id == member_id,
                *usable_credit_filters()
            ).all()
            held_types = {package_type.name for _, _, package_type in type_rows if package_type}
            if not held_types:
                return []

            booked_ids = select(BookingORM.session_id).where(
                BookingORM.member_id == member_id,
                BookingORM.status.in_(ACTIVE_BOOKING_STATUSES)
            )

            rows = session_query(db).filter(
                SessionORM.status == "scheduled",
                SessionORM.start_time >= utc_now_iso(),
                SessionORM.current_bookings < SessionORM.max_capacity,
                PackageTypeORM.name.in_(held_types),
                ~SessionORM.id.in_(booked_ids)
            ).order_by(SessionORM.start_time.asc()).all()

            return [to_session_slot(*row) for row in rows]

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error loading bookable sessions for member {member_id}: {e}")
            return []
        finally:
            db.close()

    def get_session_slot(self, session_id: str) -> SessionSlot:
        db = get_db_session()
        try:
            row = session_query(db).filter(SessionORM.id == session_id).first()
            if not row:
                raise HTTPException(status_code=404, detail="Session not found")
            return to_session_slot(*row)
        finally:
            db.close()

    def _member_to_dict(self, member: MemberORM, profile: Optional[ProfileORM]) -> dict:
        return {
            "id": member.id,
            "user_id": member.user_id,
            "name": (profile.full_name if profile and profile.full_name else "No Name"),
            "email": (profile.email if profile and profile.email else "No Email"),
            "membership_status": member.membership_status or "active"
        }


# Singleton instance
directory_service = DirectoryService()


def get_directory_service() -> DirectoryService:
    """Dependency injection helper."""
    return directory_service
