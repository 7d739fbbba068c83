"""
Booking Service - matches a member's package credit to a session and commits
the booking.

The commit is one transaction. Capacity and credit are claimed with
conditional UPDATEs checked by affected-row count, so counters can never pass
max_capacity or go below zero no matter how stale the caller's view is.
The confirmation email is queued in the same transaction and sent only after
the commit; a failed send never undoes the booking.
"""
from .base import (
    HTTPException, logging,
    get_db_session, utc_now_iso, today_iso,
    ProfileORM, MemberORM, TrainerORM, PackageTypeORM,
    MemberPackageORM, SessionORM, BookingORM
)
from .directory_service import (
    ACTIVE_BOOKING_STATUSES, credit_query, session_query,
    to_package_credit, to_session_slot, usable_credit_filters
)
from .package_matcher import match_package_credit
from .notification_service import notification_service
from .email_service import get_email_service
from .activity_service import activity_service
from models import BookingResult, PackageCredit, SessionSlot
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from typing import List, Tuple

logger = logging.getLogger("gym_app")


def format_when(start_time: str, end_time: str) -> Tuple[str, str]:
    """('2026-10-20', '10:00 - 11:00') from two stored ISO timestamps."""
    return start_time[:10], f"{start_time[11:16]} - {end_time[11:16]}"


class BookingService:
    """Booking orchestration: match, commit, cancel, attend."""

    def __init__(self):
        self.notifications = notification_service
        self.emails = get_email_service()
        self.activity = activity_service

    # --- BOOK ---

    def book_session(self, member_id: str, session_id: str, booked_by: str = None,
                     notes: str = None) -> BookingResult:
        """Read the member's credits and the session, pick a credit, commit."""
        db = get_db_session()
        try:
            if not db.query(MemberORM).filter(MemberORM.id == member_id).first():
                raise HTTPException(status_code=404, detail="Member not found")

            row = session_query(db).filter(SessionORM.id == session_id).first()
            if not row:
                raise HTTPException(status_code=404, detail="Session not found")
            slot = to_session_slot(*row)

            credits = [to_package_credit(*r) for r in credit_query(db).filter(
                MemberPackageORM.member_id == member_id,
                *usable_credit_filters()
            ).order_by(
                MemberPackageORM.start_date, MemberPackageORM.purchased_at, MemberPackageORM.id
            ).all()]
        finally:
            db.close()

        if slot.status != "scheduled":
            raise HTTPException(status_code=400, detail=f"Session is {slot.status} and cannot be booked")
        if slot.start_time < utc_now_iso():
            raise HTTPException(status_code=400, detail="Session has already started")

        credit = match_package_credit(credits, slot)
        if credit is None:
            raise HTTPException(
                status_code=400,
                detail=f"No active package with sessions remaining for {slot.type}"
            )

        return self.commit_booking(member_id, slot, credit, booked_by=booked_by, notes=notes)

    def commit_booking(self, member_id: str, slot: SessionSlot, credit: PackageCredit,
                       booked_by: str = None, notes: str = None) -> BookingResult:
        """
        Persist a booking for an already matched (session, credit) pair.

        slot and credit may be stale snapshots; only their ids are trusted.
        """
        db = get_db_session()
        email_log_id = None
        try:
            now = utc_now_iso()

            claimed = db.query(SessionORM).filter(
                SessionORM.id == slot.id,
                SessionORM.status == "scheduled",
                SessionORM.start_time >= now,
                SessionORM.current_bookings < SessionORM.max_capacity
            ).update({
                SessionORM.current_bookings: SessionORM.current_bookings + 1,
                SessionORM.updated_at: now
            }, synchronize_session=False)
            if claimed != 1:
                self._raise_unclaimable(db, slot.id, now)

            debited = db.query(MemberPackageORM).filter(
                MemberPackageORM.id == credit.id,
                MemberPackageORM.member_id == member_id,
                MemberPackageORM.status == "active",
                MemberPackageORM.sessions_remaining > 0
            ).update({
                MemberPackageORM.sessions_remaining: MemberPackageORM.sessions_remaining - 1,
                MemberPackageORM.updated_at: now
            }, synchronize_session=False)
            if debited != 1:
                raise HTTPException(status_code=409, detail="No sessions remaining on this package")

            # A credit used up expires
            db.query(MemberPackageORM).filter(
                MemberPackageORM.id == credit.id,
                MemberPackageORM.sessions_remaining == 0
            ).update({MemberPackageORM.status: "expired"}, synchronize_session=False)

            duplicate = db.query(BookingORM).filter(
                BookingORM.member_id == member_id,
                BookingORM.session_id == slot.id,
                BookingORM.status.in_(ACTIVE_BOOKING_STATUSES)
            ).first()
            if duplicate:
                raise HTTPException(status_code=400, detail="Member has already booked this session")

            booking = BookingORM(
                member_id=member_id,
                session_id=slot.id,
                member_package_id=credit.id,
                status="confirmed",
                booking_time=now,
                booked_by=booked_by,
                notes=notes,
                created_at=now,
                updated_at=now
            )
            db.add(booking)
            db.flush()

            session_row = db.query(SessionORM).filter(SessionORM.id == slot.id).one()
            credit_row = db.query(MemberPackageORM).filter(MemberPackageORM.id == credit.id).one()
            profile = db.query(ProfileORM).join(
                MemberORM, MemberORM.user_id == ProfileORM.id
            ).filter(MemberORM.id == member_id).first()

            session_date, session_time = format_when(slot.start_time, slot.end_time)

            if profile:
                self.notifications.add_notification(
                    db, profile.id, "session_booked", "Session Booked",
                    f"You are booked for {slot.title} on {session_date} at {session_time}",
                    {"booking_id": booking.id, "session_id": slot.id, "member_package_id": credit.id}
                )
                if profile.email:
                    email = self.emails.queue_booking_confirmation(
                        db, profile.email, profile.full_name or "Member", slot.title, slot.type,
                        session_date, session_time, slot.trainer_name, slot.location,
                        booking_id=booking.id
                    )
                    db.flush()
                    email_log_id = email.id

            self.activity.log_activity(
                db, booked_by, "session_booked", "booking", booking.id,
                {"member_id": member_id, "session_id": slot.id, "session_title": slot.title,
                 "member_package_id": credit.id}
            )

            db.commit()

            result = BookingResult(
                status="success",
                booking_id=booking.id,
                session_id=slot.id,
                member_package_id=credit.id,
                current_bookings=session_row.current_bookings,
                sessions_remaining=credit_row.sessions_remaining,
                email_sent=False,
                message=f"{slot.title} booked successfully"
            )
            logger.info(f"Booking committed: {booking.id} - Member: {member_id}, Session: {slot.id}, "
                        f"Credit: {credit.id} ({result.sessions_remaining} left)")

        except HTTPException:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Booking rejected by constraint for member {member_id}, session {slot.id}: {e}")
            raise HTTPException(status_code=409, detail="Booking conflicts with an existing booking")
        except Exception as e:
            db.rollback()
            logger.error(f"Error committing booking: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to book session: {str(e)}")
        finally:
            db.close()

        if email_log_id is not None:
            result.email_sent = self._send_after_commit(email_log_id)
        return result

    # --- CANCEL / ATTEND ---

    def cancel_booking(self, booking_id: str, actor_id: str, actor_role: str,
                       reason: str = None) -> dict:
        """confirmed -> cancelled, giving the seat and the credit back."""
        db = get_db_session()
        email_log_id = None
        try:
            booking = db.query(BookingORM).filter(BookingORM.id == booking_id).first()
            if not booking:
                raise HTTPException(status_code=404, detail="Booking not found")

            member = db.query(MemberORM).filter(MemberORM.id == booking.member_id).first()
            if actor_role == "member" and (not member or member.user_id != actor_id):
                raise HTTPException(status_code=403, detail="You don't have permission to cancel this booking")
            if actor_role not in ("member", "admin"):
                raise HTTPException(status_code=403, detail="Only members and admins can cancel bookings")

            if booking.status != "confirmed":
                raise HTTPException(status_code=400, detail=f"Booking is already {booking.status}")

            session = db.query(SessionORM).filter(SessionORM.id == booking.session_id).first()
            if not session or session.status != "scheduled":
                raise HTTPException(status_code=400, detail="Only bookings for scheduled sessions can be cancelled")

            if not self.release_booking(db, booking, utc_now_iso()):
                raise HTTPException(status_code=409, detail="Booking was changed by another request")

            profile = db.query(ProfileORM).filter(ProfileORM.id == member.user_id).first() if member else None
            session_date, session_time = format_when(session.start_time, session.end_time)
            if profile:
                self.notifications.add_notification(
                    db, profile.id, "booking_cancelled", "Booking Cancelled",
                    f"Your booking for {session.title} on {session_date} was cancelled and the credit restored",
                    {"booking_id": booking.id, "session_id": session.id}
                )
                if profile.email:
                    email = self.emails.queue_cancellation_notice(
                        db, profile.email, profile.full_name or "Member", session.title,
                        session_date, session_time, reason, booking_id=booking.id
                    )
                    db.flush()
                    email_log_id = email.id

            self.activity.log_activity(
                db, actor_id, "booking_cancelled", "booking", booking.id,
                {"session_id": session.id, "member_id": booking.member_id, "reason": reason}
            )
            db.commit()
            logger.info(f"Booking cancelled: {booking_id} by {actor_role} {actor_id}")

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error cancelling booking: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to cancel booking: {str(e)}")
        finally:
            db.close()

        email_sent = self._send_after_commit(email_log_id) if email_log_id is not None else False
        return {"status": "success", "booking_id": booking_id, "email_sent": email_sent,
                "message": "Booking cancelled and session credit restored"}

    def release_booking(self, db, booking: BookingORM, now: str) -> bool:
        """
        Cancel a booking on the caller's session: free the seat and return the
        credit. Counters stay within [0, max_capacity] and [0, sessions_total].

        Returns False, touching nothing, when the booking is no longer
        confirmed in the database.
        """
        released = db.query(BookingORM).filter(
            BookingORM.id == booking.id,
            BookingORM.status == "confirmed"
        ).update({
            BookingORM.status: "cancelled",
            BookingORM.cancelled_at: now,
            BookingORM.updated_at: now
        }, synchronize_session=False)
        if released != 1:
            return False

        db.query(SessionORM).filter(
            SessionORM.id == booking.session_id,
            SessionORM.current_bookings > 0
        ).update({
            SessionORM.current_bookings: SessionORM.current_bookings - 1,
            SessionORM.updated_at: now
        }, synchronize_session=False)

        if booking.member_package_id:
            db.query(MemberPackageORM).filter(
                MemberPackageORM.id == booking.member_package_id,
                MemberPackageORM.sessions_remaining < MemberPackageORM.sessions_total
            ).update({
                MemberPackageORM.sessions_remaining: MemberPackageORM.sessions_remaining + 1,
                MemberPackageORM.updated_at: now
            }, synchronize_session=False)

            # Credit that expired only because it hit zero comes back
            db.query(MemberPackageORM).filter(
                MemberPackageORM.id == booking.member_package_id,
                MemberPackageORM.status == "expired",
                MemberPackageORM.sessions_remaining > 0,
                or_(MemberPackageORM.end_date == None, MemberPackageORM.end_date >= today_iso())
            ).update({MemberPackageORM.status: "active"}, synchronize_session=False)
        return True

    def mark_attended(self, booking_id: str, actor_id: str, actor_role: str) -> dict:
        """confirmed -> attended. Trainer of the session or an admin."""
        db = get_db_session()
        try:
            booking = db.query(BookingORM).filter(BookingORM.id == booking_id).first()
            if not booking:
                raise HTTPException(status_code=404, detail="Booking not found")

            session = db.query(SessionORM).filter(SessionORM.id == booking.session_id).first()
            if actor_role == "trainer":
                trainer = db.query(TrainerORM).filter(TrainerORM.user_id == actor_id).first()
                if not trainer or not session or session.trainer_id != trainer.id:
                    raise HTTPException(status_code=403, detail="Only the session's trainer can record attendance")
            elif actor_role != "admin":
                raise HTTPException(status_code=403, detail="Only trainers and admins can record attendance")

            if booking.status != "confirmed":
                raise HTTPException(status_code=400, detail=f"Booking is already {booking.status}")
            if session and session.status == "cancelled":
                raise HTTPException(status_code=400, detail="Session was cancelled")

            now = utc_now_iso()
            attended = db.query(BookingORM).filter(
                BookingORM.id == booking.id,
                BookingORM.status == "confirmed"
            ).update({
                BookingORM.status: "attended",
                BookingORM.attended: True,
                BookingORM.attendance_time: now,
                BookingORM.updated_at: now
            }, synchronize_session=False)
            if attended != 1:
                raise HTTPException(status_code=409, detail="Booking was changed by another request")

            self.activity.log_activity(
                db, actor_id, "booking_attended", "booking", booking.id,
                {"session_id": booking.session_id, "member_id": booking.member_id}
            )
            db.commit()
            logger.info(f"Attendance recorded for booking {booking_id}")

            return {"status": "success", "booking_id": booking_id, "message": "Attendance recorded"}

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error recording attendance: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to record attendance: {str(e)}")
        finally:
            db.close()

    # --- QUERIES ---

    def get_member_bookings(self, member_id: str, include_cancelled: bool = True) -> List[dict]:
        """A member's bookings, newest first."""
        db = get_db_session()
        try:
            query = db.query(BookingORM, SessionORM, PackageTypeORM).join(
                SessionORM, BookingORM.session_id == SessionORM.id
            ).outerjoin(
                PackageTypeORM, SessionORM.package_type_id == PackageTypeORM.id
            ).filter(BookingORM.member_id == member_id)

            if not include_cancelled:
                query = query.filter(BookingORM.status != "cancelled")

            rows = query.order_by(BookingORM.booking_time.desc()).all()
            return [
                {
                    "id": booking.id,
                    "session_id": session.id,
                    "session_title": session.title,
                    "session_type": package_type.name if package_type else "Unknown",
                    "start_time": session.start_time,
                    "end_time": session.end_time,
                    "session_status": session.status,
                    "member_package_id": booking.member_package_id,
                    "status": booking.status,
                    "booking_time": booking.booking_time,
                    "cancelled_at": booking.cancelled_at,
                    "attended": booking.attended
                }
                for booking, session, package_type in rows
            ]
        finally:
            db.close()

    def _raise_unclaimable(self, db, session_id: str, now: str):
        """Explain why the capacity claim matched no row."""
        session = db.query(SessionORM).filter(SessionORM.id == session_id).first()
        if not session:
            raise HTTPException(status_code=404, detail="Session not found")
        if session.status != "scheduled":
            raise HTTPException(status_code=400, detail=f"Session is {session.status} and cannot be booked")
        if session.start_time < now:
            raise HTTPException(status_code=400, detail="Session has already started")
        raise HTTPException(status_code=409, detail="Session is fully booked")

    def _send_after_commit(self, email_log_id: int) -> bool:
        try:
            return self.emails.dispatch(email_log_id)
        except Exception as e:
            logger.warning(f"Email dispatch failed for log {email_log_id}, booking kept: {e}")
            return False


# Singleton instance
booking_service = BookingService()


def get_booking_service() -> BookingService:
    """Dependency injection helper."""
    return booking_service
