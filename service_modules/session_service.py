"""
Session Service - admin scheduling, cancellation and the completion sweep.

Status machine: scheduled -> completed (end_time passed, via sweep)
                scheduled -> cancelled (admin)
Both targets are terminal; completed and cancelled sessions cannot be edited.
"""
from .base import (
    HTTPException, logging,
    get_db_session, utc_now_iso, to_iso,
    ProfileORM, MemberORM, TrainerORM, PackageTypeORM,
    SessionORM, BookingORM
)
from .directory_service import session_query, to_session_slot
from .booking_service import booking_service, format_when
from .notification_service import notification_service
from .email_service import get_email_service
from .activity_service import activity_service
from models import CreateSessionRequest, UpdateSessionRequest, SessionSlot
from typing import List, Optional

logger = logging.getLogger("gym_app")

EDITABLE_STATUSES = ("scheduled",)


class SessionService:
    """Service for managing gym sessions."""

    # --- SWEEP ---

    def sweep_completed(self, db) -> int:
        """Mark scheduled sessions whose end_time has passed as completed. Caller commits."""
        now = utc_now_iso()
        swept = db.query(SessionORM).filter(
            SessionORM.status == "scheduled",
            SessionORM.end_time < now
        ).update({
            SessionORM.status: "completed",
            SessionORM.updated_at: now
        }, synchronize_session=False)
        if swept:
            logger.info(f"Session sweep: {swept} session(s) marked completed")
        return swept

    def sweep_completed_sessions(self) -> dict:
        db = get_db_session()
        try:
            swept = self.sweep_completed(db)
            db.commit()
            return {"status": "success", "completed": swept}
        except Exception as e:
            db.rollback()
            logger.error(f"Error sweeping sessions: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to sweep sessions: {str(e)}")
        finally:
            db.close()

    # --- CRUD ---

    def create_session(self, request: CreateSessionRequest, created_by: str) -> SessionSlot:
        db = get_db_session()
        try:
            start_time = to_iso(request.start_time)
            end_time = to_iso(request.end_time)
            if end_time <= start_time:
                raise HTTPException(status_code=400, detail="Session must end after it starts")

            package_type = db.query(PackageTypeORM).filter(
                PackageTypeORM.id == request.package_type_id,
                PackageTypeORM.is_active == True
            ).first()
            if not package_type:
                raise HTTPException(status_code=404, detail="Package type not found")

            if request.trainer_id:
                trainer = db.query(TrainerORM).filter(TrainerORM.id == request.trainer_id).first()
                if not trainer:
                    raise HTTPException(status_code=404, detail="Trainer not found")

            now = utc_now_iso()
            session = SessionORM(
                title=request.title,
                description=request.description,
                trainer_id=request.trainer_id,
                package_type_id=package_type.id,
                start_time=start_time,
                end_time=end_time,
                max_capacity=request.max_capacity,
                current_bookings=0,
                status="scheduled",
                location=request.location,
                created_at=now,
                updated_at=now
            )
            db.add(session)
            db.flush()

            activity_service.log_activity(
                db, created_by, "session_created", "session", session.id,
                {"title": session.title, "type": package_type.name, "start_time": start_time}
            )
            db.commit()
            logger.info(f"Session created: {session.id} ({package_type.name}) at {start_time}")

            return self._slot(db, session.id)

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating session: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to create session: {str(e)}")
        finally:
            db.close()

    def update_session(self, session_id: str, request: UpdateSessionRequest, updated_by: str) -> SessionSlot:
        db = get_db_session()
        try:
            self.sweep_completed(db)
            db.commit()

            session = db.query(SessionORM).filter(SessionORM.id == session_id).first()
            if not session:
                raise HTTPException(status_code=404, detail="Session not found")
            if session.status not in EDITABLE_STATUSES:
                raise HTTPException(status_code=400, detail=f"Cannot edit a {session.status} session")

            now = utc_now_iso()
            start_time = to_iso(request.start_time) if request.start_time else session.start_time
            end_time = to_iso(request.end_time) if request.end_time else session.end_time
            if end_time <= start_time:
                raise HTTPException(status_code=400, detail="Session must end after it starts")

            if request.trainer_id is not None:
                if not db.query(TrainerORM).filter(TrainerORM.id == request.trainer_id).first():
                    raise HTTPException(status_code=404, detail="Trainer not found")
                session.trainer_id = request.trainer_id

            if request.max_capacity is not None and request.max_capacity != session.max_capacity:
                # Conditional so a booking landing meanwhile can't be squeezed out
                resized = db.query(SessionORM).filter(
                    SessionORM.id == session_id,
                    SessionORM.current_bookings <= request.max_capacity
                ).update({SessionORM.max_capacity: request.max_capacity}, synchronize_session=False)
                if resized != 1:
                    raise HTTPException(
                        status_code=400,
                        detail="Capacity cannot be lower than the number of current bookings"
                    )

            if request.title is not None:
                session.title = request.title
            if request.description is not None:
                session.description = request.description
            if request.location is not None:
                session.location = request.location
            session.start_time = start_time
            session.end_time = end_time
            session.updated_at = now

            activity_service.log_activity(
                db, updated_by, "session_updated", "session", session.id,
                request.model_dump(exclude_none=True, mode="json")
            )
            db.commit()
            logger.info(f"Session updated: {session_id}")

            return self._slot(db, session_id)

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating session: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to update session: {str(e)}")
        finally:
            db.close()

    def cancel_session(self, session_id: str, cancelled_by: str, reason: str = None) -> dict:
        """
        scheduled -> cancelled. Every confirmed booking is cancelled with its
        credit restored; booked members get a notification and an email.
        """
        db = get_db_session()
        email_log_ids = []
        try:
            now = utc_now_iso()
            # Seat claims require 'scheduled', so flip before reading the bookings
            flipped = db.query(SessionORM).filter(
                SessionORM.id == session_id,
                SessionORM.status == "scheduled"
            ).update({
                SessionORM.status: "cancelled",
                SessionORM.cancelled_at: now,
                SessionORM.cancellation_reason: reason,
                SessionORM.updated_at: now
            }, synchronize_session=False)
            if flipped != 1:
                session = db.query(SessionORM).filter(SessionORM.id == session_id).first()
                if not session:
                    raise HTTPException(status_code=404, detail="Session not found")
                raise HTTPException(status_code=400, detail=f"Cannot cancel a {session.status} session")

            session = db.query(SessionORM).filter(SessionORM.id == session_id).first()
            bookings = db.query(BookingORM).filter(
                BookingORM.session_id == session_id,
                BookingORM.status == "confirmed"
            ).all()

            cancelled_count = 0
            session_date, session_time = format_when(session.start_time, session.end_time)
            for booking in bookings:
                if not booking_service.release_booking(db, booking, now):
                    continue
                cancelled_count += 1

                profile = db.query(ProfileORM).join(
                    MemberORM, MemberORM.user_id == ProfileORM.id
                ).filter(MemberORM.id == booking.member_id).first()
                if not profile:
                    continue

                notification_service.add_notification(
                    db, profile.id, "session_cancelled", "Session Cancelled",
                    f"{session.title} on {session_date} has been cancelled. Your credit was restored.",
                    {"session_id": session_id, "booking_id": booking.id, "reason": reason}
                )
                if profile.email:
                    email = get_email_service().queue_cancellation_notice(
                        db, profile.email, profile.full_name or "Member", session.title,
                        session_date, session_time, reason, booking_id=booking.id
                    )
                    db.flush()
                    email_log_ids.append(email.id)

            activity_service.log_activity(
                db, cancelled_by, "session_cancelled", "session", session_id,
                {"title": session.title, "bookings_cancelled": cancelled_count, "reason": reason}
            )
            db.commit()
            logger.info(f"Session cancelled: {session_id}, {cancelled_count} booking(s) released")

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error cancelling session: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to cancel session: {str(e)}")
        finally:
            db.close()

        emails = get_email_service().dispatch_many(email_log_ids)
        return {
            "status": "success",
            "session_id": session_id,
            "bookings_cancelled": cancelled_count,
            "emails": emails
        }

    # --- QUERIES ---

    def list_sessions(self, status: Optional[str] = None, upcoming_only: bool = True) -> List[SessionSlot]:
        db = get_db_session()
        try:
            self.sweep_completed(db)
            db.commit()

            query = session_query(db)
            if status:
                query = query.filter(SessionORM.status == status)
            if upcoming_only:
                query = query.filter(SessionORM.start_time >= utc_now_iso())
            return [to_session_slot(*row) for row in query.order_by(SessionORM.start_time.asc()).all()]
        finally:
            db.close()

    def get_session_roster(self, session_id: str, actor_id: str = None, actor_role: str = "admin") -> dict:
        """A session with the members booked on it. Trainers only see their own sessions."""
        db = get_db_session()
        try:
            slot = self._slot(db, session_id)
            if actor_role == "trainer":
                trainer = db.query(TrainerORM).filter(TrainerORM.user_id == actor_id).first()
                if not trainer or slot.trainer_id != trainer.id:
                    raise HTTPException(status_code=403, detail="Not your session")

            rows = db.query(BookingORM, MemberORM, ProfileORM).join(
                MemberORM, BookingORM.member_id == MemberORM.id
            ).outerjoin(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            ).filter(BookingORM.session_id == session_id).order_by(BookingORM.booking_time).all()

            return {
                "session": slot,
                "bookings": [
                    {
                        "booking_id": booking.id,
                        "member_id": member.id,
                        "member_name": profile.full_name if profile and profile.full_name else "No Name",
                        "status": booking.status,
                        "booking_time": booking.booking_time,
                        "attended": booking.attended
                    }
                    for booking, member, profile in rows
                ]
            }
        finally:
            db.close()

    def get_trainer_sessions(self, user_id: str, include_past: bool = False) -> List[SessionSlot]:
        db = get_db_session()
        try:
            trainer = db.query(TrainerORM).filter(TrainerORM.user_id == user_id).first()
            if not trainer:
                raise HTTPException(status_code=404, detail="Trainer not found")

            self.sweep_completed(db)
            db.commit()

            query = session_query(db).filter(SessionORM.trainer_id == trainer.id)
            if not include_past:
                query = query.filter(SessionORM.end_time >= utc_now_iso())
            return [to_session_slot(*row) for row in query.order_by(SessionORM.start_time.asc()).all()]
        finally:
            db.close()

    def _slot(self, db, session_id: str) -> SessionSlot:
        row = session_query(db).filter(SessionORM.id == session_id).first()
        if not row:
            raise HTTPException(status_code=404, detail="Session not found")
        return to_session_slot(*row)


# Singleton instance
session_service = SessionService()


def get_session_service() -> SessionService:
    """Dependency injection helper."""
    return session_service
