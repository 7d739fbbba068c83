"""
Package Service - package catalogue, credit assignment, member requests and
credit expiry.
"""
from .base import (
    HTTPException, logging, date, timedelta,
    get_db_session, utc_now_iso, today_iso,
    ProfileORM, MemberORM, PackageTypeORM, PackageORM,
    MemberPackageORM, PackageRequestORM, BookingORM
)
from .directory_service import credit_query, to_package_credit
from .notification_service import notification_service
from .email_service import get_email_service
from .activity_service import activity_service
from models import AssignPackageRequest, PackageCredit, PackageInfo, PackageRequestCreate
from sqlalchemy import or_
from typing import List, Optional

logger = logging.getLogger("gym_app")

APPROVED_REQUEST_DAYS = 365


class PackageService:
    """Service for packages and member package credits."""

    # --- CATALOGUE ---

    def list_packages(self) -> List[PackageInfo]:
        db = get_db_session()
        try:
            rows = db.query(PackageORM, PackageTypeORM).outerjoin(
                PackageTypeORM, PackageORM.package_type_id == PackageTypeORM.id
            ).filter(PackageORM.is_active == True).order_by(PackageORM.price, PackageORM.name).all()
            return [
                PackageInfo(
                    id=package.id,
                    name=package.name,
                    description=package.description,
                    price=package.price or 0.0,
                    duration_days=package.duration_days,
                    session_count=package.session_count,
                    type=package_type.name if package_type else "Unknown"
                )
                for package, package_type in rows
            ]
        finally:
            db.close()

    def list_package_types(self) -> List[dict]:
        db = get_db_session()
        try:
            types = db.query(PackageTypeORM).filter(
                PackageTypeORM.is_active == True
            ).order_by(PackageTypeORM.sort_order, PackageTypeORM.name).all()
            return [
                {"id": t.id, "name": t.name, "description": t.description, "color": t.color}
                for t in types
            ]
        finally:
            db.close()

    # --- CREDITS ---

    def assign_package(self, member_id: str, request: AssignPackageRequest, assigned_by: str) -> PackageCredit:
        """Give a member a fresh credit for a package."""
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            package = db.query(PackageORM).filter(
                PackageORM.id == request.package_id,
                PackageORM.is_active == True
            ).first()
            if not package:
                raise HTTPException(status_code=404, detail="Package not found")

            try:
                start = date.fromisoformat(request.start_date) if request.start_date else date.fromisoformat(today_iso())
            except ValueError:
                raise HTTPException(status_code=400, detail="start_date must be YYYY-MM-DD")

            end_date = (start + timedelta(days=package.duration_days)).isoformat() if package.duration_days else None
            credit = self._add_credit(db, member.id, package, start.isoformat(), end_date)

            notification_service.add_notification(
                db, member.user_id, "package_assigned", "Package Assigned",
                f"You have been assigned {package.name} with {credit.sessions_total} session(s)",
                {"member_package_id": credit.id, "package_id": package.id}
            )
            activity_service.log_activity(
                db, assigned_by, "package_assigned", "member_package", credit.id,
                {"member_id": member.id, "package_id": package.id, "package_name": package.name}
            )
            db.commit()
            logger.info(f"Package {package.name} assigned to member {member_id} (credit {credit.id})")

            return self._credit(db, credit.id)

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error assigning package: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to assign package: {str(e)}")
        finally:
            db.close()

    def remove_credit(self, member_package_id: str, removed_by: str) -> dict:
        db = get_db_session()
        try:
            credit = db.query(MemberPackageORM).filter(MemberPackageORM.id == member_package_id).first()
            if not credit:
                raise HTTPException(status_code=404, detail="Package credit not found")

            in_use = db.query(BookingORM).filter(
                BookingORM.member_package_id == member_package_id,
                BookingORM.status == "confirmed"
            ).count()
            if in_use:
                raise HTTPException(
                    status_code=400,
                    detail=f"Package has {in_use} confirmed booking(s); cancel them first"
                )

            # History rows keep the booking but lose the credit link
            db.query(BookingORM).filter(
                BookingORM.member_package_id == member_package_id
            ).update({BookingORM.member_package_id: None}, synchronize_session=False)

            activity_service.log_activity(
                db, removed_by, "package_removed", "member_package", member_package_id,
                {"member_id": credit.member_id, "package_id": credit.package_id,
                 "sessions_remaining": credit.sessions_remaining}
            )
            db.delete(credit)
            db.commit()
            logger.info(f"Package credit removed: {member_package_id}")

            return {"status": "success", "message": "Package removed"}

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error removing package credit: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to remove package: {str(e)}")
        finally:
            db.close()

    # --- REQUESTS ---

    def request_package(self, member_id: str, request: PackageRequestCreate) -> dict:
        db = get_db_session()
        try:
            package = db.query(PackageORM).filter(
                PackageORM.id == request.package_id,
                PackageORM.is_active == True
            ).first()
            if not package:
                raise HTTPException(status_code=404, detail="Package not found")

            pending = db.query(PackageRequestORM).filter(
                PackageRequestORM.member_id == member_id,
                PackageRequestORM.package_id == package.id,
                PackageRequestORM.status == "pending"
            ).first()
            if pending:
                raise HTTPException(status_code=400, detail="You already have a pending request for this package")

            package_request = PackageRequestORM(
                member_id=member_id,
                package_id=package.id,
                status="pending",
                notes=request.notes,
                requested_at=utc_now_iso()
            )
            db.add(package_request)
            db.commit()
            logger.info(f"Package request {package_request.id}: member {member_id} -> {package.name}")

            return {"status": "success", "request_id": package_request.id, "message": "Package request submitted"}

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error requesting package: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to request package: {str(e)}")
        finally:
            db.close()

    def list_package_requests(self, status: Optional[str] = "pending") -> List[dict]:
        db = get_db_session()
        try:
            query = db.query(PackageRequestORM, PackageORM, MemberORM, ProfileORM).join(
                PackageORM, PackageRequestORM.package_id == PackageORM.id
            ).join(
                MemberORM, PackageRequestORM.member_id == MemberORM.id
            ).outerjoin(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            )
            if status:
                query = query.filter(PackageRequestORM.status == status)

            rows = query.order_by(PackageRequestORM.requested_at.desc()).all()
            return [
                {
                    "id": req.id,
                    "member_id": member.id,
                    "member_name": profile.full_name if profile and profile.full_name else "No Name",
                    "package_id": package.id,
                    "package_name": package.name,
                    "status": req.status,
                    "notes": req.notes,
                    "requested_at": req.requested_at,
                    "approved_at": req.approved_at
                }
                for req, package, member, profile in rows
            ]
        finally:
            db.close()

    def approve_request(self, request_id: str, approved_by: str) -> dict:
        """pending -> approved, creating a one-year credit."""
        db = get_db_session()
        try:
            req = self._pending_request(db, request_id)
            package = db.query(PackageORM).filter(PackageORM.id == req.package_id).first()
            member = db.query(MemberORM).filter(MemberORM.id == req.member_id).first()
            if not package or not member:
                raise HTTPException(status_code=404, detail="Package or member no longer exists")

            self._decide_request(db, req.id, "approved", approved_by)
            start = date.fromisoformat(today_iso())
            end_date = (start + timedelta(days=APPROVED_REQUEST_DAYS)).isoformat()
            credit = self._add_credit(db, member.id, package, start.isoformat(), end_date)

            notification_service.add_notification(
                db, member.user_id, "package_request_approved", "Package Request Approved",
                f"Your request for {package.name} has been approved",
                {"request_id": req.id, "member_package_id": credit.id}
            )
            activity_service.log_activity(
                db, approved_by, "package_request_approved", "package_request", req.id,
                {"member_id": member.id, "package_id": package.id, "member_package_id": credit.id}
            )
            db.commit()
            logger.info(f"Package request approved: {request_id}")

            return {"status": "success", "request_id": request_id, "member_package_id": credit.id,
                    "message": "Package request approved"}

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error approving package request: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to approve request: {str(e)}")
        finally:
            db.close()

    def reject_request(self, request_id: str, rejected_by: str) -> dict:
        db = get_db_session()
        try:
            req = self._pending_request(db, request_id)
            package = db.query(PackageORM).filter(PackageORM.id == req.package_id).first()
            member = db.query(MemberORM).filter(MemberORM.id == req.member_id).first()

            self._decide_request(db, req.id, "rejected", rejected_by)

            if member:
                notification_service.add_notification(
                    db, member.user_id, "package_request_rejected", "Package Request Rejected",
                    f"Your request for {package.name if package else 'a package'} was not approved",
                    {"request_id": req.id}
                )
            activity_service.log_activity(
                db, rejected_by, "package_request_rejected", "package_request", req.id,
                {"member_id": req.member_id, "package_id": req.package_id}
            )
            db.commit()
            logger.info(f"Package request rejected: {request_id}")

            return {"status": "success", "request_id": request_id, "message": "Package request rejected"}

        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error rejecting package request: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to reject request: {str(e)}")
        finally:
            db.close()

    # --- EXPIRY ---

    def expire_credits(self) -> dict:
        """active -> expired for credits past their end date or used up."""
        db = get_db_session()
        try:
            expired = db.query(MemberPackageORM).filter(
                MemberPackageORM.status == "active",
                or_(
                    MemberPackageORM.end_date < today_iso(),
                    MemberPackageORM.sessions_remaining <= 0
                )
            ).update({
                MemberPackageORM.status: "expired",
                MemberPackageORM.updated_at: utc_now_iso()
            }, synchronize_session=False)
            db.commit()
            if expired:
                logger.info(f"Expired {expired} package credit(s)")
            return {"status": "success", "expired": expired}
        except Exception as e:
            db.rollback()
            logger.error(f"Error expiring package credits: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to expire packages: {str(e)}")
        finally:
            db.close()

    def send_expiry_warnings(self, days: int = 7) -> dict:
        """Email members whose active credits end within the next `days` days."""
        if days < 0:
            raise HTTPException(status_code=400, detail="days must not be negative")

        db = get_db_session()
        email_log_ids = []
        try:
            today = date.fromisoformat(today_iso())
            horizon = (today + timedelta(days=days)).isoformat()

            rows = db.query(MemberPackageORM, PackageORM, ProfileORM).join(
                PackageORM, MemberPackageORM.package_id == PackageORM.id
            ).join(
                MemberORM, MemberPackageORM.member_id == MemberORM.id
            ).join(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            ).filter(
                MemberPackageORM.status == "active",
                MemberPackageORM.sessions_remaining > 0,
                MemberPackageORM.end_date != None,
                MemberPackageORM.end_date >= today.isoformat(),
                MemberPackageORM.end_date <= horizon
            ).all()

            emails = get_email_service()
            for credit, package, profile in rows:
                if not profile.email:
                    continue
                log = emails.queue_package_expiry_warning(
                    db, profile.email, profile.full_name or "Member", package.name,
                    credit.end_date, credit.sessions_remaining, member_package_id=credit.id
                )
                db.flush()
                email_log_ids.append(log.id)
            db.commit()

        except Exception as e:
            db.rollback()
            logger.error(f"Error queueing expiry warnings: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to send expiry warnings: {str(e)}")
        finally:
            db.close()

        result = get_email_service().dispatch_many(email_log_ids)
        logger.info(f"Expiry warnings: {result['successful']} sent, {result['failed']} failed")
        return {"status": "success", "queued": len(email_log_ids), **result}

    # --- HELPERS ---

    def _add_credit(self, db, member_id: str, package: PackageORM, start_date: str,
                    end_date: Optional[str]) -> MemberPackageORM:
        now = utc_now_iso()
        total = package.session_count or 0
        credit = MemberPackageORM(
            member_id=member_id,
            package_id=package.id,
            start_date=start_date,
            end_date=end_date,
            sessions_remaining=total,
            sessions_total=total,
            price=package.price,
            status="active" if total > 0 else "expired",
            purchased_at=now,
            activated_at=now,
            created_at=now,
            updated_at=now
        )
        db.add(credit)
        db.flush()
        return credit

    def _pending_request(self, db, request_id: str) -> PackageRequestORM:
        req = db.query(PackageRequestORM).filter(PackageRequestORM.id == request_id).first()
        if not req:
            raise HTTPException(status_code=404, detail="Package request not found")
        if req.status != "pending":
            raise HTTPException(status_code=400, detail=f"Request is already {req.status}")
        return req

    def _decide_request(self, db, request_id: str, status: str, decided_by: str):
        """pending -> status. A request decided concurrently matches no row."""
        decided = db.query(PackageRequestORM).filter(
            PackageRequestORM.id == request_id,
            PackageRequestORM.status == "pending"
        ).update({
            PackageRequestORM.status: status,
            PackageRequestORM.approved_by: decided_by,
            PackageRequestORM.approved_at: utc_now_iso()
        }, synchronize_session=False)
        if decided != 1:
            raise HTTPException(status_code=400, detail="Request has already been decided")

    def _credit(self, db, member_package_id: str) -> PackageCredit:
        row = credit_query(db).filter(MemberPackageORM.id == member_package_id).first()
        if not row:
            raise HTTPException(status_code=404, detail="Package credit not found")
        return to_package_credit(*row)


# Singleton instance
package_service = PackageService()


def get_package_service() -> PackageService:
    """Dependency injection helper."""
    return package_service
