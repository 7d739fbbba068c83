"""
Report Service - admin dashboard numbers, counter audits and date-range reports.
"""
from .base import (
    HTTPException, logging, date,
    get_db_session, utc_now_iso, today_iso,
    ProfileORM, MemberORM, PackageORM, MemberPackageORM, SessionORM, BookingORM
)
from .directory_service import ACTIVE_BOOKING_STATUSES, session_query
from sqlalchemy import func
from typing import List, Optional

logger = logging.getLogger("gym_app")


class ReportService:

    def dashboard_stats(self) -> dict:
        db = get_db_session()
        try:
            today = today_iso()
            return {
                "total_members": db.query(func.count(MemberORM.id)).scalar() or 0,
                "active_members": db.query(func.count(MemberORM.id)).filter(
                    MemberORM.membership_status == "active"
                ).scalar() or 0,
                "total_sessions": db.query(func.count(SessionORM.id)).scalar() or 0,
                "today_bookings": db.query(func.count(BookingORM.id)).filter(
                    BookingORM.booking_time.like(f"{today}%")
                ).scalar() or 0
            }
        finally:
            db.close()

    def session_utilization(self) -> List[dict]:
        """Booked vs capacity for every upcoming scheduled session."""
        db = get_db_session()
        try:
            rows = session_query(db).filter(
                SessionORM.status == "scheduled",
                SessionORM.start_time >= utc_now_iso()
            ).order_by(SessionORM.start_time.asc()).all()

            report = []
            for session, package_type, _ in rows:
                capacity = session.max_capacity or 1
                booked = session.current_bookings or 0
                report.append({
                    "session_id": session.id,
                    "title": session.title,
                    "type": package_type.name if package_type else "Unknown",
                    "start_time": session.start_time,
                    "booked": booked,
                    "capacity": capacity,
                    "utilization": round(booked / capacity * 100, 1)
                })
            return report
        finally:
            db.close()

    def counter_consistency(self) -> dict:
        """
        Sessions whose current_bookings, and credits whose used count
        (sessions_total - sessions_remaining), disagree with the bookings table.
        """
        db = get_db_session()
        try:
            live = BookingORM.status.in_(ACTIVE_BOOKING_STATUSES)

            session_counts = dict(db.query(BookingORM.session_id, func.count(BookingORM.id)).filter(
                live
            ).group_by(BookingORM.session_id).all())
            credit_counts = dict(db.query(BookingORM.member_package_id, func.count(BookingORM.id)).filter(
                live, BookingORM.member_package_id != None
            ).group_by(BookingORM.member_package_id).all())

            session_drift = []
            for session in db.query(SessionORM).filter(SessionORM.status != "cancelled").all():
                actual = session_counts.get(session.id, 0)
                if (session.current_bookings or 0) != actual:
                    session_drift.append({
                        "session_id": session.id,
                        "title": session.title,
                        "stored": session.current_bookings or 0,
                        "actual": actual
                    })

            credit_drift = []
            for credit in db.query(MemberPackageORM).all():
                used = (credit.sessions_total or 0) - (credit.sessions_remaining or 0)
                actual = credit_counts.get(credit.id, 0)
                if used != actual:
                    credit_drift.append({
                        "member_package_id": credit.id,
                        "member_id": credit.member_id,
                        "stored_used": used,
                        "actual": actual
                    })

            if session_drift or credit_drift:
                logger.warning(f"Counter drift: {len(session_drift)} session(s), {len(credit_drift)} credit(s)")

            return {
                "consistent": not session_drift and not credit_drift,
                "sessions": session_drift,
                "credits": credit_drift
            }
        finally:
            db.close()

    # --- DATE-RANGE REPORTS ---

    def revenue_by_package(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[dict]:
        """Credit sales grouped by package, biggest earner first."""
        start, end = self._date_bounds(start_date, end_date)
        db = get_db_session()
        try:
            purchased = func.substr(MemberPackageORM.purchased_at, 1, 10)
            revenue = func.sum(func.coalesce(MemberPackageORM.price, 0.0))
            query = db.query(
                PackageORM.id, PackageORM.name, func.count(MemberPackageORM.id), revenue
            ).select_from(MemberPackageORM).join(
                PackageORM, MemberPackageORM.package_id == PackageORM.id
            ).filter(*self._in_range(purchased, start, end))

            rows = query.group_by(PackageORM.id, PackageORM.name).order_by(revenue.desc(), PackageORM.name).all()
            return [
                {"package_id": package_id, "package_name": name, "purchases": purchases,
                 "revenue": round(total or 0.0, 2)}
                for package_id, name, purchases, total in rows
            ]
        finally:
            db.close()

    def sessions_by_status(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> dict:
        start, end = self._date_bounds(start_date, end_date)
        db = get_db_session()
        try:
            day = func.substr(SessionORM.start_time, 1, 10)
            counts = dict(db.query(SessionORM.status, func.count(SessionORM.id)).filter(
                *self._in_range(day, start, end)
            ).group_by(SessionORM.status).all())

            report = {status: counts.get(status, 0) for status in ("scheduled", "completed", "cancelled")}
            report["total"] = sum(counts.values())
            return report
        finally:
            db.close()

    def income_by_date(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[dict]:
        """Credit sales per purchase day, oldest first."""
        start, end = self._date_bounds(start_date, end_date)
        db = get_db_session()
        try:
            day = func.substr(MemberPackageORM.purchased_at, 1, 10)
            rows = db.query(
                day, func.sum(func.coalesce(MemberPackageORM.price, 0.0))
            ).filter(*self._in_range(day, start, end)).group_by(day).order_by(day).all()
            return [{"date": d, "income": round(total or 0.0, 2)} for d, total in rows]
        finally:
            db.close()

    def income_by_member(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[dict]:
        start, end = self._date_bounds(start_date, end_date)
        db = get_db_session()
        try:
            purchased = func.substr(MemberPackageORM.purchased_at, 1, 10)
            income = func.sum(func.coalesce(MemberPackageORM.price, 0.0))
            rows = db.query(MemberORM.id, ProfileORM.full_name, income).select_from(MemberPackageORM).join(
                MemberORM, MemberPackageORM.member_id == MemberORM.id
            ).outerjoin(
                ProfileORM, MemberORM.user_id == ProfileORM.id
            ).filter(
                *self._in_range(purchased, start, end)
            ).group_by(MemberORM.id, ProfileORM.full_name).order_by(income.desc()).all()
            return [
                {"member_id": member_id, "member_name": name or "No Name", "income": round(total or 0.0, 2)}
                for member_id, name, total in rows
            ]
        finally:
            db.close()

    def attendance_by_session(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[dict]:
        """Attended bookings as a percentage of current_bookings, per session."""
        start, end = self._date_bounds(start_date, end_date)
        db = get_db_session()
        try:
            day = func.substr(SessionORM.start_time, 1, 10)
            sessions = db.query(SessionORM).filter(
                *self._in_range(day, start, end)
            ).order_by(SessionORM.start_time.asc()).all()

            attended = dict(db.query(BookingORM.session_id, func.count(BookingORM.id)).filter(
                BookingORM.attended == True
            ).group_by(BookingORM.session_id).all())

            report = []
            for session in sessions:
                booked = session.current_bookings or 0
                present = attended.get(session.id, 0)
                report.append({
                    "session_id": session.id,
                    "title": session.title,
                    "start_time": session.start_time,
                    "status": session.status,
                    "attended": present,
                    "booked": booked,
                    "attendance_rate": round(present / booked * 100, 2) if booked else 0
                })
            return report
        finally:
            db.close()

    def _date_bounds(self, start_date: Optional[str], end_date: Optional[str]):
        try:
            start = date.fromisoformat(start_date).isoformat() if start_date else None
            end = date.fromisoformat(end_date).isoformat() if end_date else None
        except ValueError:
            raise HTTPException(status_code=400, detail="Dates must be YYYY-MM-DD")
        if start and end and start > end:
            raise HTTPException(status_code=400, detail="start_date must not be after end_date")
        return start, end

    def _in_range(self, day, start: Optional[str], end: Optional[str]) -> list:
        conditions = []
        if start:
            conditions.append(day >= start)
        if end:
            conditions.append(day <= end)
        return conditions


report_service = ReportService()


def get_report_service() -> ReportService:
    return report_service
