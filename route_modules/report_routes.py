"""
Report Routes - admin dashboard, audits, date-range reports, activity log and the email outbox.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from auth import require_role
from service_modules.report_service import ReportService, get_report_service
from service_modules.activity_service import ActivityService, get_activity_service
from service_modules.email_service import EmailService, get_email_service

router = APIRouter()


@router.get("/api/admin/dashboard")
async def get_dashboard(
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.dashboard_stats()


@router.get("/api/admin/reports/utilization")
async def get_utilization(
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.session_utilization()


@router.get("/api/admin/reports/consistency")
async def get_consistency(
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.counter_consistency()


@router.get("/api/admin/reports/revenue-by-package")
async def get_revenue_by_package(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.revenue_by_package(start_date, end_date)


@router.get("/api/admin/reports/sessions-by-status")
async def get_sessions_by_status(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.sessions_by_status(start_date, end_date)


@router.get("/api/admin/reports/income-by-date")
async def get_income_by_date(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.income_by_date(start_date, end_date)


@router.get("/api/admin/reports/income-by-member")
async def get_income_by_member(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    return service.income_by_member(start_date, end_date)


@router.get("/api/admin/reports/attendance")
async def get_attendance(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user = Depends(require_role("admin")),
    service: ReportService = Depends(get_report_service)
):
    """Attended over booked, per session."""
    return service.attendance_by_session(start_date, end_date)


@router.get("/api/admin/activity")
async def get_activity(
    limit: int = 50,
    action: Optional[str] = None,
    user = Depends(require_role("admin")),
    service: ActivityService = Depends(get_activity_service)
):
    return service.get_recent_activity(limit, action)


@router.post("/api/admin/emails/dispatch")
async def dispatch_pending_emails(
    limit: int = 100,
    user = Depends(require_role("admin")),
    service: EmailService = Depends(get_email_service)
):
    """Send outbox rows still pending."""
    return service.dispatch_pending(limit)
