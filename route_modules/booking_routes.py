"""
Booking Routes - member self-booking, the admin book-session flow,
cancellation and attendance.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from auth import get_current_user, require_role
from service_modules.booking_service import BookingService, get_booking_service
from service_modules.directory_service import DirectoryService, get_directory_service
from models import AdminBookSessionRequest, BookSessionRequest, BookingResult, CancelSessionRequest

router = APIRouter()


# --- MEMBER ENDPOINTS ---

@router.get("/api/member/packages")
async def get_my_credits(
    user = Depends(require_role("member")),
    directory: DirectoryService = Depends(get_directory_service)
):
    """Package credits the member can book with."""
    member = directory.get_member_for_user(user.id)
    return directory.get_member_credits(member["id"])


@router.get("/api/member/sessions/available")
async def get_available_sessions(
    user = Depends(require_role("member")),
    directory: DirectoryService = Depends(get_directory_service)
):
    """Sessions the member could book right now."""
    member = directory.get_member_for_user(user.id)
    return directory.get_bookable_sessions(member["id"])


@router.post("/api/member/bookings", response_model=BookingResult)
async def book_session(
    request: BookSessionRequest,
    user = Depends(require_role("member")),
    directory: DirectoryService = Depends(get_directory_service),
    service: BookingService = Depends(get_booking_service)
):
    member = directory.get_member_for_user(user.id)
    return service.book_session(member["id"], request.session_id, booked_by=user.id, notes=request.notes)


@router.get("/api/member/bookings")
async def get_my_bookings(
    include_cancelled: bool = True,
    user = Depends(require_role("member")),
    directory: DirectoryService = Depends(get_directory_service),
    service: BookingService = Depends(get_booking_service)
):
    member = directory.get_member_for_user(user.id)
    return service.get_member_bookings(member["id"], include_cancelled)


# --- ADMIN BOOK-SESSION FLOW ---

@router.get("/api/admin/book-session/members")
async def list_bookable_members(
    user = Depends(require_role("admin")),
    directory: DirectoryService = Depends(get_directory_service)
):
    """Step 1: members holding at least one usable credit."""
    return directory.list_members_with_credits()


@router.get("/api/admin/book-session/members/{member_id}/sessions")
async def list_member_sessions(
    member_id: str,
    user = Depends(require_role("admin")),
    directory: DirectoryService = Depends(get_directory_service)
):
    """Step 2: sessions the selected member can book."""
    directory.get_member(member_id)
    return {
        "credits": directory.get_member_credits(member_id),
        "sessions": directory.get_bookable_sessions(member_id)
    }


@router.post("/api/admin/book-session", response_model=BookingResult)
async def admin_book_session(
    request: AdminBookSessionRequest,
    user = Depends(require_role("admin")),
    service: BookingService = Depends(get_booking_service)
):
    """Step 3: commit the booking on the member's behalf."""
    return service.book_session(request.member_id, request.session_id, booked_by=user.id, notes=request.notes)


@router.get("/api/admin/members/{member_id}/bookings")
async def get_member_bookings(
    member_id: str,
    include_cancelled: bool = True,
    user = Depends(require_role("admin")),
    service: BookingService = Depends(get_booking_service)
):
    return service.get_member_bookings(member_id, include_cancelled)


# --- LIFECYCLE ---

@router.post("/api/bookings/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    request: Optional[CancelSessionRequest] = None,
    user = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service)
):
    reason = request.reason if request else None
    return service.cancel_booking(booking_id, user.id, user.role, reason)


@router.post("/api/bookings/{booking_id}/attend")
async def mark_attended(
    booking_id: str,
    user = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service)
):
    if user.role not in ("trainer", "admin"):
        raise HTTPException(status_code=403, detail="Only trainers and admins can record attendance")

    return service.mark_attended(booking_id, user.id, user.role)
