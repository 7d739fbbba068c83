"""
Session Routes - admin scheduling and trainer views.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from auth import require_role
from service_modules.session_service import SessionService, get_session_service
from models import CreateSessionRequest, UpdateSessionRequest, CancelSessionRequest, SessionSlot

router = APIRouter()


# --- ADMIN ENDPOINTS ---

@router.get("/api/admin/sessions")
async def list_sessions(
    status: Optional[str] = None,
    upcoming_only: bool = True,
    user = Depends(require_role("admin")),
    service: SessionService = Depends(get_session_service)
):
    return service.list_sessions(status, upcoming_only)


@router.post("/api/admin/sessions", response_model=SessionSlot)
async def create_session(
    request: CreateSessionRequest,
    user = Depends(require_role("admin")),
    service: SessionService = Depends(get_session_service)
):
    return service.create_session(request, user.id)


@router.patch("/api/admin/sessions/{session_id}", response_model=SessionSlot)
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    user = Depends(require_role("admin")),
    service: SessionService = Depends(get_session_service)
):
    return service.update_session(session_id, request, user.id)


@router.post("/api/admin/sessions/{session_id}/cancel")
async def cancel_session(
    session_id: str,
    request: CancelSessionRequest,
    user = Depends(require_role("admin")),
    service: SessionService = Depends(get_session_service)
):
    """Cancel a session and every confirmed booking on it."""
    return service.cancel_session(session_id, user.id, request.reason)


@router.get("/api/admin/sessions/{session_id}/roster")
async def get_roster(
    session_id: str,
    user = Depends(require_role("admin", "trainer")),
    service: SessionService = Depends(get_session_service)
):
    return service.get_session_roster(session_id, user.id, user.role)


@router.post("/api/admin/sessions/sweep")
async def sweep_sessions(
    user = Depends(require_role("admin")),
    service: SessionService = Depends(get_session_service)
):
    """Mark sessions that have ended as completed."""
    return service.sweep_completed_sessions()


# --- TRAINER ENDPOINTS ---

@router.get("/api/trainer/sessions")
async def get_my_sessions(
    include_past: bool = False,
    user = Depends(require_role("trainer")),
    service: SessionService = Depends(get_session_service)
):
    return service.get_trainer_sessions(user.id, include_past)
