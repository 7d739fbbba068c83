"""
Auth Routes - login and current profile.
"""
from fastapi import APIRouter, Depends
from auth import get_current_user
from service_modules.auth_service import AuthService, get_auth_service
from models import LoginRequest, TokenResponse

router = APIRouter()


@router.post("/api/auth/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    return service.login(request.email, request.password)


@router.get("/api/auth/me")
async def read_me(user = Depends(get_current_user)):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role
    }
