"""
Routes package - organized API routes.

Import the combined router for use in main.py.
"""
from fastapi import APIRouter

from .auth_routes import router as auth_router
from .booking_routes import router as booking_router
from .session_routes import router as session_router
from .package_routes import router as package_router
from .notification_routes import router as notification_router
from .report_routes import router as report_router

# Combined router that includes all sub-routers
combined_router = APIRouter()
combined_router.include_router(auth_router, tags=["auth"])
combined_router.include_router(booking_router, tags=["bookings"])
combined_router.include_router(session_router, tags=["sessions"])
combined_router.include_router(package_router, tags=["packages"])
combined_router.include_router(notification_router, tags=["notifications"])
combined_router.include_router(report_router, tags=["reports"])

__all__ = ['combined_router', 'auth_router', 'booking_router', 'session_router',
           'package_router', 'notification_router', 'report_router']
