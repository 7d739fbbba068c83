"""
Services package - organized service modules.

Each module exposes a service class, a singleton and a get_x_service()
dependency helper for the routes.
"""
from .base import *
from .package_matcher import match_package_credit, can_book
from .notification_service import NotificationService, notification_service, get_notification_service
from .email_service import EmailService, get_email_service
from .activity_service import ActivityService, activity_service, get_activity_service
from .directory_service import DirectoryService, directory_service, get_directory_service
from .booking_service import BookingService, booking_service, get_booking_service
from .session_service import SessionService, session_service, get_session_service
from .package_service import PackageService, package_service, get_package_service
from .report_service import ReportService, report_service, get_report_service
from .auth_service import AuthService, auth_service, get_auth_service

__all__ = [
    'match_package_credit',
    'can_book',
    'NotificationService',
    'notification_service',
    'get_notification_service',
    'EmailService',
    'get_email_service',
    'ActivityService',
    'activity_service',
    'get_activity_service',
    'DirectoryService',
    'directory_service',
    'get_directory_service',
    'BookingService',
    'booking_service',
    'get_booking_service',
    'SessionService',
    'session_service',
    'get_session_service',
    'PackageService',
    'package_service',
    'get_package_service',
    'ReportService',
    'report_service',
    'get_report_service',
    'AuthService',
    'auth_service',
    'get_auth_service',
]
