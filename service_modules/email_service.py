"""
Email Service - transactional emails with an email_logs outbox.

Emails are queued as 'pending' rows inside the caller's transaction and sent
after the commit by dispatch(). Without SMTP credentials the message is only
logged, and the row is still marked as sent.
"""
import smtplib
import ssl
import os
import re
import json
import logging
from html import escape
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List, Optional

from .base import get_db_session, EmailLogORM, utc_now_iso

logger = logging.getLogger("gym_app")

_WRAPPER = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <header style="background-color: {color}; color: white; padding: 20px; text-align: center;">
        <h1 style="margin: 0;">{heading}</h1>
    </header>
    <main style="padding: 20px;">
        {body}
        <p>Best regards,<br>The Gym Team</p>
    </main>
    <footer style="background-color: #f9fafb; padding: 20px; text-align: center; font-size: 12px; color: #6b7280;">
        <p>This is an automated message. Please do not reply to this email.</p>
    </footer>
</div>
"""


def _h(value) -> str:
    """Escape a value for interpolation into an HTML body."""
    return escape(str(value)) if value is not None else ""


class EmailService:
    """Service for queueing and sending transactional emails via SMTP."""

    def __init__(self):
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.from_email = os.getenv("SMTP_FROM_EMAIL", self.smtp_user)
        self.from_name = os.getenv("SMTP_FROM_NAME", "Gym Team")
        self.site_url = os.getenv("SITE_URL", "http://localhost:9007").rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    # --- OUTBOX ---

    def queue_email(self, db, to_email: str, template_name: str, subject: str,
                    html_body: str, metadata: dict = None) -> EmailLogORM:
        """Stage a pending email on the caller's session. The caller commits."""
        log = EmailLogORM(
            recipient_email=to_email,
            template_name=template_name,
            subject=subject,
            body_html=html_body,
            status="pending",
            meta_json=json.dumps(metadata or {}),
            created_at=utc_now_iso()
        )
        db.add(log)
        return log

    def dispatch(self, log_id: int) -> bool:
        """Send one queued email and record the outcome. Never raises."""
        db = get_db_session()
        try:
            log = db.query(EmailLogORM).filter(EmailLogORM.id == log_id).first()
            if not log:
                logger.warning(f"Email log {log_id} not found, nothing to dispatch")
                return False
            if log.status != "pending":
                return log.status == "sent"

            try:
                self._deliver(log.recipient_email, log.subject, log.body_html or "")
                log.status = "sent"
                log.sent_at = utc_now_iso()
                log.failed_reason = None
            except Exception as e:
                logger.error(f"Failed to send '{log.template_name}' to {log.recipient_email}: {e}")
                log.status = "failed"
                log.failed_reason = str(e)

            db.commit()
            return log.status == "sent"

        except Exception as e:
            db.rollback()
            logger.error(f"Email dispatch error for log {log_id}: {e}")
            return False
        finally:
            db.close()

    def dispatch_many(self, log_ids: List[int]) -> dict:
        successful = 0
        failed = 0
        for log_id in log_ids:
            if self.dispatch(log_id):
                successful += 1
            else:
                failed += 1
        return {"successful": successful, "failed": failed}

    def dispatch_pending(self, limit: int = 100) -> dict:
        """Flush rows left pending (e.g. the process died between commit and send)."""
        db = get_db_session()
        try:
            ids = [row.id for row in db.query(EmailLogORM.id).filter(
                EmailLogORM.status == "pending"
            ).order_by(EmailLogORM.id).limit(limit).all()]
        finally:
            db.close()
        return self.dispatch_many(ids)

    def _deliver(self, to_email: str, subject: str, html_body: str):
        if not self.is_configured():
            logger.info(f"SMTP not configured, email logged only -> {to_email}: {subject}")
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        # Plain text fallback
        text_body = html_body.replace("<br>", "\n").replace("</p>", "\n")
        text_body = re.sub(r"<[^>]+>", "", text_body)

        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            server.starttls(context=context)
            server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_email, to_email, msg.as_string())

        logger.info(f"Email sent to {to_email}: {subject}")

    # --- TEMPLATES ---

    def queue_booking_confirmation(self, db, to_email: str, member_name: str, session_title: str,
                                   session_type: str, session_date: str, session_time: str,
                                   trainer_name: str, location: Optional[str] = None,
                                   booking_id: str = None) -> EmailLogORM:
        subject = f"Booking Confirmed: {session_title} on {session_date}"
        location_line = f"<p><strong>Location:</strong> {_h(location)}</p>" if location else ""
        body = f"""
        <p>Hi {_h(member_name)},</p>
        <p>Your session booking has been confirmed. Here are the details:</p>
        <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <p><strong>Session:</strong> {_h(session_title)}</p>
            <p><strong>Type:</strong> {_h(session_type)}</p>
            <p><strong>Date:</strong> {_h(session_date)}</p>
            <p><strong>Time:</strong> {_h(session_time)}</p>
            <p><strong>Trainer:</strong> {_h(trainer_name)}</p>
            {location_line}
        </div>
        <p>If you need to cancel, please do so at least 24 hours in advance from
        <a href="{self.site_url}/member/book-session">your bookings</a>.</p>
        """
        html = _WRAPPER.format(color="#1f2937", heading="Booking Confirmed!", body=body)
        return self.queue_email(db, to_email, "booking_confirmation", subject, html,
                                {"booking_id": booking_id})

    def queue_cancellation_notice(self, db, to_email: str, member_name: str, session_title: str,
                                  session_date: str, session_time: str,
                                  cancellation_reason: Optional[str] = None,
                                  booking_id: str = None) -> EmailLogORM:
        subject = f"Session Cancelled: {session_title} on {session_date}"
        reason_line = f"<p><strong>Reason:</strong> {_h(cancellation_reason)}</p>" if cancellation_reason else ""
        body = f"""
        <p>Hi {_h(member_name)},</p>
        <p>Your booking for the following session has been cancelled:</p>
        <div style="background-color: #fef2f2; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #dc2626;">
            <p><strong>Session:</strong> {_h(session_title)}</p>
            <p><strong>Date:</strong> {_h(session_date)}</p>
            <p><strong>Time:</strong> {_h(session_time)}</p>
            {reason_line}
        </div>
        <p>Your session credit has been restored to your package and you can book a
        replacement session immediately.</p>
        """
        html = _WRAPPER.format(color="#dc2626", heading="Session Cancelled", body=body)
        return self.queue_email(db, to_email, "session_cancellation", subject, html,
                                {"booking_id": booking_id})

    def queue_package_expiry_warning(self, db, to_email: str, member_name: str, package_name: str,
                                     expiry_date: str, remaining_sessions: int,
                                     member_package_id: str = None) -> EmailLogORM:
        subject = f"Package Expiring Soon: {package_name}"
        body = f"""
        <p>Hi {_h(member_name)},</p>
        <p>This is a friendly reminder that your package is expiring soon:</p>
        <div style="background-color: #fef3c7; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #f59e0b;">
            <p><strong>Package:</strong> {_h(package_name)}</p>
            <p><strong>Expiry Date:</strong> {_h(expiry_date)}</p>
            <p><strong>Remaining Sessions:</strong> {_h(remaining_sessions)}</p>
        </div>
        <p>To book your remaining sessions or renew your package, log into
        <a href="{self.site_url}/member/packages">your member portal</a>.</p>
        """
        html = _WRAPPER.format(color="#f59e0b", heading="Package Expiring Soon", body=body)
        return self.queue_email(db, to_email, "package_expiry_warning", subject, html,
                                {"member_package_id": member_package_id})


# Singleton
_email_service = EmailService()

def get_email_service() -> EmailService:
    return _email_service
