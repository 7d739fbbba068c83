from unittest.mock import patch, MagicMock

from database import get_db_session
from service_modules.email_service import EmailService, get_email_service
from models_orm import EmailLogORM


def queue(service, to="member@example.com"):
    db = get_db_session()
    try:
        log = service.queue_booking_confirmation(
            db, to, "Alice", "Spin", "Group Class", "2030-01-01", "10:00 - 11:00", "Tom", "Studio 1",
            booking_id="b1"
        )
        db.commit()
        return log.id
    finally:
        db.close()


def test_unconfigured_smtp_logs_and_marks_sent(factory):
    service = get_email_service()
    assert not service.is_configured()

    log_id = queue(service)
    assert factory.get(EmailLogORM, log_id).status == "pending"

    assert service.dispatch(log_id) is True
    log = factory.get(EmailLogORM, log_id)
    assert log.status == "sent"
    assert log.sent_at is not None


def test_dispatch_is_idempotent(factory):
    service = get_email_service()
    log_id = queue(service)
    service.dispatch(log_id)

    with patch.object(service, "_deliver") as deliver:
        assert service.dispatch(log_id) is True
        deliver.assert_not_called()


def test_configured_smtp_sends_through_smtplib(factory):
    with patch.dict("os.environ", {"SMTP_HOST": "smtp.example.com", "SMTP_USER": "gym",
                                   "SMTP_PASSWORD": "pw", "SMTP_FROM_EMAIL": "gym@example.com"}):
        service = EmailService()
    log_id = queue(service)

    with patch("service_modules.email_service.smtplib.SMTP") as smtp:
        server = MagicMock()
        smtp.return_value.__enter__.return_value = server
        assert service.dispatch(log_id) is True

    smtp.assert_called_once_with("smtp.example.com", 587)
    server.login.assert_called_once_with("gym", "pw")
    server.sendmail.assert_called_once()
    assert server.sendmail.call_args[0][1] == "member@example.com"


def test_failed_send_is_recorded_and_counted(factory):
    service = get_email_service()
    ok_id = queue(service, "ok@example.com")
    bad_id = queue(service, "bad@example.com")

    def deliver(to_email, subject, html_body):
        if to_email == "bad@example.com":
            raise ConnectionError("refused")

    with patch.object(service, "_deliver", side_effect=deliver):
        result = service.dispatch_many([ok_id, bad_id])

    assert result == {"successful": 1, "failed": 1}
    failed = factory.get(EmailLogORM, bad_id)
    assert failed.status == "failed"
    assert failed.failed_reason == "refused"


def test_dispatch_pending_flushes_outbox(factory):
    service = get_email_service()
    ids = [queue(service, f"m{i}@example.com") for i in range(3)]

    assert service.dispatch_pending() == {"successful": 3, "failed": 0}
    assert all(factory.get(EmailLogORM, i).status == "sent" for i in ids)
    assert service.dispatch_pending() == {"successful": 0, "failed": 0}


def test_templates_escape_user_supplied_text(factory):
    service = get_email_service()
    db = get_db_session()
    try:
        log = service.queue_cancellation_notice(
            db, "member@example.com", "<script>alert(1)</script>", "Spin & Core",
            "2030-01-01", "10:00 - 11:00", '<img src=x onerror="steal()">', booking_id="b1"
        )
        db.commit()
        log_id = log.id
    finally:
        db.close()

    body = factory.get(EmailLogORM, log_id).body_html
    assert "<script>" not in body
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in body
    assert "Spin &amp; Core" in body
    assert "<img" not in body
    assert "&lt;img src=x onerror=&quot;steal()&quot;&gt;" in body
    assert "<strong>Reason:</strong>" in body
