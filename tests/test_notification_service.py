import pytest
from fastapi import HTTPException

from service_modules.notification_service import notification_service


def test_notifications_are_scoped_to_their_owner(factory):
    alice = factory.member(name="Alice")
    bob = factory.member(name="Bob")
    first = notification_service.create_notification(alice["user_id"], "alert", "Hello", "First",
                                                     {"session_id": "s1"})
    notification_service.create_notification(alice["user_id"], "alert", "Again", "Second")

    listed = notification_service.get_user_notifications(alice["user_id"])
    assert [n["message"] for n in listed] == ["Second", "First"]
    assert listed[1]["data"] == {"session_id": "s1"}
    assert notification_service.get_user_notifications(bob["user_id"]) == []

    with pytest.raises(HTTPException) as exc:
        notification_service.mark_as_read(first["id"], bob["user_id"])
    assert exc.value.status_code == 404

    notification_service.mark_as_read(first["id"], alice["user_id"])
    assert notification_service.get_unread_count(alice["user_id"]) == 1
    assert [n["message"] for n in notification_service.get_user_notifications(alice["user_id"], unread_only=True)] == ["Second"]

    assert notification_service.mark_all_as_read(alice["user_id"])["updated"] == 1

    with pytest.raises(HTTPException):
        notification_service.delete_notification(first["id"], bob["user_id"])
    notification_service.delete_notification(first["id"], alice["user_id"])
    assert len(notification_service.get_user_notifications(alice["user_id"])) == 1
