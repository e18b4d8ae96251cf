from __future__ import annotations

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.notifications import models as notification_models
from fortifymis.apps.notifications import service as notification_service


def test_notify_role_targets_active_users_of_mill(db_session, make_mill, make_user):
    mill = make_mill()
    other_mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    make_user(account_models.UserRole.MILL_MANAGER, mill=other_mill)
    make_user(account_models.UserRole.MILL_MANAGER, mill=mill, is_active=False)
    make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)

    created = notification_service.notify_role(
        db_session,
        roles=[account_models.UserRole.MILL_MANAGER],
        notification_type="SENSOR_ALERT",
        title="Sensor alert",
        message="Dosing pump out of range",
        mill_id=mill.id,
        priority=notification_models.NotificationPriority.HIGH,
    )
    db_session.commit()

    assert [n.user_id for n in created] == [manager.id]
    assert created[0].priority == notification_models.NotificationPriority.HIGH


def test_mark_all_read_clears_unread_count(db_session, make_user):
    user = make_user()
    for index in range(3):
        notification_service.notify_user(
            db_session,
            user_id=user.id,
            notification_type="INFO",
            title=f"Note {index}",
            message="Hello",
        )
    db_session.commit()

    assert notification_service.unread_count(db_session, user_id=user.id) == 3
    assert notification_service.mark_all_read(db_session, user_id=user.id) == 3
    db_session.commit()
    assert notification_service.unread_count(db_session, user_id=user.id) == 0


def test_notification_endpoints_are_scoped_to_owner(client, db_session, make_user, auth_headers):
    owner = make_user(account_models.UserRole.DRIVER_LOGISTICS)
    stranger = make_user(account_models.UserRole.DRIVER_LOGISTICS)
    notification = notification_service.notify_user(
        db_session,
        user_id=owner.id,
        notification_type="TRIP_ASSIGNED",
        title="New trip",
        message="You have a delivery tomorrow",
    )
    db_session.commit()

    listing = client.get("/api/notifications", headers=auth_headers(owner))
    assert listing.status_code == 200
    data = listing.json()["data"]
    assert data["unread_count"] == 1
    assert data["items"][0]["type"] == "TRIP_ASSIGNED"

    hidden = client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(stranger))
    assert hidden.status_code == 404
    assert hidden.json()["error"] == "Notification not found"

    marked = client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(owner))
    assert marked.status_code == 200
    assert marked.json()["data"]["read_at"] is not None
