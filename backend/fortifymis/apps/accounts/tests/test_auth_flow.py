from __future__ import annotations

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.audit import models as audit_models
from fortifymis.apps.notifications import models as notification_models
from fortifymis.security import decode_access_token


def test_login_returns_token_with_role_claims(client, db_session, make_mill, make_user):
    mill = make_mill()
    user = make_user(account_models.UserRole.MILL_MANAGER, mill=mill, email="manager@example.com")

    response = client.post(
        "/api/auth/login",
        json={"email": "Manager@Example.com", "password": "Passw0rd123"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    claims = decode_access_token(body["data"]["access_token"])
    assert claims["sub"] == user.id
    assert claims["role"] == "MILL_MANAGER"
    assert claims["mill_id"] == mill.id
    assert body["data"]["user"]["email"] == "manager@example.com"

    db_session.refresh(user)
    assert user.last_login_at is not None
    login_events = (
        db_session.query(audit_models.AuditLog)
        .filter(audit_models.AuditLog.action == "LOGIN", audit_models.AuditLog.entity_id == user.id)
        .count()
    )
    assert login_events == 1


def test_login_rejects_bad_password_with_error_envelope(client, make_user):
    make_user(email="someone@example.com")

    response = client.post(
        "/api/auth/login",
        json={"email": "someone@example.com", "password": "wrong-password1"},
    )

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid email or password"
    assert body["code"] == "UNAUTHORIZED"


def test_login_reports_inactive_account(client, make_user):
    make_user(email="locked@example.com", is_active=False)

    response = client.post(
        "/api/auth/login",
        json={"email": "locked@example.com", "password": "Passw0rd123"},
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Account is inactive"


def test_register_creates_user_and_welcome_notification(client, db_session):
    response = client.post(
        "/api/auth/register",
        json={
            "email": "buyer@example.com",
            "full_name": "School Feeding Buyer",
            "role": "INSTITUTIONAL_BUYER",
            "password": "Sup3rSecret",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User created successfully"
    user_id = body["data"]["id"]

    notification = (
        db_session.query(notification_models.Notification)
        .filter(notification_models.Notification.user_id == user_id)
        .one()
    )
    assert notification.type == "WELCOME"


def test_register_rejects_admin_role_and_weak_password(client):
    admin = client.post(
        "/api/auth/register",
        json={
            "email": "root@example.com",
            "full_name": "Root",
            "role": "SYSTEM_ADMIN",
            "password": "Sup3rSecret",
        },
    )
    assert admin.status_code == 400
    assert admin.json()["error"] == "This role cannot be self-registered."

    weak = client.post(
        "/api/auth/register",
        json={
            "email": "driver@example.com",
            "full_name": "Driver",
            "role": "DRIVER_LOGISTICS",
            "password": "short",
        },
    )
    assert weak.status_code == 400


def test_register_requires_mill_for_mill_roles(client):
    response = client.post(
        "/api/auth/register",
        json={
            "email": "operator@example.com",
            "full_name": "Operator",
            "role": "MILL_OPERATOR",
            "password": "Sup3rSecret",
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Mill staff must be assigned to a mill."


def test_me_lists_role_permissions(client, make_user, auth_headers):
    driver = make_user(account_models.UserRole.DRIVER_LOGISTICS)

    response = client.get("/api/auth/me", headers=auth_headers(driver))

    assert response.status_code == 200
    permissions = response.json()["data"]["permissions"]
    assert "TRACKING_UPDATE" in permissions
    assert "RFP_CREATE" not in permissions


def test_validation_errors_use_envelope(client):
    response = client.post("/api/auth/login", json={"email": "not-an-email"})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    fields = {item["field"] for item in body["details"]}
    assert "email" in fields
    assert "password" in fields
