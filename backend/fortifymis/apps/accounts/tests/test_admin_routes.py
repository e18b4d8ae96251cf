from __future__ import annotations

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.audit import models as audit_models


def test_program_manager_registers_and_updates_mills(client, db_session, make_user, auth_headers):
    program_manager = make_user(account_models.UserRole.FWGA_PROGRAM_MANAGER)
    headers = auth_headers(program_manager)

    created = client.post(
        "/api/mills",
        json={"code": " nrb-01 ", "name": "Nairobi Roller Mills", "region": "Nairobi", "country": "KE"},
        headers=headers,
    )
    assert created.status_code == 201
    mill = created.json()["data"]
    assert mill["code"] == "NRB-01"
    assert mill["commodity"] == "MAIZE"

    duplicate = client.post("/api/mills", json={"code": "NRB-01", "name": "Copy"}, headers=headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "A mill with this code already exists."

    deactivated = client.patch(f"/api/mills/{mill['id']}", json={"is_active": False}, headers=headers)
    assert deactivated.status_code == 200
    assert deactivated.json()["data"]["is_active"] is False

    active_only = client.get("/api/mills", headers=headers).json()["data"]
    assert active_only["pagination"]["total"] == 0
    everything = client.get("/api/mills", params={"include_inactive": True}, headers=headers).json()["data"]
    assert everything["pagination"]["total"] == 1

    actions = [
        entry.action
        for entry in db_session.query(audit_models.AuditLog).filter(audit_models.AuditLog.entity_type == "mill").all()
    ]
    assert sorted(actions) == ["CREATE", "UPDATE"]


def test_mill_staff_only_see_their_own_mill(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    other_mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)

    listing = client.get("/api/mills", headers=auth_headers(manager)).json()["data"]
    assert [m["id"] for m in listing["items"]] == [mill.id]

    hidden = client.get(f"/api/mills/{other_mill.id}", headers=auth_headers(manager))
    assert hidden.status_code == 404
    assert hidden.json()["error"] == "Mill not found"

    not_allowed = client.post("/api/mills", json={"code": "X1", "name": "X"}, headers=auth_headers(manager))
    assert not_allowed.status_code == 403


def test_mill_managers_administer_their_own_staff(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    other_mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    outsider = make_user(account_models.UserRole.MILL_OPERATOR, mill=other_mill)
    headers = auth_headers(manager)
    new_user = {
        "email": "Operator@Example.com",
        "full_name": "New Operator",
        "role": "MILL_OPERATOR",
        "mill_id": mill.id,
        "password": "Str0ngPassword",
    }

    created = client.post("/api/users", json=new_user, headers=headers)
    assert created.status_code == 201
    assert created.json()["data"]["email"] == "operator@example.com"

    foreign = client.post("/api/users", json=dict(new_user, email="x@example.com", mill_id=other_mill.id), headers=headers)
    assert foreign.status_code == 403
    assert foreign.json()["error"] == "Mill managers can only manage users of their own mill"

    admin = client.post(
        "/api/users", json=dict(new_user, email="root@example.com", role="SYSTEM_ADMIN"), headers=headers
    )
    assert admin.status_code == 403

    staff = client.get("/api/users", headers=headers).json()["data"]
    assert {u["mill_id"] for u in staff["items"]} == {mill.id}
    assert staff["pagination"]["total"] == 2

    other = client.get(f"/api/users/{outsider.id}", headers=headers)
    assert other.status_code == 403

    renamed = client.patch(
        f"/api/users/{created.json()['data']['id']}", json={"full_name": "Renamed Operator"}, headers=headers
    )
    assert renamed.status_code == 200
    assert renamed.json()["data"]["full_name"] == "Renamed Operator"


def test_own_profile_is_available_to_every_role(client, make_user, auth_headers):
    driver = make_user(account_models.UserRole.DRIVER_LOGISTICS, full_name="Dan Driver")

    response = client.get("/api/users/me", headers=auth_headers(driver))

    assert response.status_code == 200
    assert response.json()["data"]["full_name"] == "Dan Driver"
