from __future__ import annotations

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.alerts import models as alert_models
from fortifymis.apps.audit import models as audit_models
from fortifymis.apps.maintenance import models as maintenance_models


def _create_equipment(client, headers, **overrides):
    payload = {
        "name": "Premix doser 1",
        "type": "DOSER",
        "serial_number": "DS-1001",
        "calibration_interval": "monthly",
        "last_calibration_date": "2026-01-31T08:00:00+00:00",
    }
    payload.update(overrides)
    response = client.post("/api/maintenance/equipment", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_equipment_creation_normalises_interval_and_schedules_calibration(
    client, make_mill, make_user, auth_headers
):
    mill = make_mill()
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=mill)

    equipment = _create_equipment(client, auth_headers(technician))

    assert equipment["mill_id"] == mill.id
    assert equipment["calibration_interval"] == "MONTHLY"
    assert equipment["status"] == "ACTIVE"
    assert equipment["next_calibration_date"].startswith("2026-02-28")


def test_invalid_interval_is_rejected(client, make_mill, make_user, auth_headers):
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=make_mill())

    response = client.post(
        "/api/maintenance/equipment",
        json={"name": "Mixer", "type": "MIXER", "calibration_interval": "FORTNIGHTLY"},
        headers=auth_headers(technician),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert response.json()["details"][0]["field"] == "calibration_interval"


def test_operator_cannot_register_equipment(client, make_mill, make_user, auth_headers):
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=make_mill())

    response = client.post(
        "/api/maintenance/equipment",
        json={"name": "Mixer", "type": "MIXER"},
        headers=auth_headers(operator),
    )

    assert response.status_code == 403


def test_failed_calibration_flags_equipment_and_alerts_manager(
    client, db_session, make_mill, make_user, auth_headers
):
    mill = make_mill()
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=mill)
    headers = auth_headers(technician)
    equipment = _create_equipment(client, headers)

    task = client.post(
        "/api/maintenance/tasks",
        json={
            "equipment_id": equipment["id"],
            "type": "CALIBRATION",
            "title": "Monthly doser calibration",
            "scheduled_date": "2026-02-28T08:00:00+00:00",
        },
        headers=headers,
    )
    assert task.status_code == 201
    task_id = task.json()["data"]["id"]
    assert task.json()["data"]["status"] == "SCHEDULED"

    started = client.patch(f"/api/maintenance/tasks/{task_id}", json={"status": "IN_PROGRESS"}, headers=headers)
    assert started.status_code == 200
    assert started.json()["data"]["started_at"] is not None

    result = client.post(
        "/api/maintenance/calibration/validate",
        json={
            "task_id": task_id,
            "measurements": [
                {"testPoint": 1, "expectedValue": 100, "actualValue": 110, "tolerance": 5},
                {"testPoint": 2, "expectedValue": 200, "actualValue": 202, "tolerance": 5},
            ],
        },
        headers=headers,
    )
    assert result.status_code == 200
    body = result.json()
    assert body["message"] == "Calibration failed"
    assert body["data"]["is_valid"] is False
    assert body["data"]["failed_points"] == [0]
    assert body["data"]["recorded"] is True

    db_session.expire_all()
    stored = db_session.query(maintenance_models.Equipment).filter_by(id=equipment["id"]).one()
    assert stored.status == maintenance_models.EquipmentStatus.NEEDS_CALIBRATION
    assert stored.last_calibration_offset == 5.5

    alert = db_session.query(alert_models.Alert).one()
    assert alert.type == "CALIBRATION_OVERDUE"
    assert alert.recipient_role == account_models.UserRole.MILL_MANAGER
    assert alert.mill_id == mill.id
    assert alert.resource_id == equipment["id"]

    calibrations = (
        db_session.query(audit_models.AuditLog)
        .filter(audit_models.AuditLog.entity_type == "equipment", audit_models.AuditLog.action == "CALIBRATE")
        .count()
    )
    assert calibrations == 1


def test_dry_run_calibration_records_nothing(client, db_session, make_mill, make_user, auth_headers):
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=make_mill())

    response = client.post(
        "/api/maintenance/calibration/validate",
        json={"measurements": [{"expected_value": 50, "actual_value": 50.5, "tolerance": 2}]},
        headers=auth_headers(operator),
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Calibration passed"
    assert response.json()["data"]["recorded"] is False
    assert db_session.query(audit_models.AuditLog).count() == 0


def test_completing_tasks_requires_completion_permission(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=mill)
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    equipment = _create_equipment(client, auth_headers(technician))

    task_id = client.post(
        "/api/maintenance/tasks",
        json={
            "equipment_id": equipment["id"],
            "title": "Grease bearings",
            "scheduled_date": "2026-03-01T08:00:00+00:00",
            "assigned_to_id": operator.id,
        },
        headers=auth_headers(operator),
    ).json()["data"]["id"]
    client.patch(
        f"/api/maintenance/tasks/{task_id}", json={"status": "IN_PROGRESS"}, headers=auth_headers(operator)
    )

    denied = client.patch(
        f"/api/maintenance/tasks/{task_id}", json={"status": "COMPLETED"}, headers=auth_headers(operator)
    )
    assert denied.status_code == 403
    assert denied.json()["error"] == "Insufficient permissions to complete maintenance tasks"

    completed = client.patch(
        f"/api/maintenance/tasks/{task_id}",
        json={"status": "COMPLETED", "notes": "Bearings greased"},
        headers=auth_headers(technician),
    )
    assert completed.status_code == 200
    assert completed.json()["data"]["status"] == "COMPLETED"
    assert completed.json()["data"]["completed_date"] is not None

    reopened = client.patch(
        f"/api/maintenance/tasks/{task_id}", json={"status": "IN_PROGRESS"}, headers=auth_headers(technician)
    )
    assert reopened.status_code == 400


def test_tasks_cannot_be_assigned_across_mills(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=mill)
    outsider = make_user(account_models.UserRole.MILL_OPERATOR, mill=make_mill())
    equipment = _create_equipment(client, auth_headers(technician))

    response = client.post(
        "/api/maintenance/tasks",
        json={
            "equipment_id": equipment["id"],
            "title": "Inspect belts",
            "scheduled_date": "2026-03-01T08:00:00+00:00",
            "assigned_to_id": outsider.id,
        },
        headers=auth_headers(technician),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Tasks can only be assigned to staff of the same mill"


def test_equipment_is_scoped_to_the_owning_mill(client, make_mill, make_user, auth_headers):
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=make_mill())
    outsider = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=make_mill())
    equipment = _create_equipment(client, auth_headers(technician))

    hidden = client.get(f"/api/maintenance/equipment/{equipment['id']}", headers=auth_headers(outsider))
    assert hidden.status_code == 403

    listing = client.get("/api/maintenance/equipment", headers=auth_headers(outsider))
    assert listing.json()["data"]["pagination"]["total"] == 0

    health = client.get(f"/api/maintenance/equipment/{equipment['id']}/health", headers=auth_headers(technician))
    assert health.status_code == 200
    assert health.json()["data"]["active_alerts"] == 0


def test_inspectors_read_every_mill_but_cannot_change_tasks(client, make_mill, make_user, auth_headers):
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=make_mill())
    inspector = make_user(account_models.UserRole.FWGA_INSPECTOR)
    equipment = _create_equipment(client, auth_headers(technician))
    task_id = client.post(
        "/api/maintenance/tasks",
        json={
            "equipment_id": equipment["id"],
            "title": "Check doser screw",
            "scheduled_date": "2026-03-01T08:00:00+00:00",
        },
        headers=auth_headers(technician),
    ).json()["data"]["id"]
    headers = auth_headers(inspector)

    listing = client.get("/api/maintenance/equipment", headers=headers)
    assert listing.status_code == 200
    assert listing.json()["data"]["pagination"]["total"] == 1

    detail = client.get(f"/api/maintenance/equipment/{equipment['id']}", headers=headers)
    assert detail.status_code == 200

    tasks = client.get("/api/maintenance/tasks", headers=headers)
    assert tasks.json()["data"]["pagination"]["total"] == 1

    started = client.patch(f"/api/maintenance/tasks/{task_id}", json={"status": "IN_PROGRESS"}, headers=headers)
    assert started.status_code == 403
    assert started.json()["error"] == "You do not have access to this mill's records"
