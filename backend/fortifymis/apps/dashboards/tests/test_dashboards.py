from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.alerts import services as alert_services
from fortifymis.apps.iot import models as iot_models
from fortifymis.apps.logistics import models as logistics_models
from fortifymis.apps.maintenance import models as maintenance_models


def _seed_mill_floor(db_session, mill):
    now = datetime.now(timezone.utc)
    equipment = maintenance_models.Equipment(
        mill_id=mill.id,
        name="Premix doser",
        type="DOSER",
        status=maintenance_models.EquipmentStatus.NEEDS_CALIBRATION,
    )
    db_session.add(equipment)
    db_session.flush()
    db_session.add_all(
        [
            maintenance_models.MaintenanceTask(
                mill_id=mill.id,
                equipment_id=equipment.id,
                title="Overdue inspection",
                scheduled_date=now - timedelta(days=3),
            ),
            maintenance_models.MaintenanceTask(
                mill_id=mill.id,
                equipment_id=equipment.id,
                title="Next week's lubrication",
                scheduled_date=now + timedelta(days=7),
            ),
            maintenance_models.MaintenanceTask(
                mill_id=mill.id,
                equipment_id=equipment.id,
                title="Finished job",
                status=maintenance_models.TaskStatus.COMPLETED,
                scheduled_date=now - timedelta(days=10),
            ),
        ]
    )
    sensor = iot_models.IoTSensor(
        mill_id=mill.id,
        equipment_id=equipment.id,
        device_id=f"TEMP-{mill.code}",
        sensor_type=iot_models.SensorType.TEMPERATURE,
        location="Dryer outlet",
    )
    db_session.add(sensor)
    db_session.flush()
    db_session.add(
        iot_models.SensorAlert(
            sensor_id=sensor.id,
            equipment_id=equipment.id,
            mill_id=mill.id,
            severity=iot_models.SensorAlertSeverity.CRITICAL,
            status=iot_models.SensorAlertStatus.ACTIVE,
            message="Critical threshold exceeded: 99.0C",
            detected_value=99.0,
            threshold=95.0,
        )
    )
    alert_services.create_alert(
        db_session,
        alert_type="QC_FAILURE",
        title="QC failure",
        message="Iron below target",
        recipient_role=account_models.UserRole.MILL_MANAGER,
        mill_id=mill.id,
    )
    db_session.commit()


def test_mill_dashboard_counts_live_records(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    _seed_mill_floor(db_session, mill)

    response = client.get("/api/dashboard/mill", headers=auth_headers(manager))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["mill_id"] == mill.id
    assert data["open_alerts"] == 1
    assert data["active_sensor_alerts"] == 1
    assert data["critical_sensor_alerts"] == 1
    assert data["pending_tasks"] == 2
    assert data["overdue_tasks"] == 1
    assert data["equipment_total"] == 1
    assert data["equipment_needing_calibration"] == 1
    assert data["latest_audit_score"] is None
    assert data["training_completions"] == 0


def test_mill_dashboard_scoping(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    other_mill = make_mill()
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=other_mill)
    inspector = make_user(account_models.UserRole.FWGA_INSPECTOR)
    _seed_mill_floor(db_session, mill)

    foreign = client.get("/api/dashboard/mill", params={"mill_id": mill.id}, headers=auth_headers(operator))
    assert foreign.status_code == 403

    oversight = client.get("/api/dashboard/mill", params={"mill_id": mill.id}, headers=auth_headers(inspector))
    assert oversight.status_code == 200
    assert oversight.json()["data"]["equipment_total"] == 1

    missing = client.get("/api/dashboard/mill", headers=auth_headers(inspector))
    assert missing.status_code == 400
    assert missing.json()["error"] == "mill_id is required"


def test_program_dashboard_zero_fills_status_counts(client, db_session, make_mill, make_user, auth_headers):
    make_mill()
    make_mill(is_active=False)
    program_manager = make_user(account_models.UserRole.FWGA_PROGRAM_MANAGER)

    response = client.get("/api/dashboard/program", headers=auth_headers(program_manager))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["mills_total"] == 2
    assert data["mills_active"] == 1
    assert data["audits_by_status"]["PENDING_REVIEW"] == 0
    assert set(data["audits_by_status"].values()) == {0}
    assert data["open_rfps"] == 0


def test_buyer_and_logistics_dashboards(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    buyer = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    driver = make_user(account_models.UserRole.DRIVER_LOGISTICS)
    now = datetime.now(timezone.utc)
    db_session.add_all(
        [
            logistics_models.DeliveryTrip(
                trip_number="TRIP-20260601-AAAAA",
                mill_id=mill.id,
                driver_id=driver.id,
                orders=[],
                delivery_sequence=[],
                stops=0,
                completed_stops=0,
                status=logistics_models.TripStatus.COMPLETED,
                scheduled_date=now - timedelta(days=1),
                total_distance_km=120.5,
            ),
            logistics_models.DeliveryTrip(
                trip_number="TRIP-20260601-BBBBB",
                mill_id=mill.id,
                driver_id=driver.id,
                orders=[],
                delivery_sequence=[],
                stops=0,
                completed_stops=0,
                status=logistics_models.TripStatus.COMPLETED,
                scheduled_date=now - timedelta(days=2),
                total_distance_km=30.25,
            ),
        ]
    )
    db_session.commit()

    logistics = client.get("/api/dashboard/logistics", headers=auth_headers(driver))
    assert logistics.status_code == 200
    data = logistics.json()["data"]
    assert data["trips_by_status"]["COMPLETED"] == 2
    assert data["trips_by_status"]["IN_PROGRESS"] == 0
    assert data["active_trip_ids"] == []
    assert data["distance_completed_km"] == 150.75

    buyer_view = client.get("/api/dashboard/buyer", headers=auth_headers(buyer))
    assert buyer_view.status_code == 200
    assert buyer_view.json()["data"]["bids_received"] == 0
    assert buyer_view.json()["data"]["purchase_order_value"] == 0.0

    wrong_role = client.get("/api/dashboard/buyer", headers=auth_headers(driver))
    assert wrong_role.status_code == 403
