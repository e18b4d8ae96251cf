from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.iot import models as iot_models
from fortifymis.apps.maintenance import models as maintenance_models


SENSOR = {
    "device_id": "TEMP-DRYER-01",
    "sensor_type": "TEMPERATURE",
    "location": "Dryer outlet",
    "unit": "C",
    "max_threshold": 80,
    "critical_max": 95,
}


def _register_sensor(client, headers, **overrides):
    response = client.post("/api/iot/sensors", json=dict(SENSOR, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_sensor_registration_rejects_duplicates_and_bad_thresholds(client, make_mill, make_user, auth_headers):
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=make_mill())
    headers = auth_headers(manager)

    created = client.post("/api/iot/sensors", json=SENSOR, headers=headers)
    assert created.status_code == 201
    assert created.json()["message"] == "Sensor registered"
    assert created.json()["data"]["status"] == "ACTIVE"

    duplicate = client.post("/api/iot/sensors", json=SENSOR, headers=headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Sensor TEMP-DRYER-01 is already registered"

    inverted = client.post(
        "/api/iot/sensors",
        json=dict(SENSOR, device_id="TEMP-DRYER-02", max_threshold=99, critical_max=95),
        headers=headers,
    )
    assert inverted.status_code == 400
    assert inverted.json()["code"] == "VALIDATION_ERROR"


def test_technicians_cannot_register_sensors(client, make_mill, make_user, auth_headers):
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=make_mill())

    response = client.post("/api/iot/sensors", json=SENSOR, headers=auth_headers(technician))

    assert response.status_code == 403


def test_ingestion_opens_one_alert_per_severity(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    sensor = _register_sensor(client, auth_headers(manager))

    readings = [
        {"sensor_id": sensor["id"], "value": value, "timestamp": f"2026-06-01T{hour:02d}:00:00+00:00"}
        for hour, value in ((8, 70), (9, 85), (10, 90), (11, 99))
    ]
    response = client.post("/api/iot/readings", json={"readings": readings}, headers=auth_headers(operator))

    assert response.status_code == 201
    assert response.json()["message"] == "4 reading(s) recorded"
    assert response.json()["data"] == {"count": 4, "alerts_created": 2}

    alerts = db_session.query(iot_models.SensorAlert).order_by(iot_models.SensorAlert.detected_value).all()
    assert [(a.severity.value, a.detected_value, a.threshold) for a in alerts] == [
        ("WARNING", 85, 80),
        ("CRITICAL", 99, 95),
    ]
    assert alerts[0].message == "Threshold exceeded: 85.0C"

    single = client.post(
        "/api/iot/readings",
        json={"sensor_id": sensor["id"], "value": 120},
        headers=auth_headers(operator),
    )
    assert single.json()["data"]["alerts_created"] == 0


def test_ingestion_checks_sensor_ownership(client, make_mill, make_user, auth_headers):
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=make_mill())
    outsider = make_user(account_models.UserRole.MILL_OPERATOR, mill=make_mill())
    sensor = _register_sensor(client, auth_headers(manager))

    foreign = client.post(
        "/api/iot/readings",
        json={"sensor_id": sensor["id"], "value": 20},
        headers=auth_headers(outsider),
    )
    assert foreign.status_code == 403

    unknown = client.post(
        "/api/iot/readings",
        json={"sensor_id": "does-not-exist", "value": 20},
        headers=auth_headers(outsider),
    )
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "Sensor not found"


def test_reading_queries_paginate_and_aggregate(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    headers = auth_headers(manager)
    sensor = _register_sensor(client, headers, max_threshold=None, critical_max=None)
    client.post(
        "/api/iot/readings",
        json={
            "readings": [
                {"sensor_id": sensor["id"], "value": value, "timestamp": f"2026-06-01T{hour:02d}:15:00+00:00"}
                for hour, value in ((8, 70), (8, 85), (9, 90), (10, 99))
            ]
        },
        headers=headers,
    )

    raw = client.get(
        "/api/iot/readings", params={"sensor_id": sensor["id"], "page_size": 2}, headers=headers
    ).json()["data"]
    assert raw["pagination"]["total"] == 4
    assert raw["pagination"]["total_pages"] == 2
    assert [item["value"] for item in raw["items"]] == [99, 90]

    hourly = client.get(
        "/api/iot/readings", params={"sensor_id": sensor["id"], "aggregation": "hourly"}, headers=headers
    ).json()["data"]
    assert hourly["pagination"] is None
    assert hourly["items"][0] == {"bucket": "2026-06-01 08:00", "average": 77.5, "min": 70, "max": 85, "count": 2}

    daily = client.get(
        "/api/iot/readings", params={"sensor_id": sensor["id"], "aggregation": "DAILY"}, headers=headers
    ).json()["data"]
    assert daily["items"] == [{"bucket": "2026-06-01", "average": 86.0, "min": 70, "max": 99, "count": 4}]

    bad = client.get(
        "/api/iot/readings", params={"sensor_id": sensor["id"], "aggregation": "weekly"}, headers=headers
    )
    assert bad.status_code == 400


def test_sensor_alert_acknowledge_and_resolve(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=mill)
    sensor = _register_sensor(client, auth_headers(manager))
    client.post("/api/iot/readings", json={"sensor_id": sensor["id"], "value": 85}, headers=auth_headers(manager))
    headers = auth_headers(technician)

    listing = client.get("/api/iot/alerts", params={"status": "ACTIVE"}, headers=headers)
    assert listing.json()["data"]["pagination"]["total"] == 1
    alert_id = listing.json()["data"]["items"][0]["id"]

    acknowledged = client.post(f"/api/iot/alerts/{alert_id}/acknowledge", headers=headers)
    assert acknowledged.status_code == 200
    assert acknowledged.json()["data"]["status"] == "ACKNOWLEDGED"
    assert acknowledged.json()["data"]["acknowledged_by_id"] == technician.id

    too_short = client.post(f"/api/iot/alerts/{alert_id}/resolve", json={"resolution": "fixed"}, headers=headers)
    assert too_short.status_code == 400

    resolved = client.post(
        f"/api/iot/alerts/{alert_id}/resolve",
        json={"resolution": "Cleaned the dryer intake filter", "root_cause": "Blocked filter"},
        headers=headers,
    )
    assert resolved.status_code == 200
    assert resolved.json()["message"] == "Alert resolved"
    assert resolved.json()["data"]["status"] == "RESOLVED"
    assert resolved.json()["data"]["resolved_by_id"] == technician.id

    again = client.post(
        f"/api/iot/alerts/{alert_id}/resolve",
        json={"resolution": "Cleaned the dryer intake filter"},
        headers=headers,
    )
    assert again.status_code == 400
    assert again.json()["error"] == "Alert is already resolved"


def test_predictive_report_flags_drifting_equipment(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    equipment = maintenance_models.Equipment(mill_id=mill.id, name="Hammer mill", type="MILL")
    db_session.add(equipment)
    db_session.flush()
    sensor = iot_models.IoTSensor(
        mill_id=mill.id,
        equipment_id=equipment.id,
        device_id="VIB-HM-01",
        sensor_type=iot_models.SensorType.BEARING_TEMPERATURE,
        location="Main bearing",
        unit="C",
        max_threshold=100,
    )
    db_session.add(sensor)
    db_session.flush()
    now = datetime.now(timezone.utc)
    values = [60.0] * 4 + [70.0] * 4 + [80.0] * 4
    for index, value in enumerate(values):
        db_session.add(
            iot_models.SensorReading(
                sensor_id=sensor.id,
                value=value,
                timestamp=now - timedelta(hours=len(values) - index),
            )
        )
    db_session.commit()

    response = client.get("/api/iot/predictive-maintenance", headers=auth_headers(manager))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"] == {"total": 1, "at_risk": 1, "critical": 0, "high": 0, "medium": 1}
    insight = data["insights"][0]
    assert insight["equipment_name"] == "Hammer mill"
    assert insight["overall_risk_level"] == "MEDIUM"
    assert insight["sensors"][0]["days_to_threshold"] == 7.0
    assert insight["sensors"][0]["metrics"]["drift"] == 33.33

    foreign = client.get(
        "/api/iot/predictive-maintenance", params={"mill_id": make_mill().id}, headers=auth_headers(manager)
    )
    assert foreign.status_code == 403


def _seed_monitored_equipment(db_session, mill, name, device_id, **equipment_fields):
    equipment = maintenance_models.Equipment(mill_id=mill.id, name=name, type="MILL", **equipment_fields)
    db_session.add(equipment)
    db_session.flush()
    sensor = iot_models.IoTSensor(
        mill_id=mill.id,
        equipment_id=equipment.id,
        device_id=device_id,
        sensor_type=iot_models.SensorType.BEARING_TEMPERATURE,
        location="Main bearing",
        unit="C",
        max_threshold=100,
    )
    db_session.add(sensor)
    db_session.flush()
    now = datetime.now(timezone.utc)
    for index in range(12):
        db_session.add(
            iot_models.SensorReading(sensor_id=sensor.id, value=95.0, timestamp=now - timedelta(hours=12 - index))
        )
    db_session.commit()
    return equipment, sensor


def test_predictive_report_skips_equipment_out_of_service(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    _seed_monitored_equipment(db_session, mill, "Hammer mill", "BRG-HM-01")
    _seed_monitored_equipment(
        db_session,
        mill,
        "Old roller mill",
        "BRG-RM-01",
        status=maintenance_models.EquipmentStatus.DECOMMISSIONED,
    )
    _seed_monitored_equipment(
        db_session,
        mill,
        "Spare sifter",
        "BRG-SF-01",
        status=maintenance_models.EquipmentStatus.OUT_OF_SERVICE,
    )

    response = client.get("/api/iot/predictive-maintenance", headers=auth_headers(manager))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"]["total"] == 1
    assert [insight["equipment_name"] for insight in data["insights"]] == ["Hammer mill"]


def test_program_manager_reads_monitoring_across_mills(client, db_session, make_mill, make_user, auth_headers):
    north = make_mill()
    south = make_mill()
    program_manager = make_user(account_models.UserRole.FWGA_PROGRAM_MANAGER)
    _, sensor = _seed_monitored_equipment(db_session, north, "Hammer mill", "BRG-N-01")
    _seed_monitored_equipment(db_session, south, "Roller mill", "BRG-S-01")
    headers = auth_headers(program_manager)

    sensors = client.get("/api/iot/sensors", headers=headers)
    assert sensors.status_code == 200
    assert sensors.json()["data"]["pagination"]["total"] == 2

    detail = client.get(f"/api/iot/sensors/{sensor.id}", headers=headers)
    assert detail.status_code == 200
    assert detail.json()["data"]["device_id"] == "BRG-N-01"

    report = client.get("/api/iot/predictive-maintenance", headers=headers)
    assert report.status_code == 200
    assert report.json()["data"]["summary"]["total"] == 2

    one_mill = client.get("/api/iot/predictive-maintenance", params={"mill_id": south.id}, headers=headers)
    assert one_mill.status_code == 200
    assert [i["equipment_name"] for i in one_mill.json()["data"]["insights"]] == ["Roller mill"]

    # Oversight is read-only.
    renamed = client.patch(f"/api/iot/sensors/{sensor.id}", json={"location": "Elsewhere"}, headers=headers)
    assert renamed.status_code == 403
