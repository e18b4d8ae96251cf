from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.maintenance import models as maintenance_models
from fortifymis.apps.workflow import apply_transition
from fortifymis.errors import ForbiddenError, NotFoundError, ValidationError
from fortifymis.schemas import normalize_pagination
from fortifymis.security import (
    ensure_mill_access,
    ensure_mill_read_access,
    mill_scope,
    owning_mill_id,
    read_scope,
)

from . import models, predictive, schemas
from .models import SensorAlertSeverity, SensorAlertStatus

logger = logging.getLogger(__name__)

AGGREGATION_LIMIT = 10000
AGGREGATIONS = ("raw", "hourly", "daily")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# SENSORS
# ---------------------------------------------------------------------------


def visible_sensors(db: Session, user: account_models.User) -> Query:
    query = db.query(models.IoTSensor)
    scope = read_scope(user)
    if scope is not None:
        query = query.filter(models.IoTSensor.mill_id == scope)
    return query


def get_sensor_for_user(
    db: Session,
    sensor_id: str,
    user: account_models.User,
    *,
    for_update: bool = False,
) -> models.IoTSensor:
    sensor = db.query(models.IoTSensor).filter(models.IoTSensor.id == sensor_id).first()
    if not sensor:
        raise NotFoundError("Sensor")
    check = ensure_mill_access if for_update else ensure_mill_read_access
    check(user, sensor.mill_id)
    return sensor


def _resolve_equipment(
    db: Session,
    equipment_id: Optional[str],
    mill_id: str,
) -> Optional[maintenance_models.Equipment]:
    if not equipment_id:
        return None
    equipment = (
        db.query(maintenance_models.Equipment)
        .filter(maintenance_models.Equipment.id == equipment_id)
        .first()
    )
    if not equipment:
        raise NotFoundError("Equipment")
    if equipment.mill_id != mill_id:
        raise ValidationError("Equipment belongs to a different mill")
    return equipment


def create_sensor(
    db: Session,
    data: schemas.SensorCreate,
    *,
    actor: account_models.User,
) -> models.IoTSensor:
    mill_id = owning_mill_id(db, actor, data.mill_id)
    _resolve_equipment(db, data.equipment_id, mill_id)

    if db.query(models.IoTSensor).filter(models.IoTSensor.device_id == data.device_id).first():
        raise ValidationError(f"Sensor {data.device_id} is already registered")

    fields = data.model_dump(exclude={"mill_id", "metadata"})
    sensor = models.IoTSensor(mill_id=mill_id, metadata_json=data.metadata or {}, **fields)
    db.add(sensor)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=mill_id,
        actor_user_id=actor.id,
        entity_type="iot_sensor",
        entity_id=sensor.id,
        action="CREATE",
        after=fields,
    )
    return sensor


def update_sensor(
    db: Session,
    sensor: models.IoTSensor,
    data: schemas.SensorUpdate,
    *,
    actor: account_models.User,
) -> models.IoTSensor:
    fields = data.model_dump(exclude_unset=True)
    before = {key: getattr(sensor, key, None) for key in fields if key != "metadata"}
    if "equipment_id" in fields:
        _resolve_equipment(db, fields["equipment_id"], sensor.mill_id)
    if "metadata" in fields:
        sensor.metadata_json = fields.pop("metadata")
    for key, value in fields.items():
        setattr(sensor, key, value)

    low, high = sensor.min_threshold, sensor.max_threshold
    if low is not None and high is not None and low > high:
        raise ValidationError("min_threshold must not exceed max_threshold")

    audit_services.log_event(
        db,
        mill_id=sensor.mill_id,
        actor_user_id=actor.id,
        entity_type="iot_sensor",
        entity_id=sensor.id,
        action="UPDATE",
        before=before,
        after=fields,
    )
    return sensor


# ---------------------------------------------------------------------------
# READINGS
# ---------------------------------------------------------------------------


def classify_reading(
    sensor: models.IoTSensor,
    value: float,
) -> Optional[Tuple[SensorAlertSeverity, Optional[float], str]]:
    """Return (severity, breached threshold, message) when the value is out of bounds."""
    unit = sensor.unit or ""
    if sensor.critical_max is not None and value > sensor.critical_max:
        return SensorAlertSeverity.CRITICAL, sensor.critical_max, f"Critical threshold exceeded: {value}{unit}"
    if sensor.critical_min is not None and value < sensor.critical_min:
        return SensorAlertSeverity.CRITICAL, sensor.critical_min, f"Critical threshold exceeded: {value}{unit}"
    if sensor.max_threshold is not None and value > sensor.max_threshold:
        return SensorAlertSeverity.WARNING, sensor.max_threshold, f"Threshold exceeded: {value}{unit}"
    if sensor.min_threshold is not None and value < sensor.min_threshold:
        return SensorAlertSeverity.WARNING, sensor.min_threshold, f"Threshold exceeded: {value}{unit}"
    return None


def _has_active_alert(db: Session, sensor_id: str, severity: SensorAlertSeverity) -> bool:
    return (
        db.query(models.SensorAlert.id)
        .filter(
            models.SensorAlert.sensor_id == sensor_id,
            models.SensorAlert.status == SensorAlertStatus.ACTIVE,
            models.SensorAlert.severity == severity,
        )
        .first()
        is not None
    )


def ingest_readings(
    db: Session,
    readings: Sequence[schemas.ReadingCreate],
    *,
    actor: account_models.User,
) -> schemas.IngestResult:
    """
    Store readings and raise threshold alerts.

    An alert is only opened when the sensor has no ACTIVE alert of the same
    severity, so a burst of out-of-range values yields one alert.
    """
    sensor_ids = list(OrderedDict.fromkeys(r.sensor_id for r in readings))
    sensors: Dict[str, models.IoTSensor] = {
        s.id: s
        for s in db.query(models.IoTSensor).filter(models.IoTSensor.id.in_(sensor_ids)).all()
    }
    missing = [sid for sid in sensor_ids if sid not in sensors]
    if missing:
        raise NotFoundError("Sensor", details={"sensor_ids": missing})
    for sensor in sensors.values():
        if mill_scope(actor) is not None and sensor.mill_id != actor.mill_id:
            raise ForbiddenError("You do not have access to one or more sensors")

    now = _utcnow()
    alerts_created = 0
    for reading in readings:
        sensor = sensors[reading.sensor_id]
        db.add(
            models.SensorReading(
                sensor_id=sensor.id,
                value=reading.value,
                timestamp=reading.timestamp or now,
                quality=reading.quality,
                metadata_json=reading.metadata,
            )
        )

        breach = classify_reading(sensor, reading.value)
        if breach is None:
            continue
        severity, threshold, message = breach
        if _has_active_alert(db, sensor.id, severity):
            continue
        db.add(
            models.SensorAlert(
                sensor_id=sensor.id,
                equipment_id=sensor.equipment_id,
                mill_id=sensor.mill_id,
                severity=severity,
                status=SensorAlertStatus.ACTIVE,
                message=message,
                detected_value=reading.value,
                threshold=threshold,
            )
        )
        # Later readings in the same batch must see this alert.
        db.flush()
        alerts_created += 1
        logger.warning(
            "Sensor threshold breached",
            extra={"sensor_id": sensor.id, "severity": severity.value, "value": reading.value},
        )

    for sensor in sensors.values():
        sensor.last_reading_at = now
    db.flush()
    return schemas.IngestResult(count=len(readings), alerts_created=alerts_created)


def _bucket(timestamp: datetime, aggregation: str) -> str:
    timestamp = _aware(timestamp)
    if aggregation == "hourly":
        return timestamp.strftime("%Y-%m-%d %H:00")
    return timestamp.strftime("%Y-%m-%d")


def query_readings(
    db: Session,
    sensor: models.IoTSensor,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    aggregation: str = "raw",
    page: int = 1,
    page_size: int = 100,
) -> dict:
    if aggregation not in AGGREGATIONS:
        raise ValidationError(f"aggregation must be one of {', '.join(AGGREGATIONS)}")

    query = db.query(models.SensorReading).filter(models.SensorReading.sensor_id == sensor.id)
    if start:
        query = query.filter(models.SensorReading.timestamp >= start)
    if end:
        query = query.filter(models.SensorReading.timestamp <= end)

    if aggregation == "raw":
        page, page_size = normalize_pagination(page, page_size)
        total = query.count()
        items = (
            query.order_by(models.SensorReading.timestamp.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "sensor_id": sensor.id,
            "aggregation": aggregation,
            "items": [schemas.ReadingRead.model_validate(item) for item in items],
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "total_pages": math.ceil(total / page_size) if total else 0,
            },
        }

    rows = (
        query.order_by(models.SensorReading.timestamp.desc())
        .limit(AGGREGATION_LIMIT)
        .all()
    )
    buckets: Dict[str, List[float]] = {}
    for row in rows:
        buckets.setdefault(_bucket(row.timestamp, aggregation), []).append(row.value)
    items = [
        {
            "bucket": key,
            "average": round(sum(values) / len(values), 4),
            "min": min(values),
            "max": max(values),
            "count": len(values),
        }
        for key, values in sorted(buckets.items())
    ]
    return {"sensor_id": sensor.id, "aggregation": aggregation, "items": items, "pagination": None}


# ---------------------------------------------------------------------------
# SENSOR ALERTS
# ---------------------------------------------------------------------------


def visible_sensor_alerts(db: Session, user: account_models.User) -> Query:
    query = db.query(models.SensorAlert)
    scope = read_scope(user)
    if scope is not None:
        query = query.filter(models.SensorAlert.mill_id == scope)
    return query


def get_sensor_alert_for_user(
    db: Session,
    alert_id: str,
    user: account_models.User,
    *,
    for_update: bool = False,
) -> models.SensorAlert:
    alert = db.query(models.SensorAlert).filter(models.SensorAlert.id == alert_id).first()
    if not alert:
        raise NotFoundError("Alert")
    check = ensure_mill_access if for_update else ensure_mill_read_access
    check(user, alert.mill_id)
    return alert


def acknowledge_alert(
    db: Session,
    alert: models.SensorAlert,
    *,
    actor: account_models.User,
) -> models.SensorAlert:
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="sensor_alert",
        entity_id=alert.id,
        from_state=alert.status.value,
        to_state=SensorAlertStatus.ACKNOWLEDGED.value,
        before_obj={"mill_id": alert.mill_id, "status": alert.status},
        after_obj={"mill_id": alert.mill_id},
        critical=False,
    )
    alert.status = SensorAlertStatus.ACKNOWLEDGED
    alert.acknowledged_at = _utcnow()
    alert.acknowledged_by_id = actor.id
    return alert


def resolve_alert(
    db: Session,
    alert: models.SensorAlert,
    data: schemas.SensorAlertResolve,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.SensorAlert:
    if alert.status == SensorAlertStatus.RESOLVED:
        raise ValidationError("Alert is already resolved")

    previous = alert.status
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="sensor_alert",
        entity_id=alert.id,
        from_state=previous.value,
        to_state=SensorAlertStatus.RESOLVED.value,
        before_obj={"mill_id": alert.mill_id, "status": previous},
        after_obj={"mill_id": alert.mill_id, "resolution": data.resolution},
    )

    now = _utcnow()
    if alert.acknowledged_by_id is None:
        alert.acknowledged_by_id = actor.id
        alert.acknowledged_at = now
    alert.status = SensorAlertStatus.RESOLVED
    alert.resolved_at = now
    alert.resolved_by_id = actor.id
    alert.resolution = data.resolution
    alert.root_cause = data.root_cause
    alert.preventive_measures = data.preventive_measures

    hours = round((now - _aware(alert.created_at)).total_seconds() / 3600, 2) if alert.created_at else None
    audit_services.log_event(
        db,
        mill_id=alert.mill_id,
        actor_user_id=actor.id,
        entity_type="sensor_alert",
        entity_id=alert.id,
        action="RESOLVE",
        before={"status": previous},
        after={
            "status": alert.status,
            "resolution": data.resolution,
            "root_cause": data.root_cause,
            "resolution_time_hours": hours,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return alert


# ---------------------------------------------------------------------------
# PREDICTIVE MAINTENANCE
# ---------------------------------------------------------------------------


def _window_values(db: Session, sensor_id: str, since: datetime) -> List[float]:
    rows = (
        db.query(models.SensorReading.value)
        .filter(
            models.SensorReading.sensor_id == sensor_id,
            models.SensorReading.timestamp >= since,
        )
        .order_by(models.SensorReading.timestamp.asc())
        .all()
    )
    return [row[0] for row in rows]


def predictive_report(
    db: Session,
    *,
    user: account_models.User,
    mill_id: Optional[str] = None,
    equipment_id: Optional[str] = None,
) -> dict:
    scope = read_scope(user)
    if scope is not None:
        if mill_id and mill_id != scope:
            raise ForbiddenError("You do not have access to this mill's records")
        mill_id = scope

    query = db.query(maintenance_models.Equipment).filter(
        maintenance_models.Equipment.status.in_(maintenance_models.IN_SERVICE_STATUSES)
    )
    if mill_id is not None:
        query = query.filter(maintenance_models.Equipment.mill_id == mill_id)
    if equipment_id:
        query = query.filter(maintenance_models.Equipment.id == equipment_id)

    now = _utcnow()
    since = now - timedelta(days=predictive.WINDOW_DAYS)
    insights = []
    for equipment in query.order_by(maintenance_models.Equipment.name.asc()).all():
        sensors = (
            db.query(models.IoTSensor)
            .filter(
                models.IoTSensor.equipment_id == equipment.id,
                models.IoTSensor.is_active.is_(True),
            )
            .all()
        )
        sensor_insights = []
        for sensor in sensors:
            prediction = predictive.analyze_series(
                _window_values(db, sensor.id, since),
                max_threshold=sensor.max_threshold,
                critical_min=sensor.critical_min,
                critical_max=sensor.critical_max,
                unit=sensor.unit or "",
                now=now,
            )
            sensor_insights.append(
                {
                    "sensor_id": sensor.id,
                    "sensor_type": sensor.sensor_type,
                    "location": sensor.location,
                    "risk_level": prediction.risk_level,
                    "confidence": prediction.confidence,
                    "recommended_action": prediction.recommended_action,
                    "reasons": prediction.reasons,
                    "metrics": prediction.metrics,
                    "days_to_threshold": prediction.days_to_threshold,
                    "predicted_breach_date": prediction.predicted_breach_date,
                }
            )
        insights.append(
            {
                "equipment_id": equipment.id,
                "equipment_name": equipment.name,
                "equipment_type": equipment.type,
                "overall_risk_level": predictive.highest_risk(s["risk_level"] for s in sensor_insights),
                "sensors": sensor_insights,
                "analyzed_at": now,
            }
        )

    return {
        "insights": insights,
        "summary": predictive.summarize([i["overall_risk_level"] for i in insights]),
    }
