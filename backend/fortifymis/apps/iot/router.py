from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission
from fortifymis.database import get_db
from fortifymis.schemas import ApiResponse, Page, ok, paginate
from fortifymis.security import require_permissions

from . import models, schemas, services
from .models import SensorAlertSeverity, SensorAlertStatus, SensorStatus, SensorType

router = APIRouter(prefix="/api/iot", tags=["iot"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# SENSORS
# ---------------------------------------------------------------------------


@router.get("/sensors", response_model=ApiResponse[Page[schemas.SensorRead]])
def list_sensors(
    sensor_type: Optional[SensorType] = None,
    status: Optional[SensorStatus] = None,
    equipment_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_VIEW)),
):
    query = services.visible_sensors(db, current_user)
    if sensor_type:
        query = query.filter(models.IoTSensor.sensor_type == sensor_type)
    if status:
        query = query.filter(models.IoTSensor.status == status)
    if equipment_id:
        query = query.filter(models.IoTSensor.equipment_id == equipment_id)
    query = query.order_by(models.IoTSensor.created_at.desc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/sensors",
    response_model=ApiResponse[schemas.SensorRead],
    status_code=status.HTTP_201_CREATED,
)
def create_sensor(
    payload: schemas.SensorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_MANAGE)),
):
    sensor = services.create_sensor(db, payload, actor=current_user)
    db.commit()
    db.refresh(sensor)
    return ok(sensor, message="Sensor registered")


@router.get("/sensors/{sensor_id}", response_model=ApiResponse[schemas.SensorRead])
def get_sensor(
    sensor_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_VIEW)),
):
    return ok(services.get_sensor_for_user(db, sensor_id, current_user))


@router.patch("/sensors/{sensor_id}", response_model=ApiResponse[schemas.SensorRead])
def update_sensor(
    sensor_id: str,
    payload: schemas.SensorUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_MANAGE)),
):
    sensor = services.get_sensor_for_user(db, sensor_id, current_user, for_update=True)
    services.update_sensor(db, sensor, payload, actor=current_user)
    db.commit()
    db.refresh(sensor)
    return ok(sensor)


# ---------------------------------------------------------------------------
# READINGS
# ---------------------------------------------------------------------------


@router.get("/readings", response_model=ApiResponse[schemas.ReadingSeries])
def list_readings(
    sensor_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    aggregation: str = "raw",
    page: int = 1,
    page_size: int = 100,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_DATA_VIEW)),
):
    sensor = services.get_sensor_for_user(db, sensor_id, current_user)
    return ok(
        services.query_readings(
            db,
            sensor,
            start=start,
            end=end,
            aggregation=aggregation.lower(),
            page=page,
            page_size=page_size,
        )
    )


@router.post(
    "/readings",
    response_model=ApiResponse[schemas.IngestResult],
    status_code=status.HTTP_201_CREATED,
)
def ingest_readings(
    payload: Union[schemas.ReadingBatch, schemas.ReadingCreate],
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_DATA_INGEST)),
):
    readings = payload.readings if isinstance(payload, schemas.ReadingBatch) else [payload]
    result = services.ingest_readings(db, readings, actor=current_user)
    db.commit()
    return ok(result, message=f"{result.count} reading(s) recorded")


# ---------------------------------------------------------------------------
# SENSOR ALERTS
# ---------------------------------------------------------------------------


@router.get("/alerts", response_model=ApiResponse[Page[schemas.SensorAlertRead]])
def list_sensor_alerts(
    status: Optional[SensorAlertStatus] = None,
    severity: Optional[SensorAlertSeverity] = None,
    sensor_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_ALERT_VIEW)),
):
    query = services.visible_sensor_alerts(db, current_user)
    if status:
        query = query.filter(models.SensorAlert.status == status)
    if severity:
        query = query.filter(models.SensorAlert.severity == severity)
    if sensor_id:
        query = query.filter(models.SensorAlert.sensor_id == sensor_id)
    query = query.order_by(models.SensorAlert.created_at.desc())
    return ok(paginate(query, page, page_size))


@router.post("/alerts/{alert_id}/acknowledge", response_model=ApiResponse[schemas.SensorAlertRead])
def acknowledge_sensor_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_ALERT_VIEW)),
):
    alert = services.get_sensor_alert_for_user(db, alert_id, current_user, for_update=True)
    services.acknowledge_alert(db, alert, actor=current_user)
    db.commit()
    db.refresh(alert)
    return ok(alert, message="Alert acknowledged")


@router.post("/alerts/{alert_id}/resolve", response_model=ApiResponse[schemas.SensorAlertRead])
def resolve_sensor_alert(
    alert_id: str,
    payload: schemas.SensorAlertResolve,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.SENSOR_ALERT_VIEW)),
):
    alert = services.get_sensor_alert_for_user(db, alert_id, current_user, for_update=True)
    services.resolve_alert(
        db,
        alert,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(alert)
    return ok(alert, message="Alert resolved")


# ---------------------------------------------------------------------------
# PREDICTIVE MAINTENANCE
# ---------------------------------------------------------------------------


@router.get("/predictive-maintenance", response_model=ApiResponse[schemas.PredictiveReport])
def predictive_maintenance(
    mill_id: Optional[str] = None,
    equipment_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.PREDICTIVE_MAINTENANCE_VIEW)),
):
    return ok(
        services.predictive_report(
            db,
            user=current_user,
            mill_id=mill_id,
            equipment_id=equipment_id,
        )
    )
