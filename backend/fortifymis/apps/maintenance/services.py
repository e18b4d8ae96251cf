from __future__ import annotations

from datetime import date, datetime, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.alerts import services as alert_services
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.iot import models as iot_models
from fortifymis.apps.workflow import apply_transition
from fortifymis.errors import NotFoundError, ValidationError
from fortifymis.security import (
    ensure_mill_access,
    ensure_mill_read_access,
    owning_mill_id,
    read_scope,
)

from . import calculations, models, schemas
from .models import EquipmentStatus, TaskStatus, TaskType

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _task_snapshot(task: models.MaintenanceTask) -> dict:
    return {
        "equipment_id": task.equipment_id,
        "type": task.type,
        "title": task.title,
        "priority": task.priority,
        "status": task.status,
        "scheduled_date": task.scheduled_date,
        "assigned_to_id": task.assigned_to_id,
    }


# ---------------------------------------------------------------------------
# EQUIPMENT
# ---------------------------------------------------------------------------


def visible_equipment(db: Session, user: account_models.User) -> Query:
    query = db.query(models.Equipment)
    scope = read_scope(user)
    if scope is not None:
        query = query.filter(models.Equipment.mill_id == scope)
    return query


def get_equipment_for_user(
    db: Session,
    equipment_id: str,
    user: account_models.User,
    *,
    for_update: bool = False,
) -> models.Equipment:
    equipment = db.query(models.Equipment).filter(models.Equipment.id == equipment_id).first()
    if not equipment:
        raise NotFoundError("Equipment")
    check = ensure_mill_access if for_update else ensure_mill_read_access
    check(user, equipment.mill_id)
    return equipment


def create_equipment(
    db: Session,
    data: schemas.EquipmentCreate,
    *,
    actor: account_models.User,
) -> models.Equipment:
    mill_id = owning_mill_id(db, actor, data.mill_id)

    fields = data.model_dump(exclude={"mill_id"})
    equipment = models.Equipment(mill_id=mill_id, **fields)
    if equipment.last_calibration_date and equipment.calibration_interval:
        equipment.next_calibration_date = calculations.next_due_date(
            equipment.last_calibration_date, equipment.calibration_interval
        )
    db.add(equipment)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=mill_id,
        actor_user_id=actor.id,
        entity_type="equipment",
        entity_id=equipment.id,
        action="CREATE",
        after=fields,
    )
    return equipment


def update_equipment(
    db: Session,
    equipment: models.Equipment,
    data: schemas.EquipmentUpdate,
    *,
    actor: account_models.User,
) -> models.Equipment:
    fields = data.model_dump(exclude_unset=True)
    before = {key: getattr(equipment, key) for key in fields}
    for key, value in fields.items():
        setattr(equipment, key, value)
    if "calibration_interval" in fields and equipment.last_calibration_date:
        equipment.next_calibration_date = calculations.next_due_date(
            equipment.last_calibration_date, equipment.calibration_interval
        )
    audit_services.log_event(
        db,
        mill_id=equipment.mill_id,
        actor_user_id=actor.id,
        entity_type="equipment",
        entity_id=equipment.id,
        action="UPDATE",
        before=before,
        after=fields,
    )
    return equipment


def _age_years(installed: Optional[date], now: datetime) -> float:
    if installed is None:
        return 0.0
    return round(max((now.date() - installed).days, 0) / 365.25, 2)


def equipment_health(db: Session, equipment: models.Equipment, *, now: Optional[datetime] = None) -> dict:
    now = now or _utcnow()
    active_alerts = (
        db.query(iot_models.SensorAlert)
        .filter(
            iot_models.SensorAlert.equipment_id == equipment.id,
            iot_models.SensorAlert.status.in_(iot_models.OPEN_SENSOR_ALERT_STATUSES),
        )
        .count()
    )
    overdue_tasks = (
        db.query(models.MaintenanceTask)
        .filter(
            models.MaintenanceTask.equipment_id == equipment.id,
            models.MaintenanceTask.status.in_(models.OPEN_TASK_STATUSES),
            models.MaintenanceTask.scheduled_date < now,
        )
        .count()
    )
    age = _age_years(equipment.installation_date, now)
    health = calculations.equipment_health(
        last_calibration_date=equipment.last_calibration_date,
        active_alerts=active_alerts,
        overdue_tasks=overdue_tasks,
        age_years=age,
        calibration_offset=equipment.last_calibration_offset or 0.0,
        now=now,
    )
    calibration_status = None
    if equipment.next_calibration_date is not None:
        calibration_status = calculations.maintenance_status(equipment.next_calibration_date, now).status
    return {
        "equipment_id": equipment.id,
        "health_score": health.health_score,
        "status": health.status,
        "risk_level": health.risk_level,
        "recommendations": health.recommendations,
        "active_alerts": active_alerts,
        "overdue_tasks": overdue_tasks,
        "age_years": age,
        "calibration_status": calibration_status,
    }


# ---------------------------------------------------------------------------
# TASKS
# ---------------------------------------------------------------------------


def visible_tasks(db: Session, user: account_models.User) -> Query:
    query = db.query(models.MaintenanceTask)
    scope = read_scope(user)
    if scope is not None:
        query = query.filter(models.MaintenanceTask.mill_id == scope)
    return query


def get_task_for_user(
    db: Session,
    task_id: str,
    user: account_models.User,
    *,
    for_update: bool = False,
) -> models.MaintenanceTask:
    task = db.query(models.MaintenanceTask).filter(models.MaintenanceTask.id == task_id).first()
    if not task:
        raise NotFoundError("Maintenance task")
    check = ensure_mill_access if for_update else ensure_mill_read_access
    check(user, task.mill_id)
    return task


def _check_assignee(db: Session, user_id: Optional[str], mill_id: str) -> None:
    if not user_id:
        return
    assignee = db.query(account_models.User).filter(account_models.User.id == user_id).first()
    if not assignee:
        raise NotFoundError("Assignee")
    if assignee.mill_id != mill_id:
        raise ValidationError("Tasks can only be assigned to staff of the same mill")


def create_task(
    db: Session,
    data: schemas.TaskCreate,
    *,
    actor: account_models.User,
) -> models.MaintenanceTask:
    equipment = get_equipment_for_user(db, data.equipment_id, actor, for_update=True)
    _check_assignee(db, data.assigned_to_id, equipment.mill_id)

    task = models.MaintenanceTask(
        mill_id=equipment.mill_id,
        created_by_id=actor.id,
        status=TaskStatus.SCHEDULED,
        **data.model_dump(),
    )
    db.add(task)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=task.mill_id,
        actor_user_id=actor.id,
        entity_type="maintenance_task",
        entity_id=task.id,
        action="CREATE",
        after=_task_snapshot(task),
    )
    return task


def update_task(
    db: Session,
    task: models.MaintenanceTask,
    data: schemas.TaskUpdate,
    *,
    actor: account_models.User,
) -> models.MaintenanceTask:
    fields = data.model_dump(exclude_unset=True)
    new_status = fields.pop("status", None)
    if "assigned_to_id" in fields:
        _check_assignee(db, fields["assigned_to_id"], task.mill_id)
    if fields.get("calibration_data") is not None and task.type != TaskType.CALIBRATION:
        raise ValidationError("Calibration data can only be recorded on calibration tasks")

    before = _task_snapshot(task)
    if new_status is not None and new_status != task.status:
        apply_transition(
            db,
            actor_user_id=actor.id,
            entity_type="maintenance_task",
            entity_id=task.id,
            from_state=task.status.value,
            to_state=new_status.value,
            before_obj=before,
            after_obj={"mill_id": task.mill_id, "status": new_status},
            critical=False,
        )
        now = _utcnow()
        if new_status == TaskStatus.IN_PROGRESS and task.started_at is None:
            task.started_at = now
        if new_status == TaskStatus.COMPLETED:
            task.completed_date = now
        task.status = new_status

    for key, value in fields.items():
        setattr(task, key, value)

    audit_services.log_event(
        db,
        mill_id=task.mill_id,
        actor_user_id=actor.id,
        entity_type="maintenance_task",
        entity_id=task.id,
        action="UPDATE",
        before=before,
        after=_task_snapshot(task),
    )
    return task


def task_due_status(task: models.MaintenanceTask, now: Optional[datetime] = None) -> Optional[calculations.DueStatus]:
    if task.status not in models.OPEN_TASK_STATUSES:
        return None
    return calculations.maintenance_status(task.scheduled_date, now)


# ---------------------------------------------------------------------------
# CALIBRATION
# ---------------------------------------------------------------------------


def validate_calibration(
    db: Session,
    data: schemas.CalibrationRequest,
    *,
    actor: account_models.User,
) -> dict:
    points = [
        calculations.CalibrationPoint(
            expected_value=m.expected_value,
            actual_value=m.actual_value,
            tolerance=m.tolerance,
            test_point=m.test_point,
            unit=m.unit,
        )
        for m in data.measurements
    ]
    try:
        result = calculations.validate_calibration(points)
    except ValueError as exc:
        raise ValidationError(str(exc), code="CALIBRATION_INPUT_INVALID")

    payload = {
        "is_valid": result.is_valid,
        "overall_offset": result.overall_offset,
        "max_deviation": result.max_deviation,
        "failed_points": result.failed_points,
        "deviations": result.deviations,
        "recorded": False,
        "next_calibration_date": None,
    }
    if not data.task_id:
        return payload

    task = get_task_for_user(db, data.task_id, actor, for_update=True)
    if task.type != TaskType.CALIBRATION:
        raise ValidationError("Calibration results can only be recorded on calibration tasks")

    now = _utcnow()
    equipment = task.equipment
    task.calibration_data = {
        "measurements": [m.model_dump() for m in data.measurements],
        "result": {k: v for k, v in payload.items() if k not in ("recorded", "next_calibration_date")},
        "recorded_at": now.isoformat(),
        "recorded_by_id": actor.id,
    }

    equipment.last_calibration_date = now
    equipment.last_calibration_offset = result.overall_offset
    equipment.next_calibration_date = calculations.next_due_date(now, equipment.calibration_interval)
    if result.is_valid:
        if equipment.status == EquipmentStatus.NEEDS_CALIBRATION:
            equipment.status = EquipmentStatus.ACTIVE
    else:
        equipment.status = EquipmentStatus.NEEDS_CALIBRATION
        alert_type = "CALIBRATION_OVERDUE" if result.failed_points else "EQUIPMENT_DRIFT"
        alert_services.create_alert(
            db,
            alert_type=alert_type,
            title=f"Calibration failed: {equipment.name}",
            message=(
                f"{len(result.failed_points)} of {len(points)} measurement(s) out of tolerance; "
                f"overall offset {result.overall_offset:.2f}%"
            ),
            recipient_role=account_models.UserRole.MILL_MANAGER,
            mill_id=equipment.mill_id,
            resource_type="equipment",
            resource_id=equipment.id,
            metadata={"task_id": task.id, "failed_points": result.failed_points},
            created_by_id=actor.id,
        )
        logger.warning(
            "Calibration failed",
            extra={"equipment_id": equipment.id, "offset": result.overall_offset},
        )

    audit_services.log_event(
        db,
        mill_id=equipment.mill_id,
        actor_user_id=actor.id,
        entity_type="equipment",
        entity_id=equipment.id,
        action="CALIBRATE",
        after={
            "task_id": task.id,
            "is_valid": result.is_valid,
            "overall_offset": result.overall_offset,
            "next_calibration_date": equipment.next_calibration_date,
        },
    )
    payload["recorded"] = True
    payload["next_calibration_date"] = equipment.next_calibration_date
    return payload
