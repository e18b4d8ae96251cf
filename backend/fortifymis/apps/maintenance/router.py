from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission, has_permission
from fortifymis.database import get_db
from fortifymis.errors import ForbiddenError
from fortifymis.schemas import ApiResponse, ok, paginate
from fortifymis.security import require_permissions

from . import models, schemas, services
from .models import EquipmentStatus, TaskPriority, TaskStatus, TaskType

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


# ---------------------------------------------------------------------------
# EQUIPMENT
# ---------------------------------------------------------------------------


@router.get("/equipment", response_model=ApiResponse[schemas.EquipmentPage])
def list_equipment(
    status: Optional[EquipmentStatus] = None,
    type: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.EQUIPMENT_VIEW)),
):
    query = services.visible_equipment(db, current_user)
    if status:
        query = query.filter(models.Equipment.status == status)
    if type:
        query = query.filter(models.Equipment.type == type)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            models.Equipment.name.ilike(like) | models.Equipment.serial_number.ilike(like)
        )
    query = query.order_by(models.Equipment.name.asc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/equipment",
    response_model=ApiResponse[schemas.EquipmentRead],
    status_code=status.HTTP_201_CREATED,
)
def create_equipment(
    payload: schemas.EquipmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.EQUIPMENT_EDIT)),
):
    equipment = services.create_equipment(db, payload, actor=current_user)
    db.commit()
    db.refresh(equipment)
    return ok(equipment)


@router.get("/equipment/{equipment_id}", response_model=ApiResponse[schemas.EquipmentRead])
def get_equipment(
    equipment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.EQUIPMENT_VIEW)),
):
    return ok(services.get_equipment_for_user(db, equipment_id, current_user))


@router.patch("/equipment/{equipment_id}", response_model=ApiResponse[schemas.EquipmentRead])
def update_equipment(
    equipment_id: str,
    payload: schemas.EquipmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.EQUIPMENT_EDIT)),
):
    equipment = services.get_equipment_for_user(db, equipment_id, current_user, for_update=True)
    services.update_equipment(db, equipment, payload, actor=current_user)
    db.commit()
    db.refresh(equipment)
    return ok(equipment)


@router.get("/equipment/{equipment_id}/health", response_model=ApiResponse[schemas.EquipmentHealthRead])
def equipment_health(
    equipment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.EQUIPMENT_VIEW)),
):
    equipment = services.get_equipment_for_user(db, equipment_id, current_user)
    return ok(services.equipment_health(db, equipment))


# ---------------------------------------------------------------------------
# TASKS
# ---------------------------------------------------------------------------


@router.get("/tasks", response_model=ApiResponse[schemas.TaskPage])
def list_tasks(
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    type: Optional[TaskType] = None,
    equipment_id: Optional[str] = None,
    overdue: bool = False,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.MAINTENANCE_VIEW)),
):
    query = services.visible_tasks(db, current_user)
    if status:
        query = query.filter(models.MaintenanceTask.status == status)
    if priority:
        query = query.filter(models.MaintenanceTask.priority == priority)
    if type:
        query = query.filter(models.MaintenanceTask.type == type)
    if equipment_id:
        query = query.filter(models.MaintenanceTask.equipment_id == equipment_id)
    if overdue:
        query = query.filter(
            models.MaintenanceTask.status.in_(models.OPEN_TASK_STATUSES),
            models.MaintenanceTask.scheduled_date < datetime.now(timezone.utc),
        )
    query = query.order_by(models.MaintenanceTask.scheduled_date.asc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/tasks",
    response_model=ApiResponse[schemas.TaskRead],
    status_code=status.HTTP_201_CREATED,
)
def create_task(
    payload: schemas.TaskCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.MAINTENANCE_CREATE)),
):
    task = services.create_task(db, payload, actor=current_user)
    db.commit()
    db.refresh(task)
    return ok(task)


@router.get("/tasks/{task_id}", response_model=ApiResponse[schemas.TaskDetail])
def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.MAINTENANCE_VIEW)),
):
    task = services.get_task_for_user(db, task_id, current_user)
    detail = schemas.TaskDetail.model_validate(task)
    due = services.task_due_status(task)
    if due is not None:
        detail.due = schemas.DueStatusRead.model_validate(due)
    return ok(detail)


@router.patch("/tasks/{task_id}", response_model=ApiResponse[schemas.TaskRead])
def update_task(
    task_id: str,
    payload: schemas.TaskUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.MAINTENANCE_VIEW)),
):
    task = services.get_task_for_user(db, task_id, current_user, for_update=True)
    if payload.status == TaskStatus.COMPLETED and not has_permission(
        current_user.role, Permission.MAINTENANCE_COMPLETE
    ):
        raise ForbiddenError("Insufficient permissions to complete maintenance tasks")
    services.update_task(db, task, payload, actor=current_user)
    db.commit()
    db.refresh(task)
    return ok(task)


# ---------------------------------------------------------------------------
# CALIBRATION
# ---------------------------------------------------------------------------


@router.post("/calibration/validate", response_model=ApiResponse[schemas.CalibrationResultRead])
def validate_calibration(
    payload: schemas.CalibrationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.EQUIPMENT_VIEW)),
):
    if payload.task_id and not has_permission(current_user.role, Permission.MAINTENANCE_COMPLETE):
        raise ForbiddenError("Insufficient permissions to record calibration results")
    result = services.validate_calibration(db, payload, actor=current_user)
    if result["recorded"]:
        db.commit()
    message = "Calibration passed" if result["is_valid"] else "Calibration failed"
    return ok(result, message=message)
