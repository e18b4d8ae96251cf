from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission
from fortifymis.database import get_db
from fortifymis.schemas import ApiResponse, ok, paginate
from fortifymis.security import require_permissions

from . import models, schemas, services
from .models import TripStatus

router = APIRouter(prefix="/api/logistics", tags=["logistics"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# TRIPS
# ---------------------------------------------------------------------------


@router.get("/trips", response_model=ApiResponse[schemas.TripPage])
def list_trips(
    status: Optional[TripStatus] = None,
    driver_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_VIEW)),
):
    query = services.visible_trips(db, current_user)
    if status:
        query = query.filter(models.DeliveryTrip.status == status)
    if driver_id:
        query = query.filter(models.DeliveryTrip.driver_id == driver_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.DeliveryTrip.trip_number.ilike(like),
                models.DeliveryTrip.driver_id.ilike(like),
            )
        )
    query = query.order_by(models.DeliveryTrip.scheduled_date.desc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/trips",
    response_model=ApiResponse[schemas.TripRead],
    status_code=status.HTTP_201_CREATED,
)
def create_trip(
    payload: schemas.TripCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_CREATE)),
):
    trip = services.create_trip(
        db,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(trip)
    return ok(trip, message="Delivery trip created")


@router.get("/trips/{trip_id}", response_model=ApiResponse[schemas.TripRead])
def get_trip(
    trip_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_VIEW)),
):
    return ok(services.get_trip_for_user(db, trip_id, current_user))


@router.post("/trips/{trip_id}/start", response_model=ApiResponse[schemas.TripRead])
def start_trip(
    trip_id: str,
    payload: schemas.TripStart,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_START)),
):
    trip = services.get_trip_for_user(db, trip_id, current_user)
    services.start_trip(db, trip, payload, actor=current_user)
    db.commit()
    db.refresh(trip)
    return ok(trip, message="Delivery trip started")


@router.post("/trips/{trip_id}/complete", response_model=ApiResponse[schemas.TripRead])
def complete_trip(
    trip_id: str,
    payload: schemas.TripComplete,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_COMPLETE)),
):
    trip = services.get_trip_for_user(db, trip_id, current_user)
    services.complete_trip(
        db,
        trip,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(trip)
    return ok(trip, message="Delivery trip completed")


@router.post("/trips/{trip_id}/cancel", response_model=ApiResponse[schemas.TripRead])
def cancel_trip(
    trip_id: str,
    payload: schemas.TripCancel,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_MANAGE)),
):
    trip = services.get_trip_for_user(db, trip_id, current_user)
    services.cancel_trip(db, trip, payload, actor=current_user)
    db.commit()
    db.refresh(trip)
    return ok(trip, message="Delivery trip cancelled")


@router.get("/trips/{trip_id}/tracking", response_model=ApiResponse[schemas.TripTrail])
def get_trip_tracking(
    trip_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRACKING_VIEW)),
):
    trip = services.get_trip_for_user(db, trip_id, current_user)
    return ok(services.trip_trail(db, trip))


# ---------------------------------------------------------------------------
# TRACKING
# ---------------------------------------------------------------------------


@router.post(
    "/tracking",
    response_model=ApiResponse[schemas.TrackingPointRead],
    status_code=status.HTTP_201_CREATED,
)
def update_tracking(
    payload: schemas.TrackingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRACKING_UPDATE)),
):
    point = services.record_tracking(db, payload, actor=current_user)
    db.commit()
    db.refresh(point)
    return ok(point, message="Location updated")
