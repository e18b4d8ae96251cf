from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import List, Optional

from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.accounts.models import FWGA_ROLES, MILL_ROLES, UserRole
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.notifications import service as notification_service
from fortifymis.apps.procurement import models as procurement_models
from fortifymis.apps.procurement.models import PurchaseOrderStatus
from fortifymis.apps.workflow import apply_transition
from fortifymis.errors import ForbiddenError, NotFoundError, ValidationError
from fortifymis.security import owning_mill_id
from fortifymis.utils.identifiers import trip_number

from . import distance, models, schemas
from .models import TripStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _location(latitude: float, longitude: float, recorded_at: datetime, **extra) -> dict:
    payload = {
        "latitude": latitude,
        "longitude": longitude,
        "recorded_at": recorded_at.isoformat(),
    }
    payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


# ---------------------------------------------------------------------------
# ACCESS
# ---------------------------------------------------------------------------


def visible_trips(db: Session, user: account_models.User) -> Query:
    query = db.query(models.DeliveryTrip)
    if user.role == UserRole.SYSTEM_ADMIN or user.role in FWGA_ROLES:
        return query
    if user.role == UserRole.DRIVER_LOGISTICS:
        return query.filter(models.DeliveryTrip.driver_id == user.id)
    if user.role in MILL_ROLES:
        return query.filter(models.DeliveryTrip.mill_id == (user.mill_id or ""))
    if user.role == UserRole.INSTITUTIONAL_BUYER:
        return query.join(
            procurement_models.PurchaseOrder,
            procurement_models.PurchaseOrder.id == models.DeliveryTrip.purchase_order_id,
        ).filter(procurement_models.PurchaseOrder.buyer_id == user.id)
    return query.filter(models.DeliveryTrip.id.is_(None))


def get_trip_for_user(db: Session, trip_id: str, user: account_models.User) -> models.DeliveryTrip:
    trip = db.query(models.DeliveryTrip).filter(models.DeliveryTrip.id == trip_id).first()
    if not trip:
        raise NotFoundError("Delivery trip")
    if not visible_trips(db, user).filter(models.DeliveryTrip.id == trip.id).first():
        raise ForbiddenError("You do not have access to this delivery trip")
    return trip


def _ensure_driver(trip: models.DeliveryTrip, user: account_models.User, message: str) -> None:
    if user.role == UserRole.DRIVER_LOGISTICS and trip.driver_id != user.id:
        raise ForbiddenError(message)


def _set_purchase_order_status(trip: models.DeliveryTrip, target: PurchaseOrderStatus) -> None:
    order = trip.purchase_order
    if order is None or order.status == PurchaseOrderStatus.CANCELLED:
        return
    order.status = target


# ---------------------------------------------------------------------------
# TRIPS
# ---------------------------------------------------------------------------


def create_trip(
    db: Session,
    data: schemas.TripCreate,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.DeliveryTrip:
    driver = db.query(account_models.User).filter(account_models.User.id == data.driver_id).first()
    if not driver or not driver.is_active:
        raise NotFoundError("Driver")
    if driver.role != UserRole.DRIVER_LOGISTICS:
        raise ValidationError(
            "Assigned user is not a driver",
            details=[{"field": "driver_id", "message": "must reference a DRIVER_LOGISTICS user"}],
        )

    mill_id = data.mill_id
    if actor.is_mill_staff or (actor.role == UserRole.SYSTEM_ADMIN and data.mill_id):
        mill_id = owning_mill_id(db, actor, data.mill_id)

    if data.purchase_order_id:
        order = (
            db.query(procurement_models.PurchaseOrder)
            .filter(procurement_models.PurchaseOrder.id == data.purchase_order_id)
            .first()
        )
        if not order:
            raise NotFoundError("Purchase order")
        if mill_id and order.mill_id != mill_id:
            raise ForbiddenError("Purchase order belongs to another mill")
        mill_id = mill_id or order.mill_id

    orders = [stop.model_dump() for stop in data.orders]
    sequence = [
        {
            "sequence": index,
            "order_id": stop["order_id"],
            "address": stop["address"],
            "location": stop["location"],
            "completed": False,
        }
        for index, stop in enumerate(orders, start=1)
    ]
    trip = models.DeliveryTrip(
        trip_number=trip_number(),
        mill_id=mill_id,
        purchase_order_id=data.purchase_order_id,
        driver_id=driver.id,
        created_by_id=actor.id,
        vehicle_info=data.vehicle_info.model_dump() if data.vehicle_info else None,
        orders=orders,
        delivery_sequence=sequence,
        stops=len(orders),
        completed_stops=0,
        status=TripStatus.SCHEDULED,
        scheduled_date=data.scheduled_date,
        notes=data.notes,
    )
    db.add(trip)
    db.flush()

    audit_services.log_event(
        db,
        mill_id=mill_id,
        actor_user_id=actor.id,
        entity_type="delivery_trip",
        entity_id=trip.id,
        action="CREATE",
        after={
            "trip_number": trip.trip_number,
            "driver_id": trip.driver_id,
            "stops": trip.stops,
            "scheduled_date": trip.scheduled_date,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )
    notification_service.notify_user(
        db,
        user_id=driver.id,
        notification_type="TRIP_ASSIGNED",
        title=f"Trip {trip.trip_number} assigned",
        message=f"{trip.stops} stop(s) scheduled for {_aware(trip.scheduled_date):%Y-%m-%d %H:%M} UTC.",
        action_url=f"/logistics/trips/{trip.id}",
        metadata={"trip_id": trip.id},
    )
    return trip


def _transition(
    db: Session,
    trip: models.DeliveryTrip,
    to_state: TripStatus,
    *,
    actor: account_models.User,
    after: Optional[dict] = None,
) -> None:
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="delivery_trip",
        entity_id=trip.id,
        from_state=trip.status.value,
        to_state=to_state.value,
        before_obj={"mill_id": trip.mill_id},
        after_obj={"mill_id": trip.mill_id, **(after or {})},
        critical=False,
    )
    trip.status = to_state


def start_trip(
    db: Session,
    trip: models.DeliveryTrip,
    data: schemas.TripStart,
    *,
    actor: account_models.User,
) -> models.DeliveryTrip:
    _ensure_driver(trip, actor, "You can only start your own delivery trips")
    now = _utcnow()
    _transition(db, trip, TripStatus.IN_PROGRESS, actor=actor, after={"start_time": now})

    trip.start_time = now
    trip.current_location = _location(data.start_location.latitude, data.start_location.longitude, now)
    db.add(
        models.TripTracking(
            trip_id=trip.id,
            latitude=data.start_location.latitude,
            longitude=data.start_location.longitude,
            recorded_at=now,
            metadata_json={
                "event": "TRIP_START",
                "odometer_reading": data.odometer_reading,
                "fuel_level": data.fuel_level,
            },
        )
    )
    _set_purchase_order_status(trip, PurchaseOrderStatus.IN_DELIVERY)
    db.flush()
    return trip


def _trail(db: Session, trip_id: str) -> List[models.TripTracking]:
    return (
        db.query(models.TripTracking)
        .filter(models.TripTracking.trip_id == trip_id)
        .order_by(models.TripTracking.recorded_at.asc(), models.TripTracking.id.asc())
        .all()
    )


def complete_trip(
    db: Session,
    trip: models.DeliveryTrip,
    data: schemas.TripComplete,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.DeliveryTrip:
    """
    Close an in-progress trip.

    Total distance is the haversine length of the recorded trail including the
    final position; average speed divides it by the hours since start.
    """
    _ensure_driver(trip, actor, "You can only complete your own delivery trips")
    now = _utcnow()
    end = (data.end_location.latitude, data.end_location.longitude)
    coordinates = distance.as_coordinates(_trail(db, trip.id)) + [end]
    total_km = round(distance.trail_distance_km(coordinates), 3)
    hours = (now - _aware(trip.start_time)).total_seconds() / 3600 if trip.start_time else 0.0
    avg_speed = round(distance.average_speed_kmh(total_km, hours), 2)

    _transition(
        db,
        trip,
        TripStatus.COMPLETED,
        actor=actor,
        after={"end_time": now, "total_distance_km": total_km, "avg_speed_kmh": avg_speed},
    )
    trip.end_time = now
    trip.total_distance_km = total_km
    trip.avg_speed_kmh = avg_speed
    trip.fuel_used = data.fuel_used
    trip.completed_stops = trip.stops
    trip.delivery_sequence = [{**stop, "completed": True} for stop in trip.delivery_sequence or []]
    trip.current_location = _location(end[0], end[1], now)
    if data.notes:
        trip.notes = data.notes
    if data.issues is not None:
        trip.issues = [issue.model_dump() for issue in data.issues]

    db.add(
        models.TripTracking(
            trip_id=trip.id,
            latitude=end[0],
            longitude=end[1],
            recorded_at=now,
            metadata_json={
                "event": "TRIP_COMPLETE",
                "odometer_reading": data.odometer_reading,
                "total_distance_km": total_km,
                "avg_speed_kmh": avg_speed,
            },
        )
    )
    _set_purchase_order_status(trip, PurchaseOrderStatus.DELIVERED)
    db.flush()

    audit_services.log_event(
        db,
        mill_id=trip.mill_id,
        actor_user_id=actor.id,
        entity_type="delivery_trip",
        entity_id=trip.id,
        action="COMPLETE",
        before={"status": TripStatus.IN_PROGRESS},
        after={
            "status": trip.status,
            "end_time": now,
            "total_distance_km": total_km,
            "avg_speed_kmh": avg_speed,
            "completed_stops": trip.completed_stops,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info(
        "Delivery trip completed",
        extra={"trip_id": trip.id, "distance_km": total_km, "avg_speed_kmh": avg_speed},
    )
    return trip


def cancel_trip(
    db: Session,
    trip: models.DeliveryTrip,
    data: schemas.TripCancel,
    *,
    actor: account_models.User,
) -> models.DeliveryTrip:
    _transition(db, trip, TripStatus.CANCELLED, actor=actor, after={"reason": data.reason})
    trip.end_time = _utcnow()
    if data.reason:
        trip.notes = f"{trip.notes}\n{data.reason}" if trip.notes else data.reason
    notification_service.notify_user(
        db,
        user_id=trip.driver_id,
        notification_type="TRIP_CANCELLED",
        title=f"Trip {trip.trip_number} cancelled",
        message=data.reason or "The trip was cancelled.",
        action_url=f"/logistics/trips/{trip.id}",
        metadata={"trip_id": trip.id},
    )
    return trip


# ---------------------------------------------------------------------------
# TRACKING
# ---------------------------------------------------------------------------


def record_tracking(
    db: Session,
    data: schemas.TrackingUpdate,
    *,
    actor: account_models.User,
) -> models.TripTracking:
    trip = db.query(models.DeliveryTrip).filter(models.DeliveryTrip.id == data.trip_id).first()
    if not trip:
        raise NotFoundError("Delivery trip")
    _ensure_driver(trip, actor, "You can only update tracking for your own trips")
    if trip.status != TripStatus.IN_PROGRESS:
        raise ValidationError("Can only update tracking for trips in progress")

    now = _utcnow()
    point = models.TripTracking(
        trip_id=trip.id,
        latitude=data.latitude,
        longitude=data.longitude,
        accuracy=data.accuracy,
        speed=data.speed,
        heading=data.heading,
        altitude=data.altitude,
        battery_level=data.battery_level,
        recorded_at=now,
    )
    db.add(point)
    trip.current_location = _location(data.latitude, data.longitude, now, accuracy=data.accuracy)
    db.flush()
    return point


def trip_trail(db: Session, trip: models.DeliveryTrip) -> dict:
    points = _trail(db, trip.id)
    return {
        "trip_id": trip.id,
        "trip_number": trip.trip_number,
        "status": trip.status,
        "current_location": trip.current_location,
        "distance_km": round(distance.trail_distance_km(distance.as_coordinates(points)), 3),
        "points": points,
    }
