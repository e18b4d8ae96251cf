# backend/fortifymis/apps/logistics/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from fortifymis.database import Base
from fortifymis.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TripStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DeliveryTrip(Base):
    """
    A dispatched delivery run.

    `orders` keeps the stops as submitted; `delivery_sequence` is the ordered
    stop list with a per-stop completion flag. `current_location` is the
    latest tracking fix.
    """

    __tablename__ = "delivery_trips"
    __table_args__ = (
        Index("idx_delivery_trips_driver_status", "driver_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    trip_number = Column(String(32), nullable=False, unique=True, index=True)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="SET NULL"), nullable=True, index=True)
    purchase_order_id = Column(
        String(36),
        ForeignKey("purchase_orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    driver_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    vehicle_info = Column(JSON, nullable=True)
    orders = Column(JSON, nullable=False, default=list)
    delivery_sequence = Column(JSON, nullable=False, default=list)
    stops = Column(Integer, nullable=False, default=0)
    completed_stops = Column(Integer, nullable=False, default=0)

    status = Column(
        SAEnum(TripStatus, name="delivery_trip_status_enum", native_enum=False),
        nullable=False,
        default=TripStatus.SCHEDULED,
    )
    scheduled_date = Column(DateTime(timezone=True), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    current_location = Column(JSON, nullable=True)
    total_distance_km = Column(Float, nullable=True)
    avg_speed_kmh = Column(Float, nullable=True)
    fuel_used = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    issues = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    driver = relationship("User", foreign_keys=[driver_id])
    purchase_order = relationship("PurchaseOrder")
    tracking_points = relationship(
        "TripTracking",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="TripTracking.recorded_at",
    )

    def __repr__(self) -> str:
        return f"<DeliveryTrip id={self.id} number={self.trip_number} status={self.status}>"


class TripTracking(Base):
    __tablename__ = "trip_tracking"
    __table_args__ = (
        Index("idx_trip_tracking_trip_time", "trip_id", "recorded_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    trip_id = Column(String(36), ForeignKey("delivery_trips.id", ondelete="CASCADE"), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    altitude = Column(Float, nullable=True)
    battery_level = Column(Float, nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    metadata_json = Column("metadata", JSON, nullable=True)

    trip = relationship("DeliveryTrip", back_populates="tracking_points")
