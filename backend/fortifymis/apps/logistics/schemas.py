from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fortifymis.schemas import Page

from .models import TripStatus


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class VehicleInfo(BaseModel):
    type: str
    capacity: float = Field(gt=0)
    plate_number: str
    model: Optional[str] = None


class TripStop(BaseModel):
    order_id: Optional[str] = None
    address: str = Field(min_length=1)
    location: GeoPoint
    quantity: float = Field(gt=0)
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None


# ---------------------------------------------------------------------------
# TRIPS
# ---------------------------------------------------------------------------


class TripCreate(BaseModel):
    driver_id: str
    scheduled_date: datetime
    vehicle_info: Optional[VehicleInfo] = None
    orders: List[TripStop] = Field(min_length=1)
    purchase_order_id: Optional[str] = None
    mill_id: Optional[str] = None
    notes: Optional[str] = None


class TripStart(BaseModel):
    start_location: GeoPoint
    odometer_reading: Optional[float] = Field(default=None, ge=0)
    fuel_level: Optional[float] = Field(default=None, ge=0, le=100)


class TripIssue(BaseModel):
    type: str
    description: str
    order_id: Optional[str] = None


class TripComplete(BaseModel):
    end_location: GeoPoint
    odometer_reading: Optional[float] = Field(default=None, ge=0)
    fuel_used: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    issues: Optional[List[TripIssue]] = None


class TripCancel(BaseModel):
    reason: Optional[str] = None


class TripRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_number: str
    mill_id: Optional[str] = None
    purchase_order_id: Optional[str] = None
    driver_id: str
    vehicle_info: Optional[dict] = None
    orders: List[dict]
    delivery_sequence: List[dict]
    stops: int
    completed_stops: int
    status: TripStatus
    scheduled_date: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    current_location: Optional[dict] = None
    total_distance_km: Optional[float] = None
    avg_speed_kmh: Optional[float] = None
    fuel_used: Optional[float] = None
    notes: Optional[str] = None
    issues: Optional[List[dict]] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# TRACKING
# ---------------------------------------------------------------------------


class TrackingUpdate(BaseModel):
    trip_id: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    speed: Optional[float] = Field(default=None, ge=0)
    heading: Optional[float] = Field(default=None, ge=0, le=360)
    altitude: Optional[float] = None
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)


class TrackingPointRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_id: str
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    altitude: Optional[float] = None
    battery_level: Optional[float] = None
    recorded_at: datetime
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")


class TripTrail(BaseModel):
    trip_id: str
    trip_number: str
    status: TripStatus
    current_location: Optional[dict] = None
    distance_km: float
    points: List[TrackingPointRead]


TripPage = Page[TripRead]
