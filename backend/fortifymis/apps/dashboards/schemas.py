from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class MillDashboard(BaseModel):
    mill_id: str
    open_alerts: int
    active_sensor_alerts: int
    critical_sensor_alerts: int
    pending_tasks: int
    overdue_tasks: int
    equipment_total: int
    equipment_needing_calibration: int
    latest_audit_score: Optional[float] = None
    latest_audit_status: Optional[str] = None
    latest_audit_date: Optional[datetime] = None
    training_completions: int


class InspectorDashboard(BaseModel):
    audits_pending_review: int
    audits_approved: int
    audits_rejected: int
    audits_revision_requested: int
    reviewed_by_me: int
    average_score: Optional[float] = None
    open_alerts: int


class ProgramDashboard(BaseModel):
    mills_total: int
    mills_active: int
    audits_by_status: Dict[str, int]
    active_certificates: int
    training_certificates: int
    at_risk_sensors: int
    open_critical_alerts: int
    open_rfps: int


class BuyerDashboard(BaseModel):
    rfps_by_status: Dict[str, int]
    bids_received: int
    purchase_orders_by_status: Dict[str, int]
    purchase_order_value: float


class LogisticsDashboard(BaseModel):
    trips_by_status: Dict[str, int]
    active_trip_ids: List[str]
    scheduled_today: int
    distance_completed_km: float
