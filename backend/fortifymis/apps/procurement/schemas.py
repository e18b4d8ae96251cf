from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fortifymis.schemas import Page

from .models import (
    BidStatus,
    DeliveryMethod,
    PurchaseOrderStatus,
    RFPStatus,
    RFPVisibility,
    UnitPackaging,
)


# ---------------------------------------------------------------------------
# RFPS
# ---------------------------------------------------------------------------


class RFPCreate(BaseModel):
    title: str = Field(min_length=5, max_length=255)
    description: Optional[str] = None
    commodity: str = Field(min_length=2, max_length=32)
    total_volume: float = Field(gt=0)
    unit_packaging: UnitPackaging
    quality_specs: Optional[dict] = None
    delivery_locations: List[dict] = Field(min_length=1)
    max_unit_price: Optional[float] = Field(default=None, gt=0)
    total_budget: Optional[float] = Field(default=None, gt=0)
    payment_terms: Optional[str] = None
    bid_deadline: datetime
    estimated_award_date: Optional[datetime] = None
    visibility: RFPVisibility = RFPVisibility.PUBLIC


class RFPRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reference_number: str
    buyer_id: str
    title: str
    description: Optional[str] = None
    commodity: str
    total_volume: float
    unit_packaging: UnitPackaging
    quality_specs: Optional[dict] = None
    delivery_locations: List[dict]
    max_unit_price: Optional[float] = None
    total_budget: Optional[float] = None
    payment_terms: Optional[str] = None
    bid_deadline: datetime
    estimated_award_date: Optional[datetime] = None
    visibility: RFPVisibility
    status: RFPStatus
    awarded_bid_id: Optional[str] = None
    published_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    awarded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class AwardRequest(BaseModel):
    bid_id: str
    award_notes: Optional[str] = None
    create_purchase_order: bool = True


# ---------------------------------------------------------------------------
# BIDS
# ---------------------------------------------------------------------------


class BidCreate(BaseModel):
    rfp_id: str
    unit_price: float = Field(gt=0)
    delivery_cost: float = Field(default=0.0, ge=0)
    additional_costs: float = Field(default=0.0, ge=0)
    price_validity_days: int = Field(gt=0)
    payment_terms: Optional[str] = None
    lead_time_days: Optional[int] = Field(default=None, gt=0)
    delivery_method: Optional[DeliveryMethod] = None
    notes: Optional[str] = None


class BidRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    rfp_id: str
    mill_id: str
    unit_price: float
    delivery_cost: float
    additional_costs: float
    total_product_cost: float
    total_bid_amount: float
    price_validity_days: int
    payment_terms: Optional[str] = None
    lead_time_days: Optional[int] = None
    delivery_method: Optional[DeliveryMethod] = None
    notes: Optional[str] = None
    status: BidStatus
    submitted_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# PURCHASE ORDERS
# ---------------------------------------------------------------------------


class PurchaseOrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    po_number: str
    rfp_id: str
    bid_id: str
    buyer_id: str
    mill_id: str
    product_specs: Optional[dict] = None
    quantity: float
    unit_price: float
    total_amount: float
    payment_terms: str
    status: PurchaseOrderStatus
    created_at: datetime


class AwardResult(BaseModel):
    rfp: RFPRead
    bid: BidRead
    purchase_order: Optional[PurchaseOrderRead] = None


RFPPage = Page[RFPRead]
BidPage = Page[BidRead]
PurchaseOrderPage = Page[PurchaseOrderRead]
