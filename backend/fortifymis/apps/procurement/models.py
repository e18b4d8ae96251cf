# backend/fortifymis/apps/procurement/models.py

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


class RFPStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    AWARDED = "AWARDED"
    CANCELLED = "CANCELLED"


class RFPVisibility(str, enum.Enum):
    PUBLIC = "PUBLIC"
    INVITATION_ONLY = "INVITATION_ONLY"


class UnitPackaging(str, enum.Enum):
    BAGS_1KG = "1KG_BAGS"
    BAGS_5KG = "5KG_BAGS"
    BAGS_25KG = "25KG_BAGS"
    BAGS_50KG = "50KG_BAGS"
    BULK = "BULK"
    CUSTOM = "CUSTOM"


class BidStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    SHORTLISTED = "SHORTLISTED"
    AWARDED = "AWARDED"
    NOT_SELECTED = "NOT_SELECTED"
    WITHDRAWN = "WITHDRAWN"


class DeliveryMethod(str, enum.Enum):
    OWN_FLEET = "OWN_FLEET"
    THIRD_PARTY = "THIRD_PARTY"
    BUYER_PICKUP = "BUYER_PICKUP"


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    IN_DELIVERY = "IN_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class RFP(Base):
    """A buyer's request for proposals for fortified commodity supply."""

    __tablename__ = "rfps"
    __table_args__ = (
        Index("idx_rfps_status_visibility", "status", "visibility"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    reference_number = Column(String(32), nullable=False, unique=True, index=True)
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    commodity = Column(String(32), nullable=False)
    total_volume = Column(Float, nullable=False)
    unit_packaging = Column(
        SAEnum(UnitPackaging, name="rfp_unit_packaging_enum", native_enum=False),
        nullable=False,
    )
    quality_specs = Column(JSON, nullable=True)
    delivery_locations = Column(JSON, nullable=False, default=list)
    max_unit_price = Column(Float, nullable=True)
    total_budget = Column(Float, nullable=True)
    payment_terms = Column(String(64), nullable=True)

    bid_deadline = Column(DateTime(timezone=True), nullable=False)
    estimated_award_date = Column(DateTime(timezone=True), nullable=True)
    visibility = Column(
        SAEnum(RFPVisibility, name="rfp_visibility_enum", native_enum=False),
        nullable=False,
        default=RFPVisibility.PUBLIC,
    )
    status = Column(
        SAEnum(RFPStatus, name="rfp_status_enum", native_enum=False),
        nullable=False,
        default=RFPStatus.DRAFT,
    )

    awarded_bid_id = Column(String(36), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    awarded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    bids = relationship("Bid", back_populates="rfp")
    buyer = relationship("User")

    def __repr__(self) -> str:
        return f"<RFP id={self.id} ref={self.reference_number} status={self.status}>"


class Bid(Base):
    __tablename__ = "bids"
    __table_args__ = (
        Index("idx_bids_rfp_mill", "rfp_id", "mill_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    rfp_id = Column(String(36), ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    unit_price = Column(Float, nullable=False)
    delivery_cost = Column(Float, nullable=False, default=0.0)
    additional_costs = Column(Float, nullable=False, default=0.0)
    total_product_cost = Column(Float, nullable=False)
    total_bid_amount = Column(Float, nullable=False)
    price_validity_days = Column(Integer, nullable=False)
    payment_terms = Column(String(64), nullable=True)
    lead_time_days = Column(Integer, nullable=True)
    delivery_method = Column(
        SAEnum(DeliveryMethod, name="bid_delivery_method_enum", native_enum=False),
        nullable=True,
    )
    notes = Column(Text, nullable=True)

    status = Column(
        SAEnum(BidStatus, name="bid_status_enum", native_enum=False),
        nullable=False,
        default=BidStatus.DRAFT,
        index=True,
    )
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    withdrawn_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    rfp = relationship("RFP", back_populates="bids")
    mill = relationship("Mill")


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    po_number = Column(String(32), nullable=False, unique=True, index=True)
    rfp_id = Column(String(36), ForeignKey("rfps.id", ondelete="RESTRICT"), nullable=False)
    bid_id = Column(String(36), ForeignKey("bids.id", ondelete="RESTRICT"), nullable=False)
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="RESTRICT"), nullable=False, index=True)

    product_specs = Column(JSON, nullable=True)
    quantity = Column(Float, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    payment_terms = Column(String(64), nullable=False, default="NET_30")
    status = Column(
        SAEnum(PurchaseOrderStatus, name="purchase_order_status_enum", native_enum=False),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
