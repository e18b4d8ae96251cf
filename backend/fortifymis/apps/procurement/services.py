from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.accounts.models import FWGA_ROLES, MILL_ROLES, UserRole
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.notifications import service as notification_service
from fortifymis.apps.notifications.models import NotificationPriority
from fortifymis.apps.workflow import apply_transition
from fortifymis.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from fortifymis.utils.identifiers import sequence_reference

from . import models, schemas
from .models import BidStatus, RFPStatus, RFPVisibility

logger = logging.getLogger(__name__)

LIVE_BID_STATUSES = (BidStatus.DRAFT, BidStatus.SUBMITTED, BidStatus.SHORTLISTED, BidStatus.AWARDED)
AWARDABLE_BID_STATUSES = (BidStatus.SUBMITTED, BidStatus.SHORTLISTED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _sees_everything(user: account_models.User) -> bool:
    return user.role == UserRole.SYSTEM_ADMIN or user.role in FWGA_ROLES


def _next_reference(db: Session, model, column, prefix: str) -> str:
    """Yearly running number: one more than the rows already created this year."""
    now = _utcnow()
    year_start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
    count = db.query(func.count(model.id)).filter(model.created_at >= year_start).scalar() or 0
    sequence = count + 1
    reference = sequence_reference(prefix, sequence, year=now.year)
    # Skip numbers taken by rows dated into this year out of order.
    while db.query(model.id).filter(column == reference).first():
        sequence += 1
        reference = sequence_reference(prefix, sequence, year=now.year)
    return reference


def _rfp_snapshot(rfp: models.RFP) -> dict:
    return {
        "reference_number": rfp.reference_number,
        "title": rfp.title,
        "status": rfp.status,
        "bid_deadline": rfp.bid_deadline,
        "visibility": rfp.visibility,
        "awarded_bid_id": rfp.awarded_bid_id,
    }


# ---------------------------------------------------------------------------
# RFPS
# ---------------------------------------------------------------------------


def visible_rfps(db: Session, user: account_models.User) -> Query:
    query = db.query(models.RFP)
    if _sees_everything(user):
        return query
    if user.role == UserRole.INSTITUTIONAL_BUYER:
        return query.filter(models.RFP.buyer_id == user.id)
    if user.role in MILL_ROLES:
        return query.filter(
            models.RFP.status == RFPStatus.OPEN,
            models.RFP.visibility == RFPVisibility.PUBLIC,
        )
    return query.filter(models.RFP.id.is_(None))


def get_rfp(db: Session, rfp_id: str) -> models.RFP:
    rfp = db.query(models.RFP).filter(models.RFP.id == rfp_id).first()
    if not rfp:
        raise NotFoundError("RFP")
    return rfp


def get_rfp_for_user(db: Session, rfp_id: str, user: account_models.User) -> models.RFP:
    rfp = get_rfp(db, rfp_id)
    if not visible_rfps(db, user).filter(models.RFP.id == rfp.id).first():
        # Mill staff keep read access to RFPs they bid on after bidding closes.
        if user.role in MILL_ROLES and user.mill_id:
            has_bid = (
                db.query(models.Bid.id)
                .filter(models.Bid.rfp_id == rfp.id, models.Bid.mill_id == user.mill_id)
                .first()
            )
            if has_bid:
                return rfp
        raise NotFoundError("RFP")
    return rfp


def _ensure_owner(rfp: models.RFP, user: account_models.User, message: str) -> None:
    if user.role == UserRole.INSTITUTIONAL_BUYER and rfp.buyer_id != user.id:
        raise ForbiddenError(message)


def create_rfp(
    db: Session,
    data: schemas.RFPCreate,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.RFP:
    if actor.role not in (UserRole.INSTITUTIONAL_BUYER, UserRole.SYSTEM_ADMIN):
        raise ForbiddenError("Only institutional buyers can create RFPs")

    rfp = models.RFP(
        reference_number=_next_reference(db, models.RFP, models.RFP.reference_number, "RFP"),
        buyer_id=actor.id,
        status=RFPStatus.DRAFT,
        **data.model_dump(),
    )
    rfp.commodity = rfp.commodity.upper()
    db.add(rfp)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor.id,
        entity_type="rfp",
        entity_id=rfp.id,
        action="CREATE",
        after=_rfp_snapshot(rfp),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return rfp


def _transition_rfp(
    db: Session,
    rfp: models.RFP,
    to_state: RFPStatus,
    *,
    actor: account_models.User,
    after_obj: Optional[dict] = None,
) -> None:
    before = _rfp_snapshot(rfp)
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="rfp",
        entity_id=rfp.id,
        from_state=rfp.status.value,
        to_state=to_state.value,
        before_obj=before,
        after_obj=after_obj if after_obj is not None else before,
    )
    rfp.status = to_state


def publish_rfp(db: Session, rfp: models.RFP, *, actor: account_models.User) -> models.RFP:
    _ensure_owner(rfp, actor, "You can only publish your own RFPs")
    _transition_rfp(
        db,
        rfp,
        RFPStatus.OPEN,
        actor=actor,
        after_obj={"bid_deadline": rfp.bid_deadline, "delivery_locations": rfp.delivery_locations},
    )
    rfp.published_at = _utcnow()

    if rfp.visibility == RFPVisibility.PUBLIC:
        notification_service.notify_role(
            db,
            roles=[UserRole.MILL_MANAGER],
            notification_type="NEW_RFP",
            title=f"New RFP: {rfp.title}",
            message=(
                f"{rfp.reference_number} for {rfp.total_volume:g} of {rfp.commodity} "
                f"is open until {_aware(rfp.bid_deadline):%Y-%m-%d %H:%M} UTC."
            ),
            action_url=f"/rfps/{rfp.id}",
            metadata={"rfp_id": rfp.id},
        )
    logger.info("RFP published", extra={"rfp_id": rfp.id, "reference_number": rfp.reference_number})
    return rfp


def close_rfp(db: Session, rfp: models.RFP, *, actor: account_models.User) -> models.RFP:
    _ensure_owner(rfp, actor, "You can only close your own RFPs")
    _transition_rfp(db, rfp, RFPStatus.CLOSED, actor=actor)
    rfp.closed_at = _utcnow()
    return rfp


def cancel_rfp(db: Session, rfp: models.RFP, *, actor: account_models.User) -> models.RFP:
    _ensure_owner(rfp, actor, "You can only cancel your own RFPs")
    _transition_rfp(db, rfp, RFPStatus.CANCELLED, actor=actor)
    rfp.closed_at = rfp.closed_at or _utcnow()
    return rfp


def award_rfp(
    db: Session,
    rfp: models.RFP,
    data: schemas.AwardRequest,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> dict:
    """
    Award a CLOSED RFP to one SUBMITTED or SHORTLISTED bid.

    Every other live bid becomes NOT_SELECTED. A purchase order is raised
    unless the caller opts out.
    """
    if actor.role not in (UserRole.INSTITUTIONAL_BUYER, UserRole.FWGA_PROGRAM_MANAGER, UserRole.SYSTEM_ADMIN):
        raise ForbiddenError("Only buyers can award bids")
    _ensure_owner(rfp, actor, "You can only award your own RFPs")
    if rfp.status == RFPStatus.AWARDED:
        raise ValidationError("RFP has already been awarded")
    if rfp.status != RFPStatus.CLOSED:
        raise ValidationError("RFP must be closed before awarding")

    bid = db.query(models.Bid).filter(models.Bid.id == data.bid_id).first()
    if not bid:
        raise NotFoundError("Bid")
    if bid.rfp_id != rfp.id:
        raise ValidationError("Bid does not belong to this RFP")
    if bid.status not in AWARDABLE_BID_STATUSES:
        raise ValidationError(f"Cannot award bid with status {bid.status.value}")

    previous_status = rfp.status
    _transition_rfp(
        db,
        rfp,
        RFPStatus.AWARDED,
        actor=actor,
        after_obj={"awarded_bid_id": bid.id},
    )
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="bid",
        entity_id=bid.id,
        from_state=bid.status.value,
        to_state=BidStatus.AWARDED.value,
        before_obj={"mill_id": bid.mill_id, "status": bid.status},
        after_obj={"mill_id": bid.mill_id},
        critical=False,
    )
    now = _utcnow()
    bid.status = BidStatus.AWARDED
    rfp.awarded_bid_id = bid.id
    rfp.awarded_at = now

    losing = (
        db.query(models.Bid)
        .filter(
            models.Bid.rfp_id == rfp.id,
            models.Bid.id != bid.id,
            models.Bid.status.in_(AWARDABLE_BID_STATUSES),
        )
        .all()
    )
    for other in losing:
        other.status = BidStatus.NOT_SELECTED

    purchase_order = None
    if data.create_purchase_order:
        purchase_order = models.PurchaseOrder(
            po_number=_next_reference(db, models.PurchaseOrder, models.PurchaseOrder.po_number, "PO"),
            rfp_id=rfp.id,
            bid_id=bid.id,
            buyer_id=rfp.buyer_id,
            mill_id=bid.mill_id,
            product_specs={
                "commodity": rfp.commodity,
                "total_volume": rfp.total_volume,
                "unit_packaging": rfp.unit_packaging.value,
                "quality_specs": rfp.quality_specs,
            },
            quantity=rfp.total_volume,
            unit_price=bid.unit_price,
            total_amount=bid.total_bid_amount,
            payment_terms=bid.payment_terms or rfp.payment_terms or "NET_30",
        )
        db.add(purchase_order)
        db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor.id,
        entity_type="rfp",
        entity_id=rfp.id,
        action="AWARD",
        before={"status": previous_status},
        after={
            "status": rfp.status,
            "awarded_bid_id": bid.id,
            "award_notes": data.award_notes,
            "po_number": purchase_order.po_number if purchase_order else None,
            "not_selected": [other.id for other in losing],
        },
        ip_address=ip_address,
        user_agent=user_agent,
        critical=True,
    )

    notification_service.notify_role(
        db,
        roles=[UserRole.MILL_MANAGER],
        mill_id=bid.mill_id,
        notification_type="BID_AWARDED",
        title=f"Bid awarded: {rfp.title}",
        message=f"Your bid on {rfp.reference_number} was selected.",
        priority=NotificationPriority.HIGH,
        action_url=f"/bids/{bid.id}",
        metadata={"rfp_id": rfp.id, "bid_id": bid.id},
    )
    for other in losing:
        notification_service.notify_role(
            db,
            roles=[UserRole.MILL_MANAGER],
            mill_id=other.mill_id,
            notification_type="BID_NOT_SELECTED",
            title=f"Bid not selected: {rfp.title}",
            message=f"Your bid on {rfp.reference_number} was not selected.",
            action_url=f"/bids/{other.id}",
            metadata={"rfp_id": rfp.id, "bid_id": other.id},
        )

    logger.info(
        "RFP awarded",
        extra={"rfp_id": rfp.id, "bid_id": bid.id, "not_selected": len(losing)},
    )
    return {"rfp": rfp, "bid": bid, "purchase_order": purchase_order}


# ---------------------------------------------------------------------------
# BIDS
# ---------------------------------------------------------------------------


def visible_bids(db: Session, user: account_models.User) -> Query:
    query = db.query(models.Bid)
    if _sees_everything(user):
        return query
    if user.role in MILL_ROLES:
        return query.filter(models.Bid.mill_id == (user.mill_id or ""))
    if user.role == UserRole.INSTITUTIONAL_BUYER:
        return (
            query.join(models.RFP, models.RFP.id == models.Bid.rfp_id)
            .filter(models.RFP.buyer_id == user.id, models.Bid.status != BidStatus.DRAFT)
        )
    return query.filter(models.Bid.id.is_(None))


def get_bid_for_user(db: Session, bid_id: str, user: account_models.User) -> models.Bid:
    bid = visible_bids(db, user).filter(models.Bid.id == bid_id).first()
    if not bid:
        raise NotFoundError("Bid")
    return bid


def _ensure_bidding_open(rfp: models.RFP) -> None:
    if rfp.status != RFPStatus.OPEN:
        raise ValidationError("RFP is not open for bidding")
    if _aware(rfp.bid_deadline) <= _utcnow():
        raise ValidationError("Bid deadline has passed")


def create_bid(
    db: Session,
    data: schemas.BidCreate,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.Bid:
    if actor.role != UserRole.MILL_MANAGER:
        raise ForbiddenError("Only mill managers can create bids")
    if not actor.mill_id:
        raise ForbiddenError("Mill staff must be assigned to a mill")

    rfp = get_rfp(db, data.rfp_id)
    if rfp.visibility != RFPVisibility.PUBLIC:
        raise NotFoundError("RFP")
    _ensure_bidding_open(rfp)

    existing = (
        db.query(models.Bid)
        .filter(
            models.Bid.rfp_id == rfp.id,
            models.Bid.mill_id == actor.mill_id,
            models.Bid.status.in_(LIVE_BID_STATUSES),
        )
        .first()
    )
    if existing:
        raise ConflictError(
            "Your mill already has a bid for this RFP",
            details={"bid_id": existing.id},
        )

    fields = data.model_dump()
    total_product_cost = round(data.unit_price * rfp.total_volume, 2)
    bid = models.Bid(
        mill_id=actor.mill_id,
        created_by_id=actor.id,
        status=BidStatus.DRAFT,
        total_product_cost=total_product_cost,
        total_bid_amount=round(total_product_cost + data.delivery_cost + data.additional_costs, 2),
        **fields,
    )
    db.add(bid)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=bid.mill_id,
        actor_user_id=actor.id,
        entity_type="bid",
        entity_id=bid.id,
        action="CREATE",
        after={**fields, "total_bid_amount": bid.total_bid_amount},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return bid


def _transition_bid(
    db: Session,
    bid: models.Bid,
    to_state: BidStatus,
    *,
    actor: account_models.User,
    action: str,
) -> models.Bid:
    previous = bid.status
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="bid",
        entity_id=bid.id,
        from_state=previous.value,
        to_state=to_state.value,
        before_obj={"mill_id": bid.mill_id, "status": previous},
        after_obj={"mill_id": bid.mill_id},
        critical=False,
    )
    bid.status = to_state
    audit_services.log_event(
        db,
        mill_id=bid.mill_id,
        actor_user_id=actor.id,
        entity_type="bid",
        entity_id=bid.id,
        action=action,
        before={"status": previous},
        after={"status": to_state},
    )
    return bid


def _ensure_own_bid(bid: models.Bid, user: account_models.User) -> None:
    if user.role != UserRole.SYSTEM_ADMIN and bid.mill_id != user.mill_id:
        raise ForbiddenError("You can only manage your own mill's bids")


def submit_bid(db: Session, bid: models.Bid, *, actor: account_models.User) -> models.Bid:
    _ensure_own_bid(bid, actor)
    _ensure_bidding_open(bid.rfp)
    _transition_bid(db, bid, BidStatus.SUBMITTED, actor=actor, action="SUBMIT")
    bid.submitted_at = _utcnow()
    notification_service.notify_user(
        db,
        user_id=bid.rfp.buyer_id,
        notification_type="BID_RECEIVED",
        title=f"New bid on {bid.rfp.reference_number}",
        message=f"A bid of {bid.total_bid_amount:,.2f} was submitted.",
        action_url=f"/rfps/{bid.rfp_id}",
        metadata={"rfp_id": bid.rfp_id, "bid_id": bid.id},
    )
    return bid


def withdraw_bid(db: Session, bid: models.Bid, *, actor: account_models.User) -> models.Bid:
    _ensure_own_bid(bid, actor)
    _transition_bid(db, bid, BidStatus.WITHDRAWN, actor=actor, action="WITHDRAW")
    bid.withdrawn_at = _utcnow()
    return bid


def shortlist_bid(db: Session, bid: models.Bid, *, actor: account_models.User) -> models.Bid:
    _ensure_owner(bid.rfp, actor, "Only the RFP owner can shortlist bids")
    return _transition_bid(db, bid, BidStatus.SHORTLISTED, actor=actor, action="SHORTLIST")


# ---------------------------------------------------------------------------
# PURCHASE ORDERS
# ---------------------------------------------------------------------------


def visible_purchase_orders(db: Session, user: account_models.User) -> Query:
    query = db.query(models.PurchaseOrder)
    if _sees_everything(user):
        return query
    if user.role == UserRole.INSTITUTIONAL_BUYER:
        return query.filter(models.PurchaseOrder.buyer_id == user.id)
    return query.filter(models.PurchaseOrder.mill_id == (user.mill_id or ""))
