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
from .models import BidStatus, PurchaseOrderStatus, RFPStatus

router = APIRouter(prefix="/api/procurement", tags=["procurement"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# RFPS
# ---------------------------------------------------------------------------


@router.get("/rfps", response_model=ApiResponse[schemas.RFPPage])
def list_rfps(
    status: Optional[RFPStatus] = None,
    commodity: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.RFP_VIEW)),
):
    query = services.visible_rfps(db, current_user)
    if status:
        query = query.filter(models.RFP.status == status)
    if commodity:
        query = query.filter(models.RFP.commodity == commodity.upper())
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.RFP.title.ilike(like),
                models.RFP.reference_number.ilike(like),
            )
        )
    query = query.order_by(models.RFP.created_at.desc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/rfps",
    response_model=ApiResponse[schemas.RFPRead],
    status_code=status.HTTP_201_CREATED,
)
def create_rfp(
    payload: schemas.RFPCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.RFP_CREATE)),
):
    rfp = services.create_rfp(
        db,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(rfp)
    return ok(rfp, message="RFP created")


@router.get("/rfps/{rfp_id}", response_model=ApiResponse[schemas.RFPRead])
def get_rfp(
    rfp_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.RFP_VIEW)),
):
    return ok(services.get_rfp_for_user(db, rfp_id, current_user))


@router.post("/rfps/{rfp_id}/publish", response_model=ApiResponse[schemas.RFPRead])
def publish_rfp(
    rfp_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.RFP_PUBLISH)),
):
    rfp = services.get_rfp_for_user(db, rfp_id, current_user)
    services.publish_rfp(db, rfp, actor=current_user)
    db.commit()
    db.refresh(rfp)
    return ok(rfp, message="RFP published")


@router.post("/rfps/{rfp_id}/close", response_model=ApiResponse[schemas.RFPRead])
def close_rfp(
    rfp_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.RFP_EDIT)),
):
    rfp = services.get_rfp_for_user(db, rfp_id, current_user)
    services.close_rfp(db, rfp, actor=current_user)
    db.commit()
    db.refresh(rfp)
    return ok(rfp, message="RFP closed")


@router.post("/rfps/{rfp_id}/cancel", response_model=ApiResponse[schemas.RFPRead])
def cancel_rfp(
    rfp_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.RFP_EDIT)),
):
    rfp = services.get_rfp_for_user(db, rfp_id, current_user)
    services.cancel_rfp(db, rfp, actor=current_user)
    db.commit()
    db.refresh(rfp)
    return ok(rfp, message="RFP cancelled")


@router.post("/rfps/{rfp_id}/award", response_model=ApiResponse[schemas.AwardResult])
def award_rfp(
    rfp_id: str,
    payload: schemas.AwardRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_AWARD)),
):
    rfp = services.get_rfp_for_user(db, rfp_id, current_user)
    result = services.award_rfp(
        db,
        rfp,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    for obj in result.values():
        if obj is not None:
            db.refresh(obj)
    return ok(result, message="Bid awarded")


@router.get("/rfps/{rfp_id}/bids", response_model=ApiResponse[schemas.BidPage])
def list_rfp_bids(
    rfp_id: str,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_VIEW)),
):
    rfp = services.get_rfp_for_user(db, rfp_id, current_user)
    query = (
        services.visible_bids(db, current_user)
        .filter(models.Bid.rfp_id == rfp.id)
        .order_by(models.Bid.total_bid_amount.asc())
    )
    return ok(paginate(query, page, page_size))


# ---------------------------------------------------------------------------
# BIDS
# ---------------------------------------------------------------------------


@router.get("/bids", response_model=ApiResponse[schemas.BidPage])
def list_bids(
    status: Optional[BidStatus] = None,
    rfp_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_VIEW)),
):
    query = services.visible_bids(db, current_user)
    if status:
        query = query.filter(models.Bid.status == status)
    if rfp_id:
        query = query.filter(models.Bid.rfp_id == rfp_id)
    query = query.order_by(models.Bid.created_at.desc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/bids",
    response_model=ApiResponse[schemas.BidRead],
    status_code=status.HTTP_201_CREATED,
)
def create_bid(
    payload: schemas.BidCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_CREATE)),
):
    bid = services.create_bid(
        db,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(bid)
    return ok(bid, message="Bid created")


@router.get("/bids/{bid_id}", response_model=ApiResponse[schemas.BidRead])
def get_bid(
    bid_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_VIEW)),
):
    return ok(services.get_bid_for_user(db, bid_id, current_user))


@router.post("/bids/{bid_id}/submit", response_model=ApiResponse[schemas.BidRead])
def submit_bid(
    bid_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_CREATE)),
):
    bid = services.get_bid_for_user(db, bid_id, current_user)
    services.submit_bid(db, bid, actor=current_user)
    db.commit()
    db.refresh(bid)
    return ok(bid, message="Bid submitted")


@router.post("/bids/{bid_id}/withdraw", response_model=ApiResponse[schemas.BidRead])
def withdraw_bid(
    bid_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_WITHDRAW)),
):
    bid = services.get_bid_for_user(db, bid_id, current_user)
    services.withdraw_bid(db, bid, actor=current_user)
    db.commit()
    db.refresh(bid)
    return ok(bid, message="Bid withdrawn")


@router.post("/bids/{bid_id}/shortlist", response_model=ApiResponse[schemas.BidRead])
def shortlist_bid(
    bid_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.BID_EVALUATE)),
):
    bid = services.get_bid_for_user(db, bid_id, current_user)
    services.shortlist_bid(db, bid, actor=current_user)
    db.commit()
    db.refresh(bid)
    return ok(bid, message="Bid shortlisted")


# ---------------------------------------------------------------------------
# PURCHASE ORDERS
# ---------------------------------------------------------------------------


@router.get("/purchase-orders", response_model=ApiResponse[schemas.PurchaseOrderPage])
def list_purchase_orders(
    status: Optional[PurchaseOrderStatus] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.ORDER_VIEW)),
):
    query = services.visible_purchase_orders(db, current_user)
    if status:
        query = query.filter(models.PurchaseOrder.status == status)
    query = query.order_by(models.PurchaseOrder.created_at.desc())
    return ok(paginate(query, page, page_size))
