from __future__ import annotations

from datetime import datetime, timezone

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.audit import models as audit_models
from fortifymis.apps.notifications import models as notification_models
from fortifymis.apps.procurement import models as procurement_models

YEAR = datetime.now(timezone.utc).year

RFP = {
    "title": "Fortified maize flour for school meals",
    "commodity": "maize",
    "total_volume": 1000,
    "unit_packaging": "25KG_BAGS",
    "delivery_locations": [{"name": "Nakuru depot", "latitude": -0.3031, "longitude": 36.08}],
    "bid_deadline": "2099-01-01T00:00:00+00:00",
    "payment_terms": "NET_45",
}


def _bid(rfp_id, unit_price, delivery_cost=500):
    return {
        "rfp_id": rfp_id,
        "unit_price": unit_price,
        "delivery_cost": delivery_cost,
        "price_validity_days": 30,
        "delivery_method": "OWN_FLEET",
    }


def _inbox(db_session, user):
    return [
        n.type
        for n in db_session.query(notification_models.Notification)
        .filter(notification_models.Notification.user_id == user.id)
        .order_by(notification_models.Notification.created_at.asc())
        .all()
    ]


def test_rfp_is_drafted_then_published_to_mills(client, db_session, make_mill, make_user, auth_headers):
    buyer = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=make_mill())

    created = client.post("/api/procurement/rfps", json=RFP, headers=auth_headers(buyer))
    assert created.status_code == 201
    rfp = created.json()["data"]
    assert rfp["reference_number"] == f"RFP-{YEAR}-000001"
    assert rfp["status"] == "DRAFT"
    assert rfp["commodity"] == "MAIZE"

    hidden = client.get("/api/procurement/rfps", headers=auth_headers(manager))
    assert hidden.json()["data"]["pagination"]["total"] == 0

    published = client.post(f"/api/procurement/rfps/{rfp['id']}/publish", headers=auth_headers(buyer))
    assert published.status_code == 200
    assert published.json()["data"]["status"] == "OPEN"
    assert published.json()["data"]["published_at"] is not None
    assert _inbox(db_session, manager) == ["NEW_RFP"]

    visible = client.get("/api/procurement/rfps", headers=auth_headers(manager))
    assert visible.json()["data"]["pagination"]["total"] == 1

    second = client.post("/api/procurement/rfps", json=RFP, headers=auth_headers(buyer))
    assert second.json()["data"]["reference_number"] == f"RFP-{YEAR}-000002"


def test_publishing_requires_future_deadline(client, make_user, auth_headers):
    buyer = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    rfp_id = client.post(
        "/api/procurement/rfps",
        json=dict(RFP, bid_deadline="2020-01-01T00:00:00+00:00"),
        headers=auth_headers(buyer),
    ).json()["data"]["id"]

    response = client.post(f"/api/procurement/rfps/{rfp_id}/publish", headers=auth_headers(buyer))

    assert response.status_code == 400
    assert response.json()["code"] == "TRANSITION_BLOCKED"
    assert response.json()["error"] == "bid deadline must be in the future"


def test_other_buyers_cannot_touch_an_rfp(client, make_user, auth_headers):
    owner = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    other = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    rfp_id = client.post("/api/procurement/rfps", json=RFP, headers=auth_headers(owner)).json()["data"]["id"]

    response = client.post(f"/api/procurement/rfps/{rfp_id}/publish", headers=auth_headers(other))

    assert response.status_code == 404
    assert response.json()["error"] == "RFP not found"


def test_bidding_award_and_purchase_order(client, db_session, make_mill, make_user, auth_headers):
    buyer = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    mill_a = make_mill()
    mill_b = make_mill()
    manager_a = make_user(account_models.UserRole.MILL_MANAGER, mill=mill_a)
    manager_b = make_user(account_models.UserRole.MILL_MANAGER, mill=mill_b)
    technician = make_user(account_models.UserRole.MILL_TECHNICIAN, mill=mill_a)
    buyer_headers = auth_headers(buyer)

    rfp_id = client.post("/api/procurement/rfps", json=RFP, headers=buyer_headers).json()["data"]["id"]
    client.post(f"/api/procurement/rfps/{rfp_id}/publish", headers=buyer_headers)

    bid_a = client.post("/api/procurement/bids", json=_bid(rfp_id, 40), headers=auth_headers(manager_a))
    assert bid_a.status_code == 201
    assert bid_a.json()["data"]["total_product_cost"] == 40000
    assert bid_a.json()["data"]["total_bid_amount"] == 40500
    assert bid_a.json()["data"]["status"] == "DRAFT"
    bid_a_id = bid_a.json()["data"]["id"]

    duplicate = client.post("/api/procurement/bids", json=_bid(rfp_id, 39), headers=auth_headers(manager_a))
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Your mill already has a bid for this RFP"

    not_manager = client.post("/api/procurement/bids", json=_bid(rfp_id, 38), headers=auth_headers(technician))
    assert not_manager.status_code == 403

    bid_b_id = client.post(
        "/api/procurement/bids", json=_bid(rfp_id, 38, delivery_cost=100), headers=auth_headers(manager_b)
    ).json()["data"]["id"]

    # Drafts are invisible to the buyer until submitted.
    drafts = client.get(f"/api/procurement/rfps/{rfp_id}/bids", headers=buyer_headers)
    assert drafts.json()["data"]["pagination"]["total"] == 0

    for bid_id, manager in ((bid_a_id, manager_a), (bid_b_id, manager_b)):
        submitted = client.post(f"/api/procurement/bids/{bid_id}/submit", headers=auth_headers(manager))
        assert submitted.status_code == 200
        assert submitted.json()["data"]["status"] == "SUBMITTED"
    assert _inbox(db_session, buyer) == ["BID_RECEIVED", "BID_RECEIVED"]

    ranked = client.get(f"/api/procurement/rfps/{rfp_id}/bids", headers=buyer_headers).json()["data"]
    assert [b["id"] for b in ranked["items"]] == [bid_b_id, bid_a_id]

    early = client.post(f"/api/procurement/rfps/{rfp_id}/award", json={"bid_id": bid_a_id}, headers=buyer_headers)
    assert early.status_code == 400
    assert early.json()["error"] == "RFP must be closed before awarding"

    closed = client.post(f"/api/procurement/rfps/{rfp_id}/close", headers=buyer_headers)
    assert closed.json()["data"]["status"] == "CLOSED"

    awarded = client.post(
        f"/api/procurement/rfps/{rfp_id}/award",
        json={"bid_id": bid_a_id, "award_notes": "Shorter lead time"},
        headers=buyer_headers,
    )
    assert awarded.status_code == 200
    assert awarded.json()["message"] == "Bid awarded"
    result = awarded.json()["data"]
    assert result["rfp"]["status"] == "AWARDED"
    assert result["rfp"]["awarded_bid_id"] == bid_a_id
    assert result["bid"]["status"] == "AWARDED"
    order = result["purchase_order"]
    assert order["po_number"] == f"PO-{YEAR}-000001"
    assert order["mill_id"] == mill_a.id
    assert order["total_amount"] == 40500
    assert order["payment_terms"] == "NET_45"

    db_session.expire_all()
    loser = db_session.query(procurement_models.Bid).filter_by(id=bid_b_id).one()
    assert loser.status == procurement_models.BidStatus.NOT_SELECTED
    assert "BID_AWARDED" in _inbox(db_session, manager_a)
    assert "BID_NOT_SELECTED" in _inbox(db_session, manager_b)

    award_logs = (
        db_session.query(audit_models.AuditLog)
        .filter(audit_models.AuditLog.entity_type == "rfp", audit_models.AuditLog.action == "AWARD")
        .all()
    )
    assert len(award_logs) == 1
    assert award_logs[0].after["not_selected"] == [bid_b_id]

    again = client.post(f"/api/procurement/rfps/{rfp_id}/award", json={"bid_id": bid_b_id}, headers=buyer_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "RFP has already been awarded"

    # Losing mills still see the RFP they bid on after it leaves OPEN.
    follow_up = client.get(f"/api/procurement/rfps/{rfp_id}", headers=auth_headers(manager_b))
    assert follow_up.status_code == 200

    orders = client.get("/api/procurement/purchase-orders", headers=auth_headers(manager_b))
    assert orders.json()["data"]["pagination"]["total"] == 0


def test_withdrawn_bid_frees_the_mill_to_bid_again(client, make_mill, make_user, auth_headers):
    buyer = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=make_mill())
    rfp_id = client.post("/api/procurement/rfps", json=RFP, headers=auth_headers(buyer)).json()["data"]["id"]
    client.post(f"/api/procurement/rfps/{rfp_id}/publish", headers=auth_headers(buyer))
    headers = auth_headers(manager)

    bid_id = client.post("/api/procurement/bids", json=_bid(rfp_id, 40), headers=headers).json()["data"]["id"]
    withdrawn = client.post(f"/api/procurement/bids/{bid_id}/withdraw", headers=headers)
    assert withdrawn.json()["data"]["status"] == "WITHDRAWN"
    assert withdrawn.json()["data"]["withdrawn_at"] is not None

    resubmitted = client.post("/api/procurement/bids", json=_bid(rfp_id, 41), headers=headers)
    assert resubmitted.status_code == 201
