from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.logistics import models as logistics_models
from fortifymis.apps.notifications import models as notification_models
from fortifymis.apps.procurement import models as procurement_models


def _purchase_order(db_session, buyer, mill):
    rfp = procurement_models.RFP(
        reference_number="RFP-2026-000001",
        buyer_id=buyer.id,
        title="Fortified flour",
        commodity="MAIZE",
        total_volume=500,
        unit_packaging=procurement_models.UnitPackaging.BAGS_50KG,
        delivery_locations=[{"name": "Depot"}],
        bid_deadline=datetime(2026, 5, 1, tzinfo=timezone.utc),
        status=procurement_models.RFPStatus.AWARDED,
    )
    db_session.add(rfp)
    db_session.flush()
    bid = procurement_models.Bid(
        rfp_id=rfp.id,
        mill_id=mill.id,
        unit_price=40,
        total_product_cost=20000,
        total_bid_amount=20000,
        price_validity_days=30,
        status=procurement_models.BidStatus.AWARDED,
    )
    db_session.add(bid)
    db_session.flush()
    order = procurement_models.PurchaseOrder(
        po_number="PO-2026-000001",
        rfp_id=rfp.id,
        bid_id=bid.id,
        buyer_id=buyer.id,
        mill_id=mill.id,
        quantity=500,
        unit_price=40,
        total_amount=20000,
        status=procurement_models.PurchaseOrderStatus.ISSUED,
    )
    db_session.add(order)
    db_session.commit()
    return order


def _trip_payload(driver, **overrides):
    payload = {
        "driver_id": driver.id,
        "scheduled_date": "2026-06-01T06:00:00+00:00",
        "vehicle_info": {"type": "TRUCK", "capacity": 10, "plate_number": "KDA 123A"},
        "orders": [
            {"address": "School A", "location": {"latitude": 0.0, "longitude": 1.0}, "quantity": 200},
            {"address": "School B", "location": {"latitude": 0.0, "longitude": 2.0}, "quantity": 300},
        ],
    }
    payload.update(overrides)
    return payload


def test_trip_runs_from_schedule_to_completion(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    driver = make_user(account_models.UserRole.DRIVER_LOGISTICS)
    buyer = make_user(account_models.UserRole.INSTITUTIONAL_BUYER)
    order = _purchase_order(db_session, buyer, mill)
    driver_headers = auth_headers(driver)

    created = client.post(
        "/api/logistics/trips",
        json=_trip_payload(driver, purchase_order_id=order.id),
        headers=auth_headers(manager),
    )
    assert created.status_code == 201
    trip = created.json()["data"]
    assert trip["trip_number"].startswith("TRIP-")
    assert trip["mill_id"] == mill.id
    assert trip["stops"] == 2
    assert [stop["sequence"] for stop in trip["delivery_sequence"]] == [1, 2]

    inbox = db_session.query(notification_models.Notification).filter_by(user_id=driver.id).all()
    assert [n.type for n in inbox] == ["TRIP_ASSIGNED"]

    not_started = client.post(
        "/api/logistics/tracking",
        json={"trip_id": trip["id"], "latitude": 0.0, "longitude": 0.5},
        headers=driver_headers,
    )
    assert not_started.status_code == 400
    assert not_started.json()["error"] == "Can only update tracking for trips in progress"

    started = client.post(
        f"/api/logistics/trips/{trip['id']}/start",
        json={"start_location": {"latitude": 0.0, "longitude": 0.0}, "fuel_level": 80},
        headers=driver_headers,
    )
    assert started.status_code == 200
    assert started.json()["data"]["status"] == "IN_PROGRESS"
    db_session.expire_all()
    assert db_session.get(procurement_models.PurchaseOrder, order.id).status == (
        procurement_models.PurchaseOrderStatus.IN_DELIVERY
    )

    tracked = client.post(
        "/api/logistics/tracking",
        json={"trip_id": trip["id"], "latitude": 0.0, "longitude": 1.0, "speed": 45},
        headers=driver_headers,
    )
    assert tracked.status_code == 201
    assert tracked.json()["message"] == "Location updated"

    trail = client.get(f"/api/logistics/trips/{trip['id']}/tracking", headers=auth_headers(manager)).json()["data"]
    assert len(trail["points"]) == 2
    assert trail["distance_km"] == pytest.approx(111.195, abs=0.001)
    assert trail["current_location"]["longitude"] == 1.0

    completed = client.post(
        f"/api/logistics/trips/{trip['id']}/complete",
        json={"end_location": {"latitude": 0.0, "longitude": 2.0}, "fuel_used": 12.5},
        headers=driver_headers,
    )
    assert completed.status_code == 200
    data = completed.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["total_distance_km"] == pytest.approx(222.39, abs=0.001)
    assert data["completed_stops"] == 2
    assert all(stop["completed"] for stop in data["delivery_sequence"])
    assert data["end_time"] is not None

    db_session.expire_all()
    assert db_session.get(procurement_models.PurchaseOrder, order.id).status == (
        procurement_models.PurchaseOrderStatus.DELIVERED
    )

    buyer_view = client.get(f"/api/logistics/trips/{trip['id']}", headers=auth_headers(buyer))
    assert buyer_view.status_code == 200

    restart = client.post(
        f"/api/logistics/trips/{trip['id']}/start",
        json={"start_location": {"latitude": 0.0, "longitude": 0.0}},
        headers=driver_headers,
    )
    assert restart.status_code == 400


def test_only_drivers_can_be_assigned(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)

    response = client.post("/api/logistics/trips", json=_trip_payload(operator), headers=auth_headers(manager))

    assert response.status_code == 400
    assert response.json()["error"] == "Assigned user is not a driver"
    assert response.json()["details"] == [{"field": "driver_id", "message": "must reference a DRIVER_LOGISTICS user"}]


def test_drivers_only_touch_their_own_trips(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    driver = make_user(account_models.UserRole.DRIVER_LOGISTICS)
    other_driver = make_user(account_models.UserRole.DRIVER_LOGISTICS)
    trip_id = client.post(
        "/api/logistics/trips", json=_trip_payload(driver), headers=auth_headers(manager)
    ).json()["data"]["id"]

    hidden = client.get(f"/api/logistics/trips/{trip_id}", headers=auth_headers(other_driver))
    assert hidden.status_code == 403

    listing = client.get("/api/logistics/trips", headers=auth_headers(other_driver))
    assert listing.json()["data"]["pagination"]["total"] == 0

    cancelled = client.post(
        f"/api/logistics/trips/{trip_id}/cancel",
        json={"reason": "Vehicle breakdown"},
        headers=auth_headers(manager),
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "CANCELLED"
    assert cancelled.json()["data"]["notes"] == "Vehicle breakdown"

    db_session.expire_all()
    trip = db_session.get(logistics_models.DeliveryTrip, trip_id)
    assert trip.end_time is not None
    driver_inbox = [
        n.type for n in db_session.query(notification_models.Notification).filter_by(user_id=driver.id).all()
    ]
    assert sorted(driver_inbox) == ["TRIP_ASSIGNED", "TRIP_CANCELLED"]
