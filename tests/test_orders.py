from datetime import datetime

import pytest
from bson import ObjectId

from marketplace.auth import VENDOR_ROLE


@pytest.fixture
def orders(db, marketplace):
    first = db.orders.insert_one(
        {
            "orderID": 101,
            "vendorID": marketplace["sunny"],
            "customerID": ObjectId(),
            "status": "pending",
            "orderDate": datetime(2024, 6, 1),
            "product": {"name": "Heirloom Tomatoes", "quantity": 2},
        }
    ).inserted_id
    second = db.orders.insert_one(
        {
            "orderID": 102,
            "vendorID": marketplace["sunny"],
            "status": "delivered",
            "orderDate": datetime(2024, 6, 2),
        }
    ).inserted_id
    return {"pending": first, "delivered": second}


def test_vendor_orders(client, auth_header, marketplace, orders):
    headers = auth_header(marketplace["sunny"], VENDOR_ROLE)
    response = client.get("/orders/vendor", headers=headers)

    assert response.status_code == 200
    listed = response.get_json()["orders"]
    assert [order["orderID"] for order in listed] == [102, 101]
    assert listed[1]["product"]["quantity"] == 2
    assert listed[0]["deliveryInfo"] == {}

    pending = client.get("/orders/vendor?status=Pending", headers=headers).get_json()["orders"]
    assert [order["orderID"] for order in pending] == [101]

    other_vendor = client.get(
        "/orders/vendor", headers=auth_header(marketplace["bread"], VENDOR_ROLE)
    )
    assert other_vendor.get_json()["orders"] == []


def test_status_transitions(client, auth_header, db, marketplace, orders):
    headers = auth_header(marketplace["sunny"], VENDOR_ROLE)

    moved = client.put(
        f"/orders/{orders['pending']}/status", json={"status": "processing"}, headers=headers
    )
    assert moved.status_code == 200
    assert db.orders.find_one({"_id": orders["pending"]})["status"] == "processing"

    invalid = client.put(
        f"/orders/{orders['pending']}/status", json={"status": "teleported"}, headers=headers
    )
    assert invalid.status_code == 400

    final = client.put(
        f"/orders/{orders['delivered']}/status", json={"status": "pending"}, headers=headers
    )
    assert final.status_code == 409

    foreign = client.put(
        f"/orders/{orders['pending']}/status",
        json={"status": "shipped"},
        headers=auth_header(marketplace["bread"], VENDOR_ROLE),
    )
    assert foreign.status_code == 404

    assert client.put("/orders/nope/status", json={"status": "shipped"}, headers=headers).status_code == 400
