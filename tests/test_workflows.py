import pytest
from bson import ObjectId
from werkzeug.exceptions import BadRequest, Conflict, NotFound

from marketplace.workflows import (
    PRODUCT_FIELDS,
    append_community_event,
    build_sparse_update,
    create_product,
    merge_community_event,
    product_scope,
    replace_specifications,
    set_subscription,
    update_order_status,
    update_product_fields,
    upsert_specification,
)


@pytest.fixture
def tomato_scope(marketplace):
    return product_scope(marketplace["tomatoes"], marketplace["sunny"])


def _specifications(db, product_id):
    return db.products.find_one({"_id": product_id})["specifications"]


def test_upsert_with_known_id_merges_single_entry(db, marketplace, tomato_scope):
    spec_id = upsert_specification(
        db, tomato_scope, {"value": "TOM-02", "unit": "code"}, str(marketplace["sku_spec"])
    )

    assert spec_id == marketplace["sku_spec"]
    specifications = _specifications(db, marketplace["tomatoes"])
    assert specifications[0] == {
        "_id": marketplace["sku_spec"],
        "name": "sku",
        "value": "TOM-02",
        "unit": "code",
    }
    assert specifications[1] == {"_id": marketplace["weight_spec"], "name": "weight", "value": "1kg"}


@pytest.mark.parametrize("spec_id", [None, "not-an-id", str(ObjectId())])
def test_upsert_without_matching_id_appends(db, marketplace, tomato_scope, spec_id):
    new_id = upsert_specification(db, tomato_scope, {"name": "origin", "value": "Valley"}, spec_id)

    specifications = _specifications(db, marketplace["tomatoes"])
    assert len(specifications) == 3
    assert specifications[-1] == {"_id": new_id, "name": "origin", "value": "Valley"}


def test_upsert_requires_owned_product(db, marketplace):
    foreign_scope = product_scope(marketplace["tomatoes"], marketplace["bread"])
    with pytest.raises(NotFound):
        upsert_specification(db, foreign_scope, {"name": "x", "value": "y"})


def test_upsert_rejects_operator_keys(db, tomato_scope):
    with pytest.raises(BadRequest):
        upsert_specification(db, tomato_scope, {"$set": {"name": "x"}})


def test_replace_discards_previous_entries(db, marketplace, tomato_scope):
    entries = replace_specifications(db, tomato_scope, [{"name": "color", "value": "red"}])

    specifications = _specifications(db, marketplace["tomatoes"])
    assert [spec["name"] for spec in specifications] == ["color"]
    assert isinstance(specifications[0]["_id"], ObjectId)
    assert specifications[0]["_id"] == entries[0]["_id"]


def test_sparse_update_keeps_absent_fields(db, marketplace, tomato_scope):
    changes = build_sparse_update({"name": None, "category": "B", "shortDesc": "  "}, PRODUCT_FIELDS)
    assert changes == {"category": "B"}

    update_product_fields(db, tomato_scope, changes)
    product = db.products.find_one({"_id": marketplace["tomatoes"]})
    assert product["name"] == "Heirloom Tomatoes"
    assert product["category"] == "B"
    assert product["shortDesc"] == "Sweet and ripe"


def test_sparse_update_parses_form_values():
    changes = build_sparse_update(
        {"deliveryTypes": '["Near By", "Shipping"]', "soldByUnit": "true", "status": "Active"},
        PRODUCT_FIELDS,
    )
    assert changes == {
        "deliveryTypes": ["Near By", "Shipping"],
        "soldByUnit": True,
        "status": "active",
    }
    with pytest.raises(BadRequest):
        build_sparse_update({"status": "archived"}, PRODUCT_FIELDS)


def test_subscription_can_be_cleared(db, marketplace):
    scope = product_scope(marketplace["veg_box"], marketplace["sunny"])
    set_subscription(db, scope, None)
    assert db.products.find_one({"_id": marketplace["veg_box"]})["subscription"] is None


def test_create_product_starts_inactive(db, marketplace):
    product = create_product(
        db, marketplace["bread"], {"name": "Rye", "status": "active", "deliveryTypes": "Near By"}
    )

    assert product["status"] == "inactive"
    assert product["id"] == "5"
    assert product["deliveryTypes"] == ["Near By"]
    assert product["vendor"] == marketplace["bread"]
    assert db.vendors.find_one({"_id": marketplace["bread"]})["isProduct"] is True


def test_append_event_defaults_status(db, marketplace):
    event = append_community_event(db, marketplace["community"], {"title": "Bake-off"})
    overridden = append_community_event(
        db, marketplace["community"], {"title": "Closed day", "status": "Cancelled"}
    )

    events = db.communities.find_one({"_id": marketplace["community"]})["events"]
    assert [item["title"] for item in events] == ["Harvest fair", "Bake-off", "Closed day"]
    assert events[1]["status"] == "Active"
    assert events[1]["_id"] == event["_id"]
    assert overridden["status"] == "Cancelled"


def test_merge_event_touches_only_match(db, marketplace):
    second = append_community_event(db, marketplace["community"], {"title": "Bake-off"})
    merge_community_event(
        db, marketplace["community"], str(marketplace["event"]), {"status": "Closed"}
    )

    events = db.communities.find_one({"_id": marketplace["community"]})["events"]
    assert events[0] == {"_id": marketplace["event"], "status": "Closed", "title": "Harvest fair"}
    assert events[1] == second

    with pytest.raises(NotFound):
        merge_community_event(db, marketplace["community"], str(ObjectId()), {"status": "x"})


def test_order_status_transitions(db, marketplace):
    order_id = db.orders.insert_one(
        {"orderID": 7, "vendorID": marketplace["sunny"], "status": "pending"}
    ).inserted_id

    update_order_status(db, marketplace["sunny"], order_id, "Shipped")
    assert db.orders.find_one({"_id": order_id})["status"] == "shipped"

    with pytest.raises(BadRequest):
        update_order_status(db, marketplace["sunny"], order_id, "lost")
    with pytest.raises(NotFound):
        update_order_status(db, marketplace["bread"], order_id, "delivered")

    update_order_status(db, marketplace["sunny"], order_id, "delivered")
    with pytest.raises(Conflict):
        update_order_status(db, marketplace["sunny"], order_id, "pending")
