from datetime import datetime

import mongomock
import pytest
from bson import ObjectId

from marketplace import create_app
from marketplace.auth import issue_token
from marketplace.extensions import mongo

JWT_TEST_SECRET = "marketplace-test-secret-key-0123456789abcdef"


@pytest.fixture
def app(tmp_path, monkeypatch):
    app = create_app(
        {
            "TESTING": True,
            "JWT_SECRET_KEY": JWT_TEST_SECRET,
            "MONGO_URI": "mongodb://localhost:27017/marketplace_test",
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "BCRYPT_LOG_ROUNDS": 4,
            "STRIPE_SECRET_KEY": "sk_test_marketplace",
            "STRIPE_WEBHOOK_SECRET": "whsec_marketplace",
            "FRONTEND_URL": "https://market.test",
        }
    )
    monkeypatch.setattr(mongo, "db", mongomock.MongoClient().marketplace_test)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return mongo.db


@pytest.fixture
def auth_header(app):
    def build(actor_id, role):
        with app.app_context():
            token = issue_token(actor_id, role)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def marketplace(db):
    """Two communities, three vendors and four products with inventories and a style."""
    ids = {
        "category": ObjectId(),
        "community": ObjectId(),
        "other_community": ObjectId(),
        "sunny": ObjectId(),
        "bread": ObjectId(),
        "faraway": ObjectId(),
        "tomatoes": ObjectId(),
        "sourdough": ObjectId(),
        "veg_box": ObjectId(),
        "honey": ObjectId(),
        "tomato_plain": ObjectId(),
        "tomato_red": ObjectId(),
        "bread_inventory": ObjectId(),
        "box_inventory": ObjectId(),
        "red_style": ObjectId(),
        "sku_spec": ObjectId(),
        "weight_spec": ObjectId(),
        "event": ObjectId(),
    }

    db.categories.insert_one({"_id": ids["category"], "name": "Produce"})
    db.communities.insert_many(
        [
            {
                "_id": ids["community"],
                "name": "Green Valley",
                "email": "organizer@greenvalley.test",
                "code": "GV1",
                "slug": "green-valley",
                "shortDesc": "Local growers",
                "longDesc": "Farmers and bakers of the valley",
                "images": {"logoUrl": "https://cdn.test/logo.png"},
                "categories": [ids["category"]],
                "status": "active",
                "signup_at": datetime(2024, 1, 10),
                "events": [
                    {"_id": ids["event"], "status": "Active", "title": "Harvest fair"}
                ],
            },
            {
                "_id": ids["other_community"],
                "name": "Harbor Town",
                "code": "HT1",
                "slug": "harbor-town",
                "images": {},
                "status": "inactive",
                "signup_at": datetime(2024, 3, 5),
                "events": [],
            },
        ]
    )
    db.vendors.insert_many(
        [
            {
                "_id": ids["sunny"],
                "shopName": "Sunny Farm",
                "community": ids["community"],
                "stripeAccountId": "acct_sunny",
            },
            {"_id": ids["bread"], "shopName": "Bread Corner", "community": ids["community"]},
            {
                "_id": ids["faraway"],
                "shopName": "Far Away Goods",
                "community": ids["other_community"],
            },
        ]
    )
    db.products.insert_many(
        [
            {
                "_id": ids["tomatoes"],
                "id": "1",
                "name": "Heirloom Tomatoes",
                "category": "Produce",
                "vendor": ids["sunny"],
                "shortDesc": "Sweet and ripe",
                "longDesc": "Picked this morning",
                "disclaimer": "",
                "deliveryTypes": ["Local Subscriptions"],
                "subscription": None,
                "status": "active",
                "soldByUnit": True,
                "customization": {"label": "Gift note"},
                "specifications": [
                    {"_id": ids["sku_spec"], "name": "sku", "value": "TOM-01"},
                    {"_id": ids["weight_spec"], "name": "weight", "value": "1kg"},
                ],
                "createdAt": datetime(2024, 2, 1),
            },
            {
                "_id": ids["sourdough"],
                "id": "2",
                "name": "Sourdough Loaf",
                "category": "Bakery",
                "vendor": ids["bread"],
                "deliveryTypes": ["Near By"],
                "subscription": None,
                "status": "inactive",
                "specifications": [{"_id": ObjectId(), "name": "sku", "value": "BRD-7"}],
                "createdAt": datetime(2024, 2, 2),
            },
            {
                "_id": ids["veg_box"],
                "id": "3",
                "name": "Weekly Veg Box",
                "category": "Produce",
                "vendor": ids["sunny"],
                "deliveryTypes": [],
                "subscription": {"cycle": "weekly"},
                "status": "active",
                "specifications": [],
                "createdAt": datetime(2024, 2, 3),
            },
            {
                "_id": ids["honey"],
                "id": "4",
                "name": "Honey Jar",
                "category": "Pantry",
                "vendor": ids["faraway"],
                "deliveryTypes": [],
                "subscription": None,
                "status": "active",
                "specifications": [],
                "createdAt": datetime(2024, 2, 4),
            },
        ]
    )
    db.inventories.insert_many(
        [
            {"_id": ids["tomato_plain"], "productId": ids["tomatoes"], "price": 3, "image": None},
            {
                "_id": ids["tomato_red"],
                "productId": ids["tomatoes"],
                "styleId": ids["red_style"],
                "price": 4.5,
                "image": "tomato.png",
                "attrs": {"color": "red"},
            },
            {
                "_id": ids["bread_inventory"],
                "productId": ids["sourdough"],
                "price": 6,
                "image": "bread.png",
            },
            {
                "_id": ids["box_inventory"],
                "productId": ids["veg_box"],
                "price": 25,
                "image": "box.png",
            },
        ]
    )
    db.styles.insert_one(
        {
            "_id": ids["red_style"],
            "productId": ids["tomatoes"],
            "name": "Red",
            "inventories": [ids["tomato_red"]],
        }
    )
    return ids
