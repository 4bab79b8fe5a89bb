"""Partial updates of products, communities and orders.

Each logical change is a single atomic Mongo command (``$set``, ``$push`` or a
positional ``$`` update) so concurrent edits to different fields of the same
document never overwrite each other.
"""
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from werkzeug.exceptions import BadRequest, Conflict, NotFound

from marketplace.serializers import (
    normalize_email,
    normalize_object_id_value,
    parse_bool,
    parse_json_list,
    slugify,
)

INACTIVE = "inactive"
ACTIVE = "active"
PRODUCT_STATUSES = (ACTIVE, INACTIVE)
DEFAULT_EVENT_STATUS = "Active"

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
FINAL_ORDER_STATUSES = ("delivered", "cancelled")


def _product_status(value) -> str:
    status = str(value).strip().lower()
    if status not in PRODUCT_STATUSES:
        raise BadRequest("Status must be either active or inactive.")
    return status


def _delivery_types(value) -> List[str]:
    return [str(item).strip() for item in parse_json_list(value) if str(item).strip()]


def _text(value) -> str:
    return str(value).strip()


PRODUCT_FIELDS: Dict[str, Optional[Callable]] = {
    "name": _text,
    "category": _text,
    "shortDesc": _text,
    "longDesc": _text,
    "disclaimer": _text,
    "deliveryTypes": _delivery_types,
    "soldByUnit": parse_bool,
    "tax": None,
    "status": _product_status,
}

# New products always start inactive, so a client status is ignored on create.
PRODUCT_CREATE_FIELDS = {
    field: parser for field, parser in PRODUCT_FIELDS.items() if field != "status"
}

COMMUNITY_PROFILE_FIELDS: Dict[str, Optional[Callable]] = {
    "name": _text,
    "phone": _text,
    "shortDesc": _text,
    "longDesc": _text,
}

COMMUNITY_ADMIN_FIELDS: Dict[str, Optional[Callable]] = {
    "name": _text,
    "email": normalize_email,
    "phone": _text,
    "code": _text,
    "slug": slugify,
    "shortDesc": _text,
    "longDesc": _text,
    "status": _text,
}


def build_sparse_update(payload: Mapping, fields: Mapping[str, Optional[Callable]]) -> Dict:
    """Collect the fields present in ``payload``; missing or blank values are skipped."""
    changes: Dict = {}
    for field, parser in fields.items():
        value = payload.get(field)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        changes[field] = parser(value) if parser else value
    return changes


def clean_subdocument(fields, label: str) -> Dict:
    if not isinstance(fields, dict):
        raise BadRequest(f"The {label} must be an object.")
    cleaned = {}
    for key, value in fields.items():
        key = str(key)
        if key in ("_id", "id"):
            continue
        if not key or key.startswith("$") or "." in key:
            raise BadRequest(f"Invalid {label} field: {key!r}.")
        cleaned[key] = value
    return cleaned


# Products


def product_scope(product_id: ObjectId, vendor_id: ObjectId) -> Dict:
    return {"_id": product_id, "vendor": vendor_id}


def require_product(db, scope: Dict):
    if db.products.find_one(scope, {"_id": 1}) is None:
        raise NotFound("Product not found.")


def create_product(db, vendor_id: ObjectId, payload: Mapping, nutrition_url: str = "") -> Dict:
    fields = build_sparse_update(payload, PRODUCT_CREATE_FIELDS)
    if not fields.get("name"):
        raise BadRequest("A product name is required.")

    now = datetime.utcnow()
    document = {
        "category": "",
        "shortDesc": "",
        "longDesc": "",
        "disclaimer": "",
        "deliveryTypes": [],
        "soldByUnit": False,
        "specifications": [],
        "customization": {},
        "subscription": None,
        **fields,
        "vendor": vendor_id,
        "nutrition": nutrition_url,
        "status": INACTIVE,
        "id": str(db.products.count_documents({}) + 1),
        "createdAt": now,
        "updatedAt": now,
    }
    result = db.products.insert_one(document)
    document["_id"] = result.inserted_id

    db.vendors.update_one(
        {"_id": vendor_id, "isProduct": {"$ne": True}}, {"$set": {"isProduct": True}}
    )
    return document


def update_product_fields(db, scope: Dict, changes: Dict) -> None:
    if not changes:
        require_product(db, scope)
        return
    result = db.products.update_one(
        scope, {"$set": {**changes, "updatedAt": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise NotFound("Product not found.")


def upsert_specification(db, scope: Dict, specification, spec_id: Optional[str] = None) -> ObjectId:
    """Merge ``specification`` into the entry with ``spec_id`` or append it."""
    fields = clean_subdocument(specification, "specification")
    if not fields:
        raise BadRequest("Specification fields are required.")
    require_product(db, scope)

    now = datetime.utcnow()
    target_id = normalize_object_id_value(spec_id) if spec_id else None
    if target_id is not None:
        merge = {f"specifications.$.{key}": value for key, value in fields.items()}
        merge["updatedAt"] = now
        result = db.products.update_one(
            {**scope, "specifications._id": target_id}, {"$set": merge}
        )
        if result.matched_count:
            return target_id

    entry = {"_id": ObjectId(), **fields}
    result = db.products.update_one(
        scope, {"$push": {"specifications": entry}, "$set": {"updatedAt": now}}
    )
    if result.matched_count == 0:
        raise NotFound("Product not found.")
    return entry["_id"]


def replace_specifications(db, scope: Dict, specifications) -> List[Dict]:
    if not isinstance(specifications, list):
        raise BadRequest("Specifications must be a list.")

    entries = []
    for raw in specifications:
        fields = clean_subdocument(raw, "specification")
        existing_id = normalize_object_id_value(raw.get("_id") or raw.get("id") or "")
        entries.append({"_id": existing_id or ObjectId(), **fields})

    result = db.products.update_one(
        scope, {"$set": {"specifications": entries, "updatedAt": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise NotFound("Product not found.")
    return entries


def set_customization(db, scope: Dict, customization) -> None:
    if not isinstance(customization, dict):
        raise BadRequest("Customization must be an object.")
    update_product_fields(db, scope, {"customization": customization})


def set_subscription(db, scope: Dict, subscription) -> None:
    if subscription is not None and not isinstance(subscription, dict):
        raise BadRequest("Subscription must be an object or null.")
    # Whole-value replace; null is a legitimate value here.
    result = db.products.update_one(
        scope, {"$set": {"subscription": subscription, "updatedAt": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise NotFound("Product not found.")


def delete_product(db, scope: Dict) -> Dict:
    product = db.products.find_one_and_delete(scope)
    if not product:
        raise NotFound("Product not found.")
    return product


# Communities


def create_community(db, fields: Dict, *, status: str = INACTIVE) -> Dict:
    document = {
        "shortDesc": "",
        "longDesc": "",
        "images": {},
        "events": [],
        **fields,
        "status": fields.get("status") or status,
        "signup_at": datetime.utcnow(),
    }
    if not document.get("slug"):
        document["slug"] = slugify(document.get("name"))
    result = db.communities.insert_one(document)
    document["_id"] = result.inserted_id
    return document


def update_community(db, community_id: ObjectId, changes: Dict) -> Dict:
    if changes:
        community = db.communities.find_one_and_update(
            {"_id": community_id},
            {"$set": changes},
            projection={"password": 0},
            return_document=ReturnDocument.AFTER,
        )
    else:
        community = db.communities.find_one({"_id": community_id}, {"password": 0})
    if not community:
        raise NotFound("Community not found.")
    return community


def set_announcement(db, community_id: ObjectId, text: str) -> Dict:
    return update_community(
        db,
        community_id,
        {"announcement": {"text": text, "updated_at": datetime.utcnow()}},
    )


def append_community_event(db, community_id: ObjectId, fields) -> Dict:
    event = {"_id": ObjectId(), "status": DEFAULT_EVENT_STATUS}
    event.update(clean_subdocument(fields, "event"))
    result = db.communities.update_one({"_id": community_id}, {"$push": {"events": event}})
    if result.matched_count == 0:
        raise NotFound("Community not found.")
    return event


def merge_community_event(db, community_id: ObjectId, event_id: str, fields) -> None:
    changes = clean_subdocument(fields, "event")
    target_id = normalize_object_id_value(event_id)
    if target_id is None:
        raise NotFound("Event not found.")
    if not changes:
        raise BadRequest("Event fields are required.")

    result = db.communities.update_one(
        {"_id": community_id, "events._id": target_id},
        {"$set": {f"events.$.{key}": value for key, value in changes.items()}},
    )
    if result.matched_count == 0:
        raise NotFound("Event not found.")


def delete_community(db, community_id: ObjectId) -> Dict:
    community = db.communities.find_one_and_delete(
        {"_id": community_id}, projection={"password": 0}
    )
    if not community:
        raise NotFound("Community not found.")
    return community


# Orders


def update_order_status(db, vendor_id: ObjectId, order_id: ObjectId, status) -> None:
    normalized = str(status or "").strip().lower()
    if normalized not in ORDER_STATUSES:
        raise BadRequest(f"Status must be one of: {', '.join(ORDER_STATUSES)}.")

    result = db.orders.update_one(
        {
            "_id": order_id,
            "vendorID": vendor_id,
            "status": {"$nin": list(FINAL_ORDER_STATUSES)},
        },
        {"$set": {"status": normalized}},
    )
    if result.matched_count:
        return

    order = db.orders.find_one({"_id": order_id, "vendorID": vendor_id}, {"status": 1})
    if not order:
        raise NotFound("Order not found.")
    raise Conflict(f"Order is already {order.get('status')}.")
