"""Denormalized, display-ready views of products, communities and orders.

Every view resolves its joins with bulk ``$in`` lookups against the related
collections and assembles the result in Python. Output records are default
filled so that no display field is ever missing.
"""
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from werkzeug.exceptions import NotFound

from marketplace.errors import ProductGraphError
from marketplace.filters import (
    FEATURED_PRODUCT_LIMIT,
    CommunityQuery,
    PublicProductQuery,
    VendorProductQuery,
    community_filter,
    price_range,
    public_product_filter,
    public_product_sort,
    substring_pattern,
    vendor_product_filter,
    vendor_product_sort,
)
from marketplace.serializers import normalize_object_id_value, serialize_document

LOCAL_SUBSCRIPTIONS = "Local Subscriptions"
NEAR_BY = "Near By"
SUBSCRIPTION_TAG = "Subscription"
SKU_SPECIFICATION = "sku"

PROFILE_PROJECTION = {
    "name": 1,
    "code": 1,
    "slug": 1,
    "images": 1,
    "shortDesc": 1,
    "longDesc": 1,
    "announcement": 1,
}
PUBLIC_VENDOR_PROJECTION = {"stripeAccountId": 0, "bankOnboarding": 0}


def _value_or(value, default):
    return default if value is None else value


def derive_tags(delivery_types, subscription) -> List[str]:
    delivery_types = delivery_types or []
    if LOCAL_SUBSCRIPTIONS in delivery_types:
        return [SUBSCRIPTION_TAG, NEAR_BY]
    if NEAR_BY in delivery_types:
        return [NEAR_BY]
    if subscription is not None:
        return [SUBSCRIPTION_TAG]
    return []


def representative_inventory(inventories: Iterable[Dict]) -> Optional[Dict]:
    for inventory in inventories or []:
        if inventory.get("image") is not None:
            return inventory
    return None


def first_specification_value(specifications, name: str):
    for specification in specifications or []:
        if isinstance(specification, dict) and specification.get("name") == name:
            return specification.get("value")
    return None


def group_by(documents: Iterable[Dict], key: str) -> Dict[object, List[Dict]]:
    grouped: Dict[object, List[Dict]] = {}
    for document in documents:
        grouped.setdefault(document.get(key), []).append(document)
    return grouped


def fetch_by_ids(collection, ids, projection=None) -> Dict[ObjectId, Dict]:
    normalized_ids: List[ObjectId] = []
    seen = set()
    for value in ids or []:
        object_id = normalize_object_id_value(value) if value is not None else None
        if object_id is None or object_id in seen:
            continue
        seen.add(object_id)
        normalized_ids.append(object_id)
    if not normalized_ids:
        return {}
    cursor = collection.find({"_id": {"$in": normalized_ids}}, projection)
    return {document["_id"]: document for document in cursor}


def inventories_by_product(db, product_ids: List[ObjectId]) -> Dict[object, List[Dict]]:
    if not product_ids:
        return {}
    cursor = db.inventories.find({"productId": {"$in": product_ids}}).sort("_id", 1)
    return group_by(cursor, "productId")


# Products


def public_product_card(product: Dict, vendor: Optional[Dict], inventories) -> Dict:
    inventory = representative_inventory(inventories) or {}
    vendor = vendor or {}
    return serialize_document(
        {
            "_id": _value_or(product.get("_id"), ""),
            "category": _value_or(product.get("category"), ""),
            "name": _value_or(product.get("name"), ""),
            "shopName": _value_or(vendor.get("shopName"), ""),
            "price": _value_or(inventory.get("price"), 0),
            "image": _value_or(inventory.get("image"), ""),
            "tags": derive_tags(product.get("deliveryTypes"), product.get("subscription")),
        }
    )


def list_public_products(db, query: PublicProductQuery) -> List[Dict]:
    vendor_scope = None
    if query.community is not None or query.vendor is not None:
        vendor_query: Dict = {}
        if query.community is not None:
            vendor_query["community"] = query.community
        if query.vendor is not None:
            vendor_query["_id"] = query.vendor
        vendor_scope = [document["_id"] for document in db.vendors.find(vendor_query, {"_id": 1})]

    search_vendor_ids: List[ObjectId] = []
    search = substring_pattern(query.search)
    if search is not None:
        search_vendor_ids = [
            document["_id"] for document in db.vendors.find({"shopName": search}, {"_id": 1})
        ]

    priced_product_ids = None
    if query.has_price_range:
        priced_product_ids = db.inventories.distinct(
            "productId", {"price": price_range(query.min_price, query.max_price)}
        )

    product_query = public_product_filter(
        query,
        vendor_scope=vendor_scope,
        search_vendor_ids=search_vendor_ids,
        priced_product_ids=priced_product_ids,
    )
    cursor = db.products.find(product_query).sort(public_product_sort(query.sort))
    if query.featured:
        cursor = cursor.limit(FEATURED_PRODUCT_LIMIT)
    products = list(cursor)

    inventories = inventories_by_product(db, [product["_id"] for product in products])
    vendors = fetch_by_ids(
        db.vendors, [product.get("vendor") for product in products], {"shopName": 1}
    )
    return [
        public_product_card(
            product,
            vendors.get(product.get("vendor")),
            inventories.get(product["_id"], []),
        )
        for product in products
    ]


def vendor_product_row(product: Dict, inventories) -> Dict:
    inventory = representative_inventory(inventories) or {}
    sku = first_specification_value(product.get("specifications"), SKU_SPECIFICATION)
    return serialize_document(
        {
            "_id": _value_or(product.get("_id"), ""),
            "name": _value_or(product.get("name"), ""),
            "status": _value_or(product.get("status"), ""),
            "image": _value_or(inventory.get("image"), ""),
            "sku": _value_or(sku, ""),
            "createdAt": _value_or(product.get("createdAt"), ""),
        }
    )


def list_vendor_products(db, vendor_id: ObjectId, query: VendorProductQuery) -> List[Dict]:
    cursor = db.products.find(
        vendor_product_filter(vendor_id, query),
        {"name": 1, "status": 1, "specifications": 1, "createdAt": 1},
    ).sort(vendor_product_sort(query.sort_by))
    products = list(cursor)
    inventories = inventories_by_product(db, [product["_id"] for product in products])
    rows = [
        vendor_product_row(product, inventories.get(product["_id"], []))
        for product in products
    ]

    # The sku filter applies to the projected value, not the raw specification list.
    sku_pattern = substring_pattern(query.sku)
    if sku_pattern is not None:
        rows = [row for row in rows if sku_pattern.search(str(row["sku"]))]
    return rows


def vendor_product(db, vendor_id: ObjectId, product_id: ObjectId) -> Dict:
    product = db.products.find_one({"_id": product_id, "vendor": vendor_id})
    if not product:
        raise NotFound("Product not found.")
    return product


def _style_inventory_ids(styles: List[Dict]) -> List[ObjectId]:
    inventory_ids: List[ObjectId] = []
    for style in styles:
        for raw_id in style.get("inventories") or []:
            inventory_id = normalize_object_id_value(raw_id)
            if inventory_id is not None and inventory_id not in inventory_ids:
                inventory_ids.append(inventory_id)
    return inventory_ids


def _assemble_customer_detail(db, product: Dict) -> Optional[Dict]:
    vendor = db.vendors.find_one({"_id": product.get("vendor")}) if product.get("vendor") else None
    if not vendor:
        return None
    community = (
        db.communities.find_one({"_id": vendor.get("community")}, {"password": 0})
        if vendor.get("community")
        else None
    )
    if not community:
        return None

    styles = list(db.styles.find({"productId": product["_id"]}).sort("_id", 1))
    inventory_ids = _style_inventory_ids(styles)
    inventory_documents = fetch_by_ids(
        db.inventories, inventory_ids, {"attrs": 1, "image": 1, "price": 1}
    )
    inventories = [
        {
            "_id": inventory_id,
            "attrs": inventory_documents[inventory_id].get("attrs"),
            "image": inventory_documents[inventory_id].get("image"),
            "price": inventory_documents[inventory_id].get("price"),
        }
        for inventory_id in inventory_ids
        if inventory_id in inventory_documents
    ]

    return {
        "more": {
            "shortDesc": product.get("shortDesc"),
            "longDesc": product.get("longDesc"),
            "disclaimer": product.get("disclaimer"),
            "specifications": product.get("specifications") or [],
        },
        "order": {
            "name": product.get("name"),
            "vendor": {"_id": vendor["_id"], "shopName": vendor.get("shopName")},
            "community": {
                "_id": community["_id"],
                "name": community.get("name"),
                "slug": community.get("slug"),
                "images": {"logoUrl": (community.get("images") or {}).get("logoUrl")},
            },
            "styles": styles,
            "inventories": inventories,
            "customization": product.get("customization"),
            "subscription": product.get("subscription"),
            "soldByUnit": product.get("soldByUnit"),
            "deliveryTypes": product.get("deliveryTypes") or [],
        },
    }


def customer_product_detail(db, product_id: ObjectId) -> Dict:
    """Product page payload for shoppers.

    An unknown id is a plain NotFound. A product whose vendor or community no
    longer resolves yields zero roots, which is reported as ProductGraphError.
    """
    products = list(db.products.find({"_id": product_id}))
    if not products:
        raise NotFound("Product not found.")

    roots = [
        detail
        for detail in (_assemble_customer_detail(db, product) for product in products)
        if detail is not None
    ]
    if len(roots) != 1:
        raise ProductGraphError()
    return serialize_document(roots[0])


def product_styles(db, product_id: ObjectId, style_id: Optional[str] = None):
    styles = list(db.styles.find({"productId": product_id}).sort("_id", 1))
    if style_id:
        for style in styles:
            if str(style["_id"]) == style_id:
                return serialize_document(style)
        raise NotFound("Style not found.")
    return serialize_document(styles)


# Communities


def community_profile(db, community_id: ObjectId) -> Optional[Dict]:
    return db.communities.find_one({"_id": community_id}, PROFILE_PROJECTION)


def community_by_id(db, community_id: ObjectId) -> Dict:
    community = db.communities.find_one({"_id": community_id}, {"password": 0})
    if not community:
        raise NotFound("Community not found.")
    return serialize_document(community)


def community_by_code(db, code: str) -> Dict:
    community = db.communities.find_one(
        {"code": code},
        {"name": 1, "images": 1, "shortDesc": 1, "categories": 1, "slug": 1},
    )
    if not community:
        raise NotFound("Community not found.")

    category_ids = community.get("categories") or []
    categories = fetch_by_ids(db.categories, category_ids)
    community["categories"] = [
        categories[category_id]
        for category_id in (normalize_object_id_value(value) for value in category_ids)
        if category_id in categories
    ]
    return serialize_document(community)


def community_by_slug(db, slug: str) -> Dict:
    community = db.communities.find_one(
        {"slug": slug},
        {"name": 1, "shortDesc": 1, "announcement": 1, "images": 1, "events": 1},
    )
    if not community:
        raise NotFound("Community not found.")
    community["vendors"] = list(
        db.vendors.find({"community": community["_id"]}, PUBLIC_VENDOR_PROJECTION)
    )
    return serialize_document(community)


def list_communities(db, query: CommunityQuery) -> List[Dict]:
    communities = list(
        db.communities.find(
            community_filter(query),
            {"name": 1, "slug": 1, "shortDesc": 1, "images": 1},
        )
    )
    vendors = group_by(
        db.vendors.find(
            {"community": {"$in": [community["_id"] for community in communities]}},
            {"community": 1},
        ),
        "community",
    )
    for community in communities:
        community["vendors"] = [
            {"_id": vendor["_id"]} for vendor in vendors.get(community["_id"], [])
        ]
    return serialize_document(communities)


def list_community_events(db, community: Dict) -> List[Dict]:
    events = community.get("events") or []
    event_ids = [event.get("_id") for event in events if event.get("_id") is not None]
    attendees = group_by(db.customerevents.find({"event": {"$in": event_ids}}), "event")
    return serialize_document(
        [{**event, "attendees": attendees.get(event.get("_id"), [])} for event in events]
    )


def find_community_event(community: Dict, event_id: str) -> Dict:
    """Scan the events already loaded on ``community``; no query is issued."""
    for event in community.get("events") or []:
        if str(event.get("_id")) == event_id:
            return serialize_document(event)
    raise NotFound("Event not found.")


# Orders

ORDER_DEFAULTS = {
    "orderID": 0,
    "deliveryType": "",
    "deliveryInfo": {},
    "gift": {},
    "customer": {},
    "personalization": "",
    "product": {},
    "status": "",
    "orderDate": "",
}


def order_summary(order: Dict) -> Dict:
    summary = {key: _value_or(order.get(key), default) for key, default in ORDER_DEFAULTS.items()}
    summary["_id"] = order.get("_id")
    summary["vendorID"] = order.get("vendorID")
    summary["customerID"] = order.get("customerID")
    return serialize_document(summary)


def list_vendor_orders(db, vendor_id: ObjectId, status: Optional[str] = None) -> List[Dict]:
    order_query: Dict = {"vendorID": vendor_id}
    if status:
        order_query["status"] = status
    cursor = db.orders.find(order_query).sort("orderDate", -1)
    return [order_summary(order) for order in cursor]
