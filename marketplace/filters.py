"""Pure builders turning listing options into Mongo filter and sort documents.

Each options record is a plain dataclass with explicitly optional fields. The
builders never touch the database; the read models resolve any cross
collection id sets first and hand them in.
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from werkzeug.exceptions import BadRequest

from marketplace.serializers import (
    is_date_only,
    normalize_object_id_value,
    parse_bool,
    parse_iso_date,
    safe_float,
)

FEATURED_PRODUCT_LIMIT = 8
SUBSCRIPTION_TYPE = "subscription"

SortSpec = List[Tuple[str, int]]


def substring_pattern(text: Optional[str]) -> Optional[re.Pattern]:
    """Case-insensitive literal substring matcher, or None for an open filter."""
    candidate = str(text or "").strip()
    if not candidate:
        return None
    return re.compile(re.escape(candidate), re.IGNORECASE)


def price_range(min_price: Optional[float], max_price: Optional[float]) -> Dict:
    bounds: Dict[str, float] = {}
    if min_price is not None:
        bounds["$gte"] = min_price
    if max_price is not None:
        bounds["$lte"] = max_price
    return bounds


def _optional_object_id(args, key: str) -> Optional[ObjectId]:
    raw = (args.get(key) or "").strip()
    if not raw:
        return None
    object_id = normalize_object_id_value(raw)
    if object_id is None:
        raise BadRequest(f"Invalid {key} identifier.")
    return object_id


def _optional_price(args, key: str) -> Optional[float]:
    raw = (args.get(key) or "").strip()
    if not raw:
        return None
    value = safe_float(raw)
    if value is None:
        raise BadRequest(f"{key} must be a number.")
    return value


@dataclass
class PublicProductQuery:
    community: Optional[ObjectId] = None
    vendor: Optional[ObjectId] = None
    type: Optional[str] = None
    search: str = ""
    category: Optional[str] = None
    sort: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    featured: bool = False

    @classmethod
    def from_args(cls, args) -> "PublicProductQuery":
        return cls(
            community=_optional_object_id(args, "community"),
            vendor=_optional_object_id(args, "vendor"),
            type=(args.get("type") or "").strip() or None,
            search=(args.get("search") or "").strip(),
            category=(args.get("category") or "").strip() or None,
            sort=(args.get("sort") or "").strip() or None,
            min_price=_optional_price(args, "minPrice"),
            max_price=_optional_price(args, "maxPrice"),
            featured=parse_bool(args.get("featured")),
        )

    @property
    def has_price_range(self) -> bool:
        return self.min_price is not None or self.max_price is not None


def public_product_filter(
    query: PublicProductQuery,
    *,
    vendor_scope: Optional[Iterable[ObjectId]] = None,
    search_vendor_ids: Iterable[ObjectId] = (),
    priced_product_ids: Optional[Iterable[ObjectId]] = None,
) -> Dict:
    """Build the product filter.

    ``vendor_scope`` is the set of vendors allowed by the community/vendor
    options (None when unrestricted), ``search_vendor_ids`` the vendors whose
    shop name matches the search text and ``priced_product_ids`` the products
    owning an inventory inside the price range (None when no range is given).
    """
    conditions: List[Dict] = []

    pattern = substring_pattern(query.search)
    if pattern is not None:
        conditions.append(
            {
                "$or": [
                    {"name": pattern},
                    {"vendor": {"$in": list(search_vendor_ids)}},
                ]
            }
        )
    if vendor_scope is not None:
        conditions.append({"vendor": {"$in": list(vendor_scope)}})
    if query.category:
        conditions.append({"category": query.category})
    if query.type == SUBSCRIPTION_TYPE:
        conditions.append({"subscription": {"$ne": None}})
    if priced_product_ids is not None:
        conditions.append({"_id": {"$in": list(priced_product_ids)}})

    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def public_product_sort(sort: Optional[str]) -> SortSpec:
    if sort == "ascending":
        return [("name", ASCENDING)]
    if sort == "descending":
        return [("name", DESCENDING)]
    return [("createdAt", ASCENDING)]


@dataclass
class VendorProductQuery:
    name: str = ""
    id: str = ""
    sku: str = ""
    sort_by: Optional[str] = None

    @classmethod
    def from_args(cls, args) -> "VendorProductQuery":
        return cls(
            name=(args.get("name") or "").strip(),
            id=(args.get("id") or "").strip(),
            sku=(args.get("sku") or "").strip(),
            sort_by=(args.get("sortBy") or "").strip() or None,
        )


def vendor_product_filter(vendor_id: ObjectId, query: VendorProductQuery) -> Dict:
    product_filter: Dict = {"vendor": vendor_id}
    name_pattern = substring_pattern(query.name)
    if name_pattern is not None:
        product_filter["name"] = name_pattern
    id_pattern = substring_pattern(query.id)
    if id_pattern is not None:
        product_filter["id"] = id_pattern
    return product_filter


VENDOR_PRODUCT_SORTS = {
    "newest": [("createdAt", DESCENDING)],
    "oldest": [("createdAt", ASCENDING)],
    "active": [("status", ASCENDING)],
    "inactive": [("status", DESCENDING)],
}


def vendor_product_sort(sort_by: Optional[str]) -> SortSpec:
    return VENDOR_PRODUCT_SORTS.get(sort_by or "", VENDOR_PRODUCT_SORTS["newest"])


@dataclass
class CommunityQuery:
    name: str = ""
    status: Optional[str] = None
    signed_up_from: Optional[object] = None
    signed_up_to: Optional[object] = None
    # Date-only "to" values are bumped to the next midnight and compared with $lt.
    signed_up_to_exclusive: bool = False

    @classmethod
    def from_args(cls, args) -> "CommunityQuery":
        return cls(
            name=(args.get("name") or "").strip(),
            status=(args.get("status") or "").strip() or None,
            signed_up_from=parse_iso_date(args.get("from")),
            signed_up_to=parse_iso_date(args.get("to"), end_of_day=True),
            signed_up_to_exclusive=is_date_only(args.get("to")),
        )


def community_filter(query: CommunityQuery) -> Dict:
    community_query: Dict = {}
    name_pattern = substring_pattern(query.name)
    if name_pattern is not None:
        community_query["name"] = name_pattern
    if query.status:
        community_query["status"] = query.status
    signup_range: Dict = {}
    if query.signed_up_from:
        signup_range["$gte"] = query.signed_up_from
    if query.signed_up_to:
        bound = "$lt" if query.signed_up_to_exclusive else "$lte"
        signup_range[bound] = query.signed_up_to
    if signup_range:
        community_query["signup_at"] = signup_range
    return community_query
