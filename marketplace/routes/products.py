from flask import Blueprint, current_app, request
from werkzeug.exceptions import BadRequest, NotFound

from marketplace.auth import VENDOR_ROLE, Actor, requires_actor
from marketplace.errors import respond
from marketplace.extensions import get_db
from marketplace.filters import PublicProductQuery, VendorProductQuery
from marketplace.read_models import (
    customer_product_detail,
    list_public_products,
    list_vendor_products,
    product_styles,
    vendor_product,
)
from marketplace.serializers import parse_object_id, serialize_document
from marketplace.uploads import store_upload_url
from marketplace.workflows import (
    PRODUCT_FIELDS,
    build_sparse_update,
    create_product,
    delete_product,
    product_scope,
    replace_specifications,
    set_customization,
    set_subscription,
    update_product_fields,
    upsert_specification,
)

products_bp = Blueprint("products", __name__, url_prefix="/products")


def _form_payload():
    payload = request.form.to_dict() if request.form else {}
    if not payload:
        payload = request.get_json(silent=True) or {}
    return payload


def _nutrition_url() -> str:
    upload = request.files.get("nutrition") if request.files else None
    if not upload or not upload.filename:
        return ""
    return store_upload_url(upload)


def _json_body():
    """Decoded JSON body. An explicit JSON null comes back as None; a missing or
    malformed body is a BadRequest."""
    if not request.is_json:
        raise BadRequest("A JSON request body is required.")
    return request.get_json()


def _product_id(product_id: str):
    return parse_object_id(product_id, "product identifier")


@products_bp.route("/public", methods=["GET"])
def public_products():
    query = PublicProductQuery.from_args(request.args)
    return respond({"products": list_public_products(get_db(), query)})


@products_bp.route("/vendor", methods=["GET"])
@requires_actor(VENDOR_ROLE)
def vendor_products(actor: Actor):
    query = VendorProductQuery.from_args(request.args)
    return respond({"products": list_vendor_products(get_db(), actor.id, query)})


@products_bp.route("/vendor/<product_id>", methods=["GET"])
@requires_actor(VENDOR_ROLE)
def vendor_product_detail(product_id: str, actor: Actor):
    product = vendor_product(get_db(), actor.id, _product_id(product_id))
    return respond({"product": serialize_document(product)})


@products_bp.route("/customer/<product_id>", methods=["GET"])
def customer_product(product_id: str):
    detail = customer_product_detail(get_db(), _product_id(product_id))
    return respond({"product": detail})


@products_bp.route("/<product_id>/<category>", methods=["GET"])
@requires_actor(VENDOR_ROLE)
def product_section(product_id: str, category: str, actor: Actor):
    db = get_db()
    product = vendor_product(db, actor.id, _product_id(product_id))

    if category == "style":
        style_id = (request.args.get("styleId") or "").strip()
        if style_id:
            return respond({"style": product_styles(db, product["_id"], style_id)})
        return respond({"styles": product_styles(db, product["_id"])})
    if category == "specification":
        return respond(
            {"specifications": serialize_document(product.get("specifications") or [])}
        )
    if category == "customization":
        return respond({"customization": serialize_document(product.get("customization") or {})})
    if category == "subscription":
        return respond({"subscription": serialize_document(product.get("subscription"))})
    raise NotFound(f"Unknown product section {category!r}.")


@products_bp.route("", methods=["POST"])
@requires_actor(VENDOR_ROLE)
def create_product_route(actor: Actor):
    payload = _form_payload()
    if not str(payload.get("name") or "").strip():
        raise BadRequest("A product name is required.")

    product = create_product(get_db(), actor.id, payload, nutrition_url=_nutrition_url())
    current_app.logger.info("Vendor %s created product %s", actor.id, product["_id"])
    return respond({"product": serialize_document(product)}, 201)


@products_bp.route("/<product_id>/<category>", methods=["POST"])
@requires_actor(VENDOR_ROLE)
def update_product_section(product_id: str, category: str, actor: Actor):
    scope = product_scope(_product_id(product_id), actor.id)
    payload = _json_body()
    db = get_db()

    if category == "specification":
        spec_id = upsert_specification(db, scope, payload, request.args.get("specId"))
        return respond({"specId": str(spec_id)})
    if category == "customization":
        set_customization(db, scope, payload)
        return respond()
    if category == "subscription":
        set_subscription(db, scope, payload)
        return respond()
    raise NotFound(f"Unknown product section {category!r}.")


@products_bp.route("/<product_id>", methods=["PUT"])
@requires_actor(VENDOR_ROLE)
def update_product_route(product_id: str, actor: Actor):
    scope = product_scope(_product_id(product_id), actor.id)
    changes = build_sparse_update(_form_payload(), PRODUCT_FIELDS)
    nutrition_url = _nutrition_url()
    if nutrition_url:
        changes["nutrition"] = nutrition_url

    update_product_fields(get_db(), scope, changes)
    return respond()


@products_bp.route("/<product_id>/<category>", methods=["PUT"])
@requires_actor(VENDOR_ROLE)
def replace_product_section(product_id: str, category: str, actor: Actor):
    if category != "specification":
        raise NotFound(f"Unknown product section {category!r}.")
    scope = product_scope(_product_id(product_id), actor.id)
    specifications = replace_specifications(get_db(), scope, _json_body())
    return respond({"specifications": serialize_document(specifications)})


@products_bp.route("/<product_id>", methods=["DELETE"])
@requires_actor(VENDOR_ROLE)
def delete_product_route(product_id: str, actor: Actor):
    product = delete_product(get_db(), product_scope(_product_id(product_id), actor.id))
    current_app.logger.info("Vendor %s deleted product %s", actor.id, product["_id"])
    return respond({"product": serialize_document(product)})
