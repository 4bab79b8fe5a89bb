from flask import Blueprint, current_app, request

from marketplace.auth import VENDOR_ROLE, Actor, requires_actor
from marketplace.errors import respond
from marketplace.extensions import get_db
from marketplace.read_models import list_vendor_orders
from marketplace.serializers import parse_object_id
from marketplace.workflows import update_order_status

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.route("/vendor", methods=["GET"])
@requires_actor(VENDOR_ROLE)
def vendor_orders(actor: Actor):
    status = (request.args.get("status") or "").strip().lower() or None
    return respond({"orders": list_vendor_orders(get_db(), actor.id, status)})


@orders_bp.route("/<order_id>/status", methods=["PUT"])
@requires_actor(VENDOR_ROLE)
def change_order_status(order_id: str, actor: Actor):
    object_id = parse_object_id(order_id, "order identifier")
    payload = request.get_json(silent=True) or {}
    update_order_status(get_db(), actor.id, object_id, payload.get("status"))
    current_app.logger.info("Vendor %s set order %s to %s", actor.id, object_id, payload.get("status"))
    return respond()
