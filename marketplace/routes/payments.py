import stripe
from flask import Blueprint, current_app, request

from marketplace.auth import VENDOR_ROLE, Actor, requires_actor
from marketplace.errors import respond
from marketplace.extensions import get_db
from marketplace.payments import create_onboarding_link, dispatch_event, verify_webhook_event

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.route("/connect", methods=["POST"])
def stripe_webhook():
    payload = request.get_data(as_text=True)
    signature = request.headers.get("Stripe-Signature", "")

    try:
        event = verify_webhook_event(payload, signature)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        current_app.logger.warning("Rejected Stripe webhook: %s", exc)
        return respond({"message": f"Webhook Error: {exc}"}, 400)

    dispatch_event(get_db(), event)
    return respond({"received": True})


@payments_bp.route("/onboarding", methods=["POST"])
@requires_actor(VENDOR_ROLE)
def start_onboarding(actor: Actor):
    vendor = actor.document or {}
    account_id, url = create_onboarding_link(vendor.get("stripeAccountId"))

    if account_id != vendor.get("stripeAccountId"):
        get_db().vendors.update_one(
            {"_id": actor.id},
            {
                "$set": {
                    "stripeAccountId": account_id,
                    "bankOnboarding.status": "pending",
                }
            },
        )
        current_app.logger.info("Vendor %s linked to Stripe account %s", actor.id, account_id)

    return respond({"url": url, "accountId": account_id})
