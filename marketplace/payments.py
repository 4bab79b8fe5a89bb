import json
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

import requests
import stripe
from flask import current_app
from werkzeug.exceptions import BadGateway, ServiceUnavailable

ONBOARDING_RETURN_PATH = "/vendor/profile/bank-detail"

WebhookHandler = Callable[[object, Dict], None]
WEBHOOK_HANDLERS: Dict[str, WebhookHandler] = {}


def configure_stripe(app):
    stripe.api_key = app.config.get("STRIPE_SECRET_KEY") or None
    stripe.default_http_client = stripe.RequestsClient(session=requests.Session())


def create_onboarding_link(account_id: Optional[str] = None) -> Tuple[str, str]:
    """Create an Express account when needed and return ``(account_id, link_url)``."""
    secret_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret_key:
        raise ServiceUnavailable("Payment provider is not configured.")

    frontend_url = current_app.config["FRONTEND_URL"].rstrip("/")
    try:
        if not account_id:
            account = stripe.Account.create(type="express", api_key=secret_key)
            account_id = account["id"]
        account_link = stripe.AccountLink.create(
            account=account_id,
            type="account_onboarding",
            refresh_url=frontend_url,
            return_url=f"{frontend_url}{ONBOARDING_RETURN_PATH}",
            api_key=secret_key,
        )
    except stripe.StripeError as exc:
        current_app.logger.error("Stripe onboarding failed: %s", exc)
        raise BadGateway("Failed to create the onboarding link.")

    return account_id, account_link["url"]


def verify_webhook_event(payload: str, signature: str) -> Dict:
    """Check the ``Stripe-Signature`` header and decode the event body.

    Raises ValueError for a malformed body or missing secret and
    ``stripe.SignatureVerificationError`` for a bad signature.
    """
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise ValueError("Webhook secret is not configured.")
    stripe.WebhookSignature.verify_header(payload, signature, secret)
    event = json.loads(payload)
    if not isinstance(event, dict) or not event.get("type"):
        raise ValueError("Malformed event payload.")
    return event


def handles(*event_types: str):
    def decorator(handler: WebhookHandler) -> WebhookHandler:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = handler
        return handler

    return decorator


def dispatch_event(db, event: Dict) -> bool:
    event_type = event.get("type")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        current_app.logger.info("Unhandled event type %s", event_type)
        return False
    handler(db, event)
    return True


def _event_object(event: Dict) -> Dict:
    return (event.get("data") or {}).get("object") or {}


def _set_onboarding_state(db, account_id: Optional[str], state: Dict) -> None:
    if not account_id:
        current_app.logger.warning("Stripe event without an account id")
        return
    changes = {f"bankOnboarding.{key}": value for key, value in state.items()}
    changes["bankOnboarding.updated_at"] = datetime.utcnow()
    result = db.vendors.update_one({"stripeAccountId": account_id}, {"$set": changes})
    if result.matched_count == 0:
        current_app.logger.warning("No vendor linked to Stripe account %s", account_id)


@handles("account.updated")
def account_updated(db, event: Dict) -> None:
    account = _event_object(event)
    charges_enabled = bool(account.get("charges_enabled"))
    details_submitted = bool(account.get("details_submitted"))
    _set_onboarding_state(
        db,
        account.get("id"),
        {
            "status": "complete" if charges_enabled and details_submitted else "pending",
            "chargesEnabled": charges_enabled,
            "payoutsEnabled": bool(account.get("payouts_enabled")),
            "detailsSubmitted": details_submitted,
        },
    )
    current_app.logger.info("Stripe account %s updated", account.get("id"))


@handles("account.application.authorized")
def account_application_authorized(db, event: Dict) -> None:
    _set_onboarding_state(db, event.get("account"), {"status": "authorized"})


@handles("account.application.deauthorized")
def account_application_deauthorized(db, event: Dict) -> None:
    _set_onboarding_state(db, event.get("account"), {"status": "deauthorized"})


@handles(
    "account.external_account.created",
    "account.external_account.updated",
    "account.external_account.deleted",
)
def external_account_changed(db, event: Dict) -> None:
    external_account = _event_object(event)
    current_app.logger.info(
        "Stripe %s for account %s (%s)",
        event.get("type"),
        event.get("account") or external_account.get("account"),
        external_account.get("object"),
    )
