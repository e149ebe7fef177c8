# apps/backend/linguista/billing_stripe.py
from __future__ import annotations

import os
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import stripe
from fastapi import APIRouter, Depends, Request
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import Principal, get_current_user
from database import get_db

from . import customers
from .bodies import json_body
from .cors import json_response, preflight
from .errors import InvalidArgument, NotSubscribed, ProviderError, StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])

# --- Stripe environment -------------------------------------------------------
STRIPE_SECRET_KEY     = os.getenv("STRIPE_SECRET_KEY")        # sk_live_xxx / sk_test_xxx
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")    # whsec_xxx
SITE_URL              = os.getenv("SITE_URL", "http://localhost:5173")


# --- Request models -----------------------------------------------------------
class CheckoutBody(BaseModel):
    price_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("priceId", "priceIdentifier", "price_id"),
    )


# --- Helpers ------------------------------------------------------------------
def _stripe_call(fn: Callable[..., Any], **kwargs: Any) -> Any:
    """Run one Stripe API call with the configured key; StripeError -> ProviderError."""
    if not STRIPE_SECRET_KEY:
        raise ProviderError("Stripe secret key not configured.")
    try:
        return fn(api_key=STRIPE_SECRET_KEY, **kwargs)
    except stripe.StripeError as e:
        logger.error("Error from Stripe API: %s", e)
        raise ProviderError(f"Stripe Error: {e.user_message or 'request failed'}")


def _origin(request: Request) -> str:
    return (request.headers.get("origin") or SITE_URL).rstrip("/")


def ensure_stripe_customer(db: Session, user: Principal) -> str:
    """
    Return the Stripe customer linked to this user, creating and linking one
    on first use.

    Persisting the new id is best effort: a store failure is logged and the
    fresh id is still used for this call.
    """
    try:
        existing = customers.get_stripe_customer_id(db, user.id)
    except SQLAlchemyError:
        logger.exception("Failed to read customer link for user %s", user.id)
        raise StoreError()
    if existing:
        return existing

    logger.info("No Stripe customer for user %s, creating one", user.id)
    customer = _stripe_call(
        stripe.Customer.create,
        email=user.email,
        metadata={"user_id": user.id},
    )
    logger.info("Stripe customer created: %s", customer.id)

    try:
        stored = customers.link_stripe_customer(db, user.id, user.email, customer.id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist Stripe customer %s for user %s", customer.id, user.id)
        return customer.id

    if stored and stored != customer.id:
        # lost the race; the store's id is authoritative and ours is orphaned
        logger.warning(
            "User %s already linked to %s; orphaned Stripe customer %s",
            user.id, stored, customer.id,
        )
        return stored
    return stored or customer.id


def start_checkout(db: Session, user: Principal, price_id: Optional[str], origin: str) -> str:
    price_id = (price_id or "").strip()
    if not price_id:
        raise InvalidArgument("priceId is required")

    customer_id = ensure_stripe_customer(db, user)

    session = _stripe_call(
        stripe.checkout.Session.create,
        customer=customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        mode="subscription",
        success_url=f"{origin}/",
        cancel_url=f"{origin}/",
        client_reference_id=user.id,
    )
    logger.info("Checkout session %s created for user %s", session.id, user.id)
    return session.url


def open_management_portal(db: Session, user: Principal, origin: str) -> str:
    try:
        customer_id = customers.get_subscriber_customer_id(db, user.id)
    except SQLAlchemyError:
        logger.exception("Failed to read subscriber for user %s", user.id)
        raise StoreError()
    if not customer_id:
        raise NotSubscribed()

    portal = _stripe_call(
        stripe.billing_portal.Session.create,
        customer=customer_id,
        return_url=f"{origin}/",
    )
    return portal.url


# --- Checkout / portal endpoints ---------------------------------------------
@router.options("/checkout")
@router.options("/portal")
def billing_preflight():
    return preflight()


@router.post("/checkout")
def create_checkout_session(
    request: Request,
    body: CheckoutBody = Depends(json_body(CheckoutBody)),
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    url = start_checkout(db, user, body.price_id, _origin(request))
    return json_response({"url": url})


@router.post("/portal")
def create_portal_session(
    request: Request,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    url = open_management_portal(db, user, _origin(request))
    return json_response({"url": url})


# --- Webhook: keep subscribers in sync ---------------------------------------
def _as_dict(obj: Any) -> Dict[str, Any]:
    return obj if isinstance(obj, dict) else obj.to_dict()


def _price_and_tier(subscription: Dict[str, Any]) -> Tuple[Optional[str], str]:
    items = (subscription.get("items") or {}).get("data") or []
    price = (items[0].get("price") or {}) if items else {}
    return price.get("id"), price.get("nickname") or "unknown"


def _handle_checkout_completed(db: Session, session: Dict[str, Any]) -> None:
    user_id = session.get("client_reference_id")
    if not user_id:
        raise ValueError("Missing client_reference_id (user_id) in checkout session.")

    subscription_id = session.get("subscription")
    customer_id = session.get("customer")
    if not subscription_id or not customer_id:
        logger.info("Checkout session %s completed but was not a subscription.", session.get("id"))
        return

    sub = _as_dict(_stripe_call(stripe.Subscription.retrieve, id=subscription_id))
    price_id, tier = _price_and_tier(sub)

    email = (session.get("customer_details") or {}).get("email")
    stored = customers.link_stripe_customer(db, user_id, email, customer_id)
    if stored != customer_id:
        logger.warning(
            "Checkout for user %s used customer %s but %s is linked",
            user_id, customer_id, stored,
        )

    customers.upsert_subscriber(
        db,
        user_id,
        stripe_customer_id=customer_id,
        stripe_subscription_id=subscription_id,
        price_id=price_id,
        status=sub.get("status"),
        tier=tier,
    )
    logger.info("Processed subscription %s for user %s", subscription_id, user_id)


def _handle_subscription_changed(db: Session, subscription: Dict[str, Any]) -> None:
    price_id, tier = _price_and_tier(subscription)
    touched = customers.update_subscription_status(
        db,
        subscription["id"],
        status=subscription.get("status"),
        price_id=price_id,
        tier=tier,
    )
    logger.info(
        "Subscription %s status -> %s (%d row(s))",
        subscription["id"], subscription.get("status"), touched,
    )


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe Dashboard -> Developers -> Webhooks, endpoint <site>/api/billing/webhook
    Events:
      - checkout.session.completed
      - customer.subscription.updated
      - customer.subscription.deleted
    """
    if not STRIPE_WEBHOOK_SECRET:
        raise ProviderError("Stripe webhook secret not configured.")

    payload = await request.body()
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise InvalidArgument("Missing Stripe-Signature header")
    try:
        evt = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig,
            secret=STRIPE_WEBHOOK_SECRET,
            api_key=STRIPE_SECRET_KEY,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error("Webhook signature verification failed: %s", e)
        raise InvalidArgument("Webhook signature verification failed")

    etype = None
    try:
        event = _as_dict(evt)
        etype = event.get("type")
        data = event["data"]["object"]

        if etype == "checkout.session.completed":
            _handle_checkout_completed(db, data)
        elif etype in ("customer.subscription.updated", "customer.subscription.deleted"):
            _handle_subscription_changed(db, data)
        else:
            logger.info("Unhandled event type: %s", etype)
    except (ValueError, KeyError, TypeError, SQLAlchemyError) as e:
        db.rollback()
        logger.error("Webhook handler error for %s: %s", etype, e)
        raise StoreError("Webhook processing failed")

    return json_response({"received": True})
