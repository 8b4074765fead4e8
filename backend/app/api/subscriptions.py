"""Subscription and billing API routes"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import RepurposelyError, WebhookSignatureError
from app.core.security import require_auth
from app.db.session import get_db
from app.schemas.auth import AuthUser
from app.schemas.subscriptions import CheckoutRequest
from app.services.subscription_service import (
    cancel_user_subscription, create_customer_portal, create_subscription_checkout,
    get_payment_history, process_stripe_webhook
)

router = APIRouter(prefix="/api/stripe", tags=["subscriptions"])
logger = logging.getLogger(__name__)


@router.get("/config")
def get_stripe_config():
    """Publishable key for the client-side Stripe SDK"""
    return {"publishableKey": settings.STRIPE_PUBLISHABLE_KEY}


@router.post("/create-checkout")
def create_checkout(
    checkout_request: CheckoutRequest,
    request: Request,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Create Stripe checkout session for subscription"""
    if not checkout_request.priceId:
        raise HTTPException(400, "Price ID is required")

    origin = request.headers.get("origin") or settings.SITE_URL
    try:
        url = create_subscription_checkout(
            user,
            checkout_request.priceId,
            checkout_request.planName,
            origin,
            db
        )
    except Exception as e:
        logger.error(f"Error creating checkout session for user {user.id}: {e}", exc_info=True)
        raise HTTPException(500, "Failed to create checkout session")
    return {"checkoutUrl": url}


@router.post("/cancel-subscription")
def cancel_subscription(
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """
    Schedule cancellation at the end of the current billing period.
    The subscription stays active until Stripe reports the change via webhook.
    """
    try:
        return cancel_user_subscription(user, db)
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    except Exception as e:
        logger.error(f"Error canceling subscription for user {user.id}: {e}", exc_info=True)
        raise HTTPException(500, "Failed to cancel subscription")


@router.post("/create-portal")
def create_portal(
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Get Stripe customer portal URL"""
    try:
        return {"url": create_customer_portal(user, db)}
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    except Exception as e:
        logger.error(f"Error creating portal session for user {user.id}: {e}", exc_info=True)
        raise HTTPException(500, "Failed to create portal session")


@router.get("/payment-history")
def payment_history(
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Up to 20 paid invoices, newest first"""
    try:
        return get_payment_history(user, db)
    except Exception as e:
        logger.error(f"Error fetching payment history for user {user.id}: {e}", exc_info=True)
        raise HTTPException(500, "Failed to fetch payment history")


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe webhook events

    Note: This route must be excluded from any global JSON parsing middleware
    to ensure the request body remains as raw bytes for signature verification.
    Processing failures answer 500 so that Stripe redelivers the event.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise HTTPException(400, "Missing stripe-signature header")

    try:
        result = process_stripe_webhook(payload, sig_header, db)
    except WebhookSignatureError as e:
        raise HTTPException(400, e.message)
    except Exception as e:
        logger.error(f"Unexpected error processing webhook: {e}", exc_info=True)
        raise HTTPException(500, "Webhook processing failed")

    return {"received": True, "status": result["status"]}
