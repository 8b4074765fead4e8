"""Subscription service - Subscription management and business logic"""
import logging
from typing import Dict, Optional, Any, List
from datetime import datetime, timezone, timedelta
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NoActiveSubscriptionError, CustomerNotFoundError, UserNotFoundError
from app.core.metrics import webhook_events_counter
from app.models.enums import SubscriptionTier, TransactionType, TIER_MONTHLY_TOKENS
from app.models.subscription import UserSubscription
from app.models.token_usage import TokenUsage
from app.schemas.auth import AuthUser
from app.services.auth_service import get_user_by_id
from app.services.stripe_service import (
    get_customer_id, get_or_create_customer, create_checkout_session, schedule_cancellation,
    create_portal_session, list_paid_invoices, construct_webhook_event,
    handle_checkout_completed, handle_subscription_updated, handle_subscription_deleted,
    handle_invoice_payment_succeeded, handle_invoice_payment_failed,
    log_stripe_event, mark_stripe_event_processed, record_stripe_event_error
)
from app.services.token_service import (
    get_subscription, initialize_tokens, record_transaction, first_of_next_month
)

logger = logging.getLogger(__name__)

REPAIR_PERIOD_DAYS = 30

WEBHOOK_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def cancel_user_subscription(user: AuthUser, db: Session) -> Dict:
    """Schedule cancellation of the user's paid subscription at the end of the period.

    Only the billing provider is changed here; the local row is updated when the
    resulting customer.subscription.updated webhook arrives.

    Raises:
        NoActiveSubscriptionError: If the user has no billing-provider subscription
    """
    record = get_subscription(user.id, db)
    if not record or not record.stripe_subscription_id:
        raise NoActiveSubscriptionError()

    period_end = schedule_cancellation(record.stripe_subscription_id)
    cancel_date = period_end or record.subscription_end_date

    logger.info(f"User {user.id} scheduled cancellation of {record.stripe_subscription_id}")
    return {
        "success": True,
        "message": "Your subscription will be canceled at the end of the current billing period",
        "cancelDate": cancel_date.isoformat() if cancel_date else None,
    }


def create_customer_portal(user: AuthUser, db: Session) -> str:
    """Billing portal URL for the user

    Raises:
        CustomerNotFoundError: If the user has no Stripe customer
    """
    customer_id = get_customer_id(user, db)
    if not customer_id:
        raise CustomerNotFoundError()
    return create_portal_session(customer_id, f"{settings.SITE_URL}/dashboard")


def create_subscription_checkout(
    user: AuthUser,
    price_id: str,
    plan_name: Optional[str],
    origin: str,
    db: Session
) -> str:
    """Create a Stripe checkout session and return its URL"""
    customer_id = get_or_create_customer(user, db)
    session = create_checkout_session(
        customer_id,
        user.id,
        price_id,
        (plan_name or "pro").lower(),
        origin.rstrip("/")
    )
    logger.info(f"Created checkout session {session['id']} for user {user.id}")
    return session["url"]


def get_payment_history(user: AuthUser, db: Session) -> List[Dict]:
    customer_id = get_customer_id(user, db)
    if not customer_id:
        return []
    return list_paid_invoices(customer_id)


def repair_subscription(user_id: str, db: Session) -> Dict:
    """
    Operator repair: force a user onto an active PRO subscription with a full balance.

    Raises:
        UserNotFoundError: If the auth provider does not know the user
    """
    if not get_user_by_id(user_id):
        raise UserNotFoundError(user_id)

    now = datetime.now(timezone.utc)
    period_end = now + timedelta(days=REPAIR_PERIOD_DAYS)
    allowance = TIER_MONTHLY_TOKENS[SubscriptionTier.PRO]

    record = get_subscription(user_id, db)
    if not record:
        record = UserSubscription(user_id=user_id)
        db.add(record)
    record.subscription_tier = SubscriptionTier.PRO.value
    record.is_active = True
    record.cancel_at_period_end = False
    record.subscription_start_date = now
    record.subscription_end_date = period_end

    usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
    if not usage:
        usage = TokenUsage(user_id=user_id)
        db.add(usage)
    usage.tokens_remaining = allowance
    usage.tokens_used = 0
    usage.reset_date = period_end

    db.commit()
    db.refresh(record)
    db.refresh(usage)
    record_transaction(user_id, allowance, TransactionType.ADMIN_ADJUSTMENT, db)

    logger.warning(f"Subscription repaired for user {user_id}: PRO until {period_end.isoformat()}")
    return {
        "success": True,
        "subscription": record.to_dict(),
        "tokens": usage.to_dict(),
    }


def initialize_account(user_id: str, db: Session) -> Dict:
    """Create the FREE subscription row and the token balance when they are missing"""
    record = get_subscription(user_id, db)
    subscription_created = False
    if not record:
        record = UserSubscription(
            user_id=user_id,
            subscription_tier=SubscriptionTier.FREE.value,
            is_active=True,
            subscription_start_date=datetime.now(timezone.utc)
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        subscription_created = True

    usage, tokens_created = initialize_tokens(user_id, db)
    return {
        "subscription": {"created": subscription_created, "data": record.to_dict()},
        "tokens": {"created": tokens_created, "data": usage.to_dict()},
    }


def get_account_debug(user: AuthUser, db: Session) -> Dict:
    subscriptions = db.query(UserSubscription).filter(UserSubscription.user_id == user.id).all()
    tokens = db.query(TokenUsage).filter(TokenUsage.user_id == user.id).all()
    return {
        "user": {"id": user.id, "email": user.email},
        "subscriptions": [s.to_dict() for s in subscriptions],
        "tokens": [t.to_dict() for t in tokens],
        "next_reset_date": first_of_next_month().isoformat(),
    }


def process_stripe_webhook(
    payload: bytes,
    sig_header: str,
    db: Session
) -> Dict[str, Any]:
    """Process Stripe webhook event

    Validates webhook signature, handles idempotency, and processes different event types.
    Processing errors are re-raised after being recorded so that the route answers
    with a 5xx and Stripe redelivers the event.

    Args:
        payload: Raw request body as bytes (must not be parsed by middleware)
        sig_header: Stripe signature header
        db: Database session

    Returns:
        Dict with status information

    Raises:
        WebhookSignatureError: For invalid payload or signature
    """
    event = construct_webhook_event(payload, sig_header)
    event_id = event["id"]
    event_type = event["type"]

    # Log event for idempotency
    payload_data = event.to_dict() if hasattr(event, "to_dict") else dict(event)
    stripe_event = log_stripe_event(event_id, event_type, payload_data, db)

    if stripe_event.processed:
        logger.info(f"Webhook event {event_id} already processed")
        webhook_events_counter.labels(event_type=event_type, status="duplicate").inc()
        return {"status": "already_processed"}

    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event type {event_type} ({event_id})")
        mark_stripe_event_processed(event_id, db)
        webhook_events_counter.labels(event_type=event_type, status="ignored").inc()
        return {"status": "ignored"}

    try:
        handler(event["data"]["object"], db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing webhook {event_id}: {e}", exc_info=True)
        record_stripe_event_error(event_id, db, str(e))
        webhook_events_counter.labels(event_type=event_type, status="error").inc()
        raise

    mark_stripe_event_processed(event_id, db)
    webhook_events_counter.labels(event_type=event_type, status="success").inc()
    logger.info(f"Successfully processed webhook event {event_id} of type {event_type}")
    return {"status": "success"}
