import logging
import stripe
from typing import Dict, Optional, Any, List
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import WebhookSignatureError
from app.models.enums import SubscriptionTier, TransactionType
from app.models.subscription import UserSubscription
from app.models.stripe_event import StripeEvent
from app.schemas.auth import AuthUser

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY

ACTIVE_STATUSES = ("active", "trialing")
PAYMENT_HISTORY_LIMIT = 20

# ============================================================================
# STRIPE OBJECT ACCESS HELPERS
# ============================================================================

def _get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    # Dict access first: StripeObject is a dict, and attribute lookup would
    # resolve keys like 'items' to dict methods
    if isinstance(obj, dict):
        value = obj.get(key, default)
        return default if value is None else value
    value = getattr(obj, key, default)
    return default if value is None else value


def _id_of(value: Any) -> Optional[str]:
    """Stripe references are either an ID string or an expanded object"""
    if value is None or isinstance(value, str):
        return value
    return _get_stripe_value(value, 'id')


def _from_timestamp(ts: Optional[int]) -> Optional[datetime]:
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def _first_item(subscription: Any) -> Any:
    items = _get_stripe_value(subscription, 'items')
    data = _get_stripe_value(items, 'data', []) if items is not None else []
    return data[0] if data else None


def _subscription_period(subscription: Any):
    """Current period (start, end). Newer API versions report it on the subscription item."""
    start = _get_stripe_value(subscription, 'current_period_start')
    end = _get_stripe_value(subscription, 'current_period_end')
    if not start or not end:
        item = _first_item(subscription)
        start = start or _get_stripe_value(item, 'current_period_start')
        end = end or _get_stripe_value(item, 'current_period_end')
    return _from_timestamp(start), _from_timestamp(end)


def _metadata_value(obj: Any, *keys: str) -> Optional[str]:
    metadata = _get_stripe_value(obj, 'metadata', {}) or {}
    for key in keys:
        value = _get_stripe_value(metadata, key)
        if value:
            return str(value)
    return None

# ============================================================================
# CORE STRIPE OPERATIONS
# ============================================================================

def get_customer_id(user: AuthUser, db: Session) -> Optional[str]:
    """Stripe customer for a user: stored subscription row first, then auth metadata"""
    record = db.query(UserSubscription).filter(UserSubscription.user_id == user.id).first()
    if record and record.stripe_customer_id:
        return record.stripe_customer_id
    customer_id = user.user_metadata.get("stripe_customer_id")
    return customer_id or None


def get_or_create_customer(user: AuthUser, db: Session) -> str:
    """Get the user's Stripe customer, creating it (and a FREE subscription row) when missing"""
    customer_id = get_customer_id(user, db)
    if not customer_id:
        customer = stripe.Customer.create(
            email=user.email,
            metadata={"userId": user.id}
        )
        customer_id = customer.id
        logger.info(f"Created Stripe customer {customer_id} for user {user.id}")

    record = db.query(UserSubscription).filter(UserSubscription.user_id == user.id).first()
    if not record:
        record = UserSubscription(
            user_id=user.id,
            subscription_tier=SubscriptionTier.FREE.value,
            is_active=True,
            subscription_start_date=datetime.now(timezone.utc)
        )
        db.add(record)
    if record.stripe_customer_id != customer_id:
        record.stripe_customer_id = customer_id
    db.commit()
    return customer_id


def create_checkout_session(
    customer_id: str,
    user_id: str,
    price_id: str,
    plan_name: str,
    origin: str
) -> Dict:
    session = stripe.checkout.Session.create(
        customer=customer_id,
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        mode="subscription",
        success_url=f"{origin}/dashboard?checkout=success",
        cancel_url=f"{origin}/pricing?checkout=canceled",
        metadata={"userId": user_id, "planName": plan_name},
        subscription_data={"metadata": {"userId": user_id, "planName": plan_name}},
    )
    return {"id": session.id, "url": session.url}


def schedule_cancellation(subscription_id: str) -> Optional[datetime]:
    """Ask Stripe to cancel at the end of the current period; returns the period end"""
    subscription = stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
    _, period_end = _subscription_period(subscription)
    logger.info(f"Scheduled cancellation of {subscription_id} at period end {period_end}")
    return period_end


def cancel_active_subscriptions(customer_id: str) -> int:
    """Immediately cancel every active subscription of a customer (account deletion)"""
    subscriptions = stripe.Subscription.list(customer=customer_id, status="active", limit=100)
    canceled = 0
    for subscription in _get_stripe_value(subscriptions, 'data', []):
        stripe.Subscription.cancel(_get_stripe_value(subscription, 'id'))
        canceled += 1
    return canceled


def create_portal_session(customer_id: str, return_url: str) -> str:
    session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
    return session.url


def list_paid_invoices(customer_id: str, limit: int = PAYMENT_HISTORY_LIMIT) -> List[Dict]:
    invoices = stripe.Invoice.list(customer=customer_id, limit=limit, status="paid")
    history = []
    for invoice in _get_stripe_value(invoices, 'data', []):
        history.append({
            "id": _get_stripe_value(invoice, 'id'),
            "date": int(_get_stripe_value(invoice, 'created', 0)) * 1000,
            "amount": _get_stripe_value(invoice, 'amount_paid', 0) / 100,
            "currency": str(_get_stripe_value(invoice, 'currency', 'usd')).upper(),
            "status": _get_stripe_value(invoice, 'status'),
            "pdfUrl": _get_stripe_value(invoice, 'invoice_pdf'),
            "hostedInvoiceUrl": _get_stripe_value(invoice, 'hosted_invoice_url'),
        })
    return history


def construct_webhook_event(payload: bytes, sig_header: str) -> Any:
    """Verify a webhook delivery and return the event

    Raises:
        WebhookSignatureError: For an unconfigured secret, invalid payload or bad signature
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Webhook secret not configured")
        raise WebhookSignatureError("Webhook secret not configured")

    try:
        return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise WebhookSignatureError("Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {e}")
        raise WebhookSignatureError("Invalid signature")

# ============================================================================
# WEBHOOK & EVENT LOGGING
# ============================================================================

def log_stripe_event(event_id: str, event_type: str, payload: dict, db: Session) -> StripeEvent:
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if not stripe_event:
        stripe_event = StripeEvent(
            stripe_event_id=event_id,
            event_type=event_type,
            payload=payload,
            processed=False
        )
        db.add(stripe_event)
        db.commit()
        db.refresh(stripe_event)
    return stripe_event

def mark_stripe_event_processed(event_id: str, db: Session):
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        stripe_event.processed = True
        stripe_event.processed_at = datetime.now(timezone.utc)
        stripe_event.error_message = None
        db.commit()

def record_stripe_event_error(event_id: str, db: Session, error_message: str):
    """Keep the event unprocessed so Stripe's retry is handled again"""
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        stripe_event.error_message = error_message
        db.commit()

# ============================================================================
# SUBSCRIPTION HANDLERS
# ============================================================================

def _resolve_user_id(obj: Any, db: Session) -> Optional[str]:
    """userId from the object's metadata, then the customer's metadata, then our own rows"""
    user_id = _metadata_value(obj, 'userId', 'user_id')
    if user_id:
        return user_id

    customer_id = _id_of(_get_stripe_value(obj, 'customer'))
    if customer_id:
        try:
            customer = stripe.Customer.retrieve(customer_id)
            user_id = _metadata_value(customer, 'userId', 'user_id')
            if user_id:
                return user_id
        except stripe.StripeError as e:
            logger.warning(f"Could not retrieve customer {customer_id}: {e}")

        record = db.query(UserSubscription).filter(UserSubscription.stripe_customer_id == customer_id).first()
        if record:
            return record.user_id

    subscription_id = _get_stripe_value(obj, 'id')
    if subscription_id:
        record = db.query(UserSubscription).filter(UserSubscription.stripe_subscription_id == subscription_id).first()
        if record:
            return record.user_id
    return None


def _product_tier(subscription: Any) -> Optional[str]:
    item = _first_item(subscription)
    price = _get_stripe_value(item, 'price')
    product = _get_stripe_value(price, 'product')
    if product is None:
        return None
    if isinstance(product, str):
        try:
            product = stripe.Product.retrieve(product)
        except stripe.StripeError as e:
            logger.warning(f"Could not retrieve product {product}: {e}")
            return None
    return _metadata_value(product, 'tier', 'plan_name')


def _resolve_tier(sources: List[Any], subscription: Any, fallback: SubscriptionTier) -> SubscriptionTier:
    """Tier from metadata planName, then product metadata, then the fallback"""
    for source in sources:
        plan_name = _metadata_value(source, 'planName', 'tier')
        if plan_name:
            return SubscriptionTier.parse(plan_name, default=fallback)
    product_tier = _product_tier(subscription)
    if product_tier:
        return SubscriptionTier.parse(product_tier, default=fallback)
    return fallback


def _sync_subscription_row(user_id: str, subscription: Any, tier: SubscriptionTier, db: Session) -> UserSubscription:
    sub_id = _get_stripe_value(subscription, 'id')
    record = db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()
    if not record:
        record = UserSubscription(user_id=user_id)
        db.add(record)
        logger.info(f"Creating subscription record for user {user_id} with subscription {sub_id}")

    status = _get_stripe_value(subscription, 'status', 'active')
    period_start, period_end = _subscription_period(subscription)

    record.stripe_subscription_id = sub_id
    customer_id = _id_of(_get_stripe_value(subscription, 'customer'))
    if customer_id:
        record.stripe_customer_id = customer_id
    record.subscription_tier = tier.value
    record.is_active = status in ACTIVE_STATUSES
    record.cancel_at_period_end = bool(_get_stripe_value(subscription, 'cancel_at_period_end', False))
    if period_start:
        record.subscription_start_date = period_start
    if period_end:
        record.subscription_end_date = period_end

    db.commit()
    db.refresh(record)
    logger.info(f"Subscription {sub_id} synced for user {user_id}: {tier.value}, status={status}, cancel_at_period_end={record.cancel_at_period_end}")
    return record


def handle_checkout_completed(session: Any, db: Session):
    from app.services.token_service import grant_tokens_for_subscription

    sub_id = _id_of(_get_stripe_value(session, 'subscription'))
    if not sub_id:
        logger.info(f"Checkout session {_get_stripe_value(session, 'id')} has no subscription, ignoring")
        return

    user_id = _resolve_user_id(session, db)
    if not user_id:
        logger.error(f"Could not resolve user for checkout session {_get_stripe_value(session, 'id')}")
        return

    stripe_sub = stripe.Subscription.retrieve(sub_id, expand=["items.data.price.product"])
    tier = _resolve_tier([session, stripe_sub], stripe_sub, fallback=SubscriptionTier.PRO)
    record = _sync_subscription_row(user_id, stripe_sub, tier, db)

    if record.is_active:
        grant_tokens_for_subscription(
            user_id, tier, db,
            reset_date=record.subscription_end_date,
            transaction_type=TransactionType.SUBSCRIPTION_GRANT
        )


def handle_subscription_updated(subscription: Any, db: Session):
    from app.services.token_service import grant_tokens_for_subscription, period_already_granted, as_utc

    user_id = _resolve_user_id(subscription, db)
    if not user_id:
        logger.warning(f"No user found for subscription {_get_stripe_value(subscription, 'id')}")
        return

    existing = db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()
    previous_tier = existing.tier if existing else None
    previous_end = as_utc(existing.subscription_end_date) if existing else None
    was_active = bool(existing and existing.is_active)

    fallback = existing.tier if existing else SubscriptionTier.FREE
    tier = _resolve_tier([subscription], subscription, fallback=fallback)
    record = _sync_subscription_row(user_id, subscription, tier, db)

    # Re-grant only when the tier or the billing period changes; a renewal
    # invoice may already have granted the new period
    tier_changed = tier != previous_tier or not was_active
    new_period = (
        as_utc(record.subscription_end_date) != previous_end
        and not period_already_granted(user_id, record.subscription_end_date, db)
    )
    if record.is_active and (tier_changed or new_period):
        grant_tokens_for_subscription(
            user_id, tier, db,
            reset_date=record.subscription_end_date,
            transaction_type=TransactionType.SUBSCRIPTION_GRANT
        )


def handle_subscription_deleted(subscription: Any, db: Session):
    from app.services.token_service import grant_tokens_for_subscription

    subscription_id = _get_stripe_value(subscription, 'id')
    record = None
    if subscription_id:
        record = db.query(UserSubscription).filter(UserSubscription.stripe_subscription_id == subscription_id).first()
    if not record:
        user_id = _resolve_user_id(subscription, db)
        if user_id:
            record = db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()
    if not record:
        logger.warning(f"Subscription {subscription_id} deleted but no local record exists")
        return

    record.subscription_tier = SubscriptionTier.FREE.value
    record.is_active = False
    record.cancel_at_period_end = False
    record.stripe_subscription_id = None
    record.subscription_end_date = datetime.now(timezone.utc)
    db.commit()
    logger.info(f"Subscription {subscription_id} ended, user {record.user_id} moved to FREE")

    grant_tokens_for_subscription(record.user_id, SubscriptionTier.FREE, db, transaction_type=TransactionType.SUBSCRIPTION_GRANT)


def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    sub_id = _id_of(_get_stripe_value(invoice, 'subscription'))
    if sub_id:
        return sub_id
    # Newer API versions nest it under parent.subscription_details
    parent = _get_stripe_value(invoice, 'parent')
    details = _get_stripe_value(parent, 'subscription_details')
    return _id_of(_get_stripe_value(details, 'subscription'))


def handle_invoice_payment_succeeded(invoice: Any, db: Session):
    from app.services.token_service import grant_tokens_for_subscription, period_already_granted

    if _get_stripe_value(invoice, 'billing_reason') != "subscription_cycle":
        return
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        return
    record = db.query(UserSubscription).filter(UserSubscription.stripe_subscription_id == subscription_id).first()
    if not record:
        logger.warning(f"Renewal invoice for unknown subscription {subscription_id}")
        return

    stripe_sub = stripe.Subscription.retrieve(subscription_id)
    _, period_end = _subscription_period(stripe_sub)
    if period_end:
        record.subscription_end_date = period_end
    record.is_active = _get_stripe_value(stripe_sub, 'status', 'active') in ACTIVE_STATUSES
    db.commit()

    if not record.is_active:
        return
    if period_already_granted(record.user_id, record.subscription_end_date, db):
        logger.info(f"Tokens for subscription {subscription_id} period ending {record.subscription_end_date} already granted")
        return
    grant_tokens_for_subscription(
        record.user_id, record.tier, db,
        reset_date=record.subscription_end_date,
        transaction_type=TransactionType.SUBSCRIPTION_RENEWAL
    )


def handle_invoice_payment_failed(invoice: Any, db: Session):
    invoice_id = _get_stripe_value(invoice, 'id', 'unknown')
    subscription_id = _invoice_subscription_id(invoice)
    logger.warning(f"Payment failed for invoice {invoice_id} (subscription {subscription_id})")
