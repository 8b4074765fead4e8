"""Token service - ledger logic for prepaid tokens"""
from sqlalchemy.orm import Session
from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple
import logging

from app.core.exceptions import InsufficientBalanceError
from app.core.metrics import token_debits_counter, token_refunds_counter, token_grants_counter
from app.models.enums import SubscriptionTier, TransactionType, TIER_MONTHLY_TOKENS
from app.models.subscription import UserSubscription
from app.models.token_usage import TokenUsage
from app.models.token_transaction import TokenTransaction

logger = logging.getLogger(__name__)

IMAGE_GENERATION_COST = 10


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite) as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def first_of_next_month(now: Optional[datetime] = None) -> datetime:
    """Midnight UTC on the first day of the following month"""
    now = now or datetime.now(timezone.utc)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def get_monthly_tokens(tier: Any) -> int:
    """Monthly allowance for a tier; unknown tiers get the FREE allowance"""
    return TIER_MONTHLY_TOKENS[SubscriptionTier.parse(tier)]


def get_subscription(user_id: str, db: Session) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()


def record_transaction(
    user_id: str,
    tokens: int,
    transaction_type: TransactionType,
    db: Session,
    content_id: Optional[str] = None
) -> Optional[TokenTransaction]:
    """Append an audit row in its own commit.

    Failures are logged and swallowed; the balance change they describe has
    already been committed and stays in place.
    """
    try:
        transaction = TokenTransaction(
            user_id=user_id,
            tokens_used=tokens,
            transaction_type=TransactionType(transaction_type).value,
            content_id=content_id
        )
        db.add(transaction)
        db.commit()
        return transaction
    except Exception as e:
        logger.error(f"Failed to record {transaction_type} transaction for user {user_id}: {e}", exc_info=True)
        db.rollback()
        return None


def _apply_monthly_reset(usage: TokenUsage, db: Session) -> TokenUsage:
    """Restore the tier allowance once the reset date has passed"""
    subscription = get_subscription(usage.user_id, db)
    tier = subscription.tier if subscription and subscription.is_active else SubscriptionTier.FREE
    allowance = get_monthly_tokens(tier)
    previous_reset = usage.reset_date

    # Guarded on the old reset date so concurrent readers reset only once
    rows = db.query(TokenUsage).filter(
        TokenUsage.id == usage.id,
        TokenUsage.reset_date == previous_reset
    ).update({
        TokenUsage.tokens_remaining: allowance,
        TokenUsage.tokens_used: 0,
        TokenUsage.reset_date: first_of_next_month(),
        TokenUsage.updated_at: datetime.now(timezone.utc),
    }, synchronize_session=False)
    db.commit()
    db.refresh(usage)

    if rows:
        logger.info(f"Monthly token reset for user {usage.user_id}: {allowance} tokens ({tier.value})")
        token_grants_counter.labels(transaction_type=TransactionType.MONTHLY_RESET.value).inc()
        record_transaction(usage.user_id, allowance, TransactionType.MONTHLY_RESET, db)
    return usage


def get_token_usage(user_id: str, db: Session) -> Optional[TokenUsage]:
    """Get the user's balance row, applying the lazy monthly reset if it is due"""
    usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
    if usage and usage.reset_date and as_utc(usage.reset_date) <= datetime.now(timezone.utc):
        usage = _apply_monthly_reset(usage, db)
    return usage


def initialize_tokens(user_id: str, db: Session) -> Tuple[TokenUsage, bool]:
    """Create the balance row with the tier allowance if it does not exist yet.

    Idempotent: an existing row is returned unchanged.

    Returns:
        (usage, created)
    """
    usage = get_token_usage(user_id, db)
    if usage:
        return usage, False

    subscription = get_subscription(user_id, db)
    tier = subscription.tier if subscription else SubscriptionTier.FREE
    allowance = get_monthly_tokens(tier)

    usage = TokenUsage(
        user_id=user_id,
        tokens_used=0,
        tokens_remaining=allowance,
        reset_date=first_of_next_month()
    )
    db.add(usage)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first
        db.rollback()
        logger.info(f"Token balance for user {user_id} was initialized concurrently")
        return db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first(), False
    db.refresh(usage)

    logger.info(f"Initialized {allowance} tokens for user {user_id} ({tier.value})")
    record_transaction(user_id, allowance, TransactionType.ACCOUNT_INITIALIZATION, db)
    return usage, True


def check_balance(user_id: str, cost: int, db: Session) -> int:
    """Check if the user can afford ``cost`` tokens.

    Returns:
        The current balance

    Raises:
        InsufficientBalanceError: If the balance is lower than the cost
    """
    usage = get_token_usage(user_id, db)
    balance = usage.tokens_remaining if usage else 0
    if balance < cost:
        raise InsufficientBalanceError(balance, cost)
    return balance


def debit_tokens(
    user_id: str,
    cost: int,
    db: Session,
    transaction_type: TransactionType = TransactionType.IMAGE_GENERATION
) -> int:
    """
    Atomically deduct tokens from the user's balance.

    The balance check and the decrement happen in one conditional UPDATE, so two
    concurrent debits can never take the balance below zero. The caller writes
    the audit row right after a successful debit.

    Args:
        user_id: Auth provider user ID
        cost: Number of tokens to deduct (positive)
        db: Database session
        transaction_type: Used for metrics labelling

    Returns:
        Remaining balance after the debit

    Raises:
        InsufficientBalanceError: If the balance is lower than the cost (no state change)
    """
    if cost <= 0:
        raise ValueError("Debit amount must be positive")

    rows = db.query(TokenUsage).filter(
        TokenUsage.user_id == user_id,
        TokenUsage.tokens_remaining >= cost
    ).update({
        TokenUsage.tokens_remaining: TokenUsage.tokens_remaining - cost,
        TokenUsage.tokens_used: TokenUsage.tokens_used + cost,
        TokenUsage.updated_at: datetime.now(timezone.utc),
    }, synchronize_session=False)

    if rows == 0:
        db.rollback()
        usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
        balance = usage.tokens_remaining if usage else 0
        token_debits_counter.labels(transaction_type=TransactionType(transaction_type).value, status="rejected").inc()
        logger.warning(f"Token debit rejected for user {user_id}: requires {cost}, has {balance}")
        raise InsufficientBalanceError(balance, cost)

    db.commit()
    usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
    token_debits_counter.labels(transaction_type=TransactionType(transaction_type).value, status="success").inc()
    logger.info(f"Debited {cost} tokens from user {user_id}: {usage.tokens_remaining} remaining")
    return usage.tokens_remaining


def refund_tokens(user_id: str, amount: int, db: Session, content_id: Optional[str] = None) -> int:
    """Compensating credit after a paid call failed following a debit.

    Returns:
        Balance after the refund
    """
    db.query(TokenUsage).filter(TokenUsage.user_id == user_id).update({
        TokenUsage.tokens_remaining: TokenUsage.tokens_remaining + amount,
        TokenUsage.tokens_used: case(
            (TokenUsage.tokens_used >= amount, TokenUsage.tokens_used - amount),
            else_=0
        ),
        TokenUsage.updated_at: datetime.now(timezone.utc),
    }, synchronize_session=False)
    db.commit()

    usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
    token_refunds_counter.inc()
    logger.info(f"Refunded {amount} tokens to user {user_id}")
    record_transaction(user_id, amount, TransactionType.IMAGE_GENERATION_REFUND, db, content_id=content_id)
    return usage.tokens_remaining if usage else 0


def grant_tokens_for_subscription(
    user_id: str,
    tier: Any,
    db: Session,
    reset_date: Optional[datetime] = None,
    transaction_type: TransactionType = TransactionType.SUBSCRIPTION_GRANT
) -> TokenUsage:
    """
    Reset the balance to the tier's full allowance.

    Used when a paid period starts, renews, or ends (FREE allowance).

    Args:
        user_id: Auth provider user ID
        tier: Subscription tier (unknown values fall back to FREE)
        db: Database session
        reset_date: Billing period end; defaults to the first of next month
        transaction_type: Audit row type

    Returns:
        The updated balance row
    """
    allowance = get_monthly_tokens(tier)
    usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
    if not usage:
        usage = TokenUsage(user_id=user_id)
        db.add(usage)

    usage.tokens_remaining = allowance
    usage.tokens_used = 0
    usage.reset_date = reset_date or first_of_next_month()
    usage.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(usage)

    token_grants_counter.labels(transaction_type=TransactionType(transaction_type).value).inc()
    logger.info(f"Granted {allowance} tokens to user {user_id} ({SubscriptionTier.parse(tier).value}, {TransactionType(transaction_type).value})")
    record_transaction(user_id, allowance, transaction_type, db)
    return usage


def period_already_granted(user_id: str, period_end: Optional[datetime], db: Session) -> bool:
    """True when the balance was already reset for the billing period ending at ``period_end``"""
    if not period_end:
        return False
    usage = db.query(TokenUsage).filter(TokenUsage.user_id == user_id).first()
    return bool(usage and usage.reset_date and as_utc(usage.reset_date) == as_utc(period_end))


def get_token_balance(user_id: str, db: Session) -> Dict[str, Any]:
    """Get current token balance information, creating the balance on first touch"""
    usage, _ = initialize_tokens(user_id, db)
    subscription = get_subscription(user_id, db)
    tier = subscription.tier if subscription else SubscriptionTier.FREE

    return {
        'tokens_remaining': usage.tokens_remaining,
        'tokens_used': usage.tokens_used,
        'monthly_tokens': get_monthly_tokens(tier),
        'subscription_tier': tier.value,
        'reset_date': usage.reset_date.isoformat() if usage.reset_date else None,
    }


def get_token_transactions(user_id: str, limit: int, db: Session) -> List[Dict[str, Any]]:
    """Get the user's token transactions, newest first"""
    transactions = db.query(TokenTransaction).filter(
        TokenTransaction.user_id == user_id
    ).order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc()).limit(limit).all()
    return [t.to_dict() for t in transactions]
