"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.subscription import UserSubscription
from app.models.token_usage import TokenUsage
from app.models.token_transaction import TokenTransaction
from app.models.content_history import ContentHistoryItem
from app.models.stripe_event import StripeEvent

# Export all for convenience
__all__ = [
    "Base", "UserSubscription", "TokenUsage", "TokenTransaction",
    "ContentHistoryItem", "StripeEvent"
]
