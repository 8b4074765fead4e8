"""UserSubscription model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from datetime import datetime, timezone
from app.models.base import Base
from app.models.enums import SubscriptionTier


class UserSubscription(Base):
    """Last known billing state of a user (one row per user)"""
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, unique=True, index=True)  # Supabase auth user UUID
    subscription_tier = Column(String(20), nullable=False, default=SubscriptionTier.FREE.value)
    is_active = Column(Boolean, default=False, nullable=False)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, unique=True, index=True)
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    @property
    def tier(self) -> SubscriptionTier:
        return SubscriptionTier.parse(self.subscription_tier)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "subscription_tier": self.subscription_tier,
            "is_active": self.is_active,
            "cancel_at_period_end": self.cancel_at_period_end,
            "stripe_customer_id": self.stripe_customer_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "subscription_start_date": self.subscription_start_date.isoformat() if self.subscription_start_date else None,
            "subscription_end_date": self.subscription_end_date.isoformat() if self.subscription_end_date else None,
        }

    def __repr__(self):
        return f"<UserSubscription(user_id={self.user_id}, tier={self.subscription_tier}, active={self.is_active})>"
