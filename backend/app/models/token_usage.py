"""TokenUsage model"""
from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint
from datetime import datetime, timezone
from app.models.base import Base


class TokenUsage(Base):
    """Prepaid token balance for the current monthly period"""
    __tablename__ = "token_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), unique=True, nullable=False, index=True)

    # Token tracking
    tokens_used = Column(Integer, default=0, nullable=False)  # Used since last reset
    tokens_remaining = Column(Integer, default=0, nullable=False)
    reset_date = Column(DateTime(timezone=True), nullable=True)  # Next monthly reset or billing period end

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        CheckConstraint('tokens_remaining >= 0', name='ck_token_usage_remaining_non_negative'),
        CheckConstraint('tokens_used >= 0', name='ck_token_usage_used_non_negative'),
    )

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "tokens_used": self.tokens_used,
            "tokens_remaining": self.tokens_remaining,
            "reset_date": self.reset_date.isoformat() if self.reset_date else None,
        }

    def __repr__(self):
        return f"<TokenUsage(user_id={self.user_id}, remaining={self.tokens_remaining}, used={self.tokens_used})>"
