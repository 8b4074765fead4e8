"""TokenTransaction model"""
from sqlalchemy import Column, Integer, String, Index, DateTime
from datetime import datetime, timezone
from app.models.base import Base


class TokenTransaction(Base):
    """Append-only token audit log"""
    __tablename__ = "token_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    tokens_used = Column(Integer, nullable=False)  # Amount debited or granted
    transaction_type = Column(String(50), nullable=False)  # see TransactionType
    content_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    # Index for common query patterns
    __table_args__ = (
        Index('ix_token_transactions_user_created', 'user_id', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tokens_used": self.tokens_used,
            "transaction_type": self.transaction_type,
            "content_id": self.content_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
