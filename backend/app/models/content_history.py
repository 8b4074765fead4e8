"""ContentHistoryItem model"""
import uuid
from sqlalchemy import Column, String, Text, DateTime, Index
from datetime import datetime, timezone
from app.models.base import Base
from app.models.enums import ContentStatus


class ContentHistoryItem(Base):
    """One repurposing result owned by a user"""
    __tablename__ = "content_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    original_content = Column(Text, nullable=False)
    repurposed_content = Column(Text, nullable=False, default="")
    output_format = Column(String(50), nullable=False)
    tone = Column(String(50), nullable=True)
    target_audience = Column(String(100), nullable=True)
    content_length = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False, default=ContentStatus.DRAFT.value)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('ix_content_history_user_created', 'user_id', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "original_content": self.original_content,
            "repurposed_content": self.repurposed_content,
            "output_format": self.output_format,
            "tone": self.tone,
            "target_audience": self.target_audience,
            "content_length": self.content_length,
            "status": self.status,
            "image_url": self.image_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
