"""Content service - content history persistence and tenant-scoped updates"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import ContentNotFoundError
from app.models.content_history import ContentHistoryItem
from app.models.enums import ContentStatus

logger = logging.getLogger(__name__)

FREQUENT_TEMPLATES_LIMIT = 3


def save_content_history(
    user_id: str,
    original_content: str,
    repurposed_content: str,
    output_format: str,
    tone: str,
    content_length: str,
    target_audience: str,
    db: Session
) -> Optional[str]:
    """Persist a repurposing result as a draft.

    Returns:
        The new content ID, or None if saving failed (the failure is only logged)
    """
    try:
        item = ContentHistoryItem(
            user_id=user_id,
            original_content=original_content,
            repurposed_content=repurposed_content,
            output_format=output_format,
            tone=tone,
            content_length=content_length,
            target_audience=target_audience,
            status=ContentStatus.DRAFT.value
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info(f"Saved content {item.id} to history for user {user_id}")
        return item.id
    except Exception as e:
        logger.error(f"Error saving to history for user {user_id}: {e}", exc_info=True)
        db.rollback()
        return None


def _update_owned_content(user_id: str, content_id: str, values: Dict, db: Session) -> ContentHistoryItem:
    """Update a row matching both id and owner; zero matches raise ContentNotFoundError"""
    values = dict(values)
    values[ContentHistoryItem.updated_at] = datetime.now(timezone.utc)
    rows = db.query(ContentHistoryItem).filter(
        ContentHistoryItem.id == content_id,
        ContentHistoryItem.user_id == user_id
    ).update(values, synchronize_session=False)

    if rows == 0:
        db.rollback()
        logger.warning(f"Content {content_id} not found for user {user_id}")
        raise ContentNotFoundError(content_id)

    db.commit()
    return db.query(ContentHistoryItem).filter(ContentHistoryItem.id == content_id).first()


def update_content(
    user_id: str,
    content_id: str,
    repurposed_content: str,
    db: Session,
    tone: Optional[str] = None
) -> Dict:
    values = {ContentHistoryItem.repurposed_content: repurposed_content}
    if tone:
        values[ContentHistoryItem.tone] = tone
    item = _update_owned_content(user_id, content_id, values, db)
    return item.to_dict()


def update_content_status(user_id: str, content_id: str, status: ContentStatus, db: Session) -> Dict:
    item = _update_owned_content(
        user_id, content_id, {ContentHistoryItem.status: ContentStatus(status).value}, db
    )
    return item.to_dict()


def attach_image(user_id: str, content_id: str, image_url: str, db: Session) -> bool:
    """Link a generated image to a content row; a missing row is only logged"""
    try:
        _update_owned_content(user_id, content_id, {ContentHistoryItem.image_url: image_url}, db)
        return True
    except ContentNotFoundError:
        return False


def get_frequent_templates(user_id: str, db: Session, limit: int = FREQUENT_TEMPLATES_LIMIT) -> List[Dict]:
    """The user's most used output formats (case-insensitive) with counts"""
    template_id = func.lower(ContentHistoryItem.output_format)
    usage_count = func.count(ContentHistoryItem.id)
    rows = db.query(template_id, usage_count).filter(
        ContentHistoryItem.user_id == user_id
    ).group_by(template_id).order_by(usage_count.desc(), template_id.asc()).limit(limit).all()
    return [{"template_id": row[0], "usage_count": row[1]} for row in rows]
