"""Account service - full account deletion"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.content_history import ContentHistoryItem
from app.models.subscription import UserSubscription
from app.models.token_transaction import TokenTransaction
from app.models.token_usage import TokenUsage
from app.schemas.auth import AuthUser
from app.services.auth_service import delete_user
from app.services.stripe_service import get_customer_id, cancel_active_subscriptions

logger = logging.getLogger(__name__)


def delete_account(user: AuthUser, db: Session, access_token: Optional[str] = None) -> Dict:
    """
    Delete everything we hold for a user, then the auth user itself.

    Stripe cancellation failures are logged and do not stop the deletion.

    Raises:
        AccountDeletionError: If the auth provider refuses to delete the user
    """
    customer_id = get_customer_id(user, db)
    if customer_id:
        try:
            canceled = cancel_active_subscriptions(customer_id)
            logger.info(f"Canceled {canceled} Stripe subscriptions for user {user.id}")
        except Exception as e:
            logger.error(f"Failed to cancel Stripe subscriptions for user {user.id}: {e}", exc_info=True)

    try:
        for model in (ContentHistoryItem, TokenTransaction, TokenUsage, UserSubscription):
            deleted = db.query(model).filter(model.user_id == user.id).delete(synchronize_session=False)
            logger.info(f"Deleted {deleted} {model.__tablename__} rows for user {user.id}")
        db.commit()
    except Exception:
        db.rollback()
        raise

    delete_user(user.id, access_token=access_token)
    logger.info(f"Account deleted for user {user.id}")
    return {"message": "Account deleted successfully"}
