"""Admin API routes"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.exceptions import RepurposelyError
from app.core.security import require_admin_key
from app.db.session import get_db
from app.services.subscription_service import repair_subscription

router = APIRouter(prefix="/api", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/fix-subscription", dependencies=[Depends(require_admin_key)])
def fix_subscription(
    userId: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Force a user onto an active PRO subscription with a full token balance"""
    if not userId:
        raise HTTPException(400, "User ID is required")
    try:
        return repair_subscription(userId, db)
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    except Exception as e:
        logger.error(f"Error repairing subscription for user {userId}: {e}", exc_info=True)
        raise HTTPException(500, "Failed to repair subscription")
