"""User account API routes"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.exceptions import RepurposelyError
from app.core.security import require_auth, get_access_token
from app.db.session import get_db
from app.schemas.auth import AuthUser
from app.services.account_service import delete_account
from app.services.auth_service import get_user_from_token

router = APIRouter(prefix="/api", tags=["user"])
logger = logging.getLogger(__name__)


@router.post("/user/delete")
def delete_user_account(
    request: Request,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Delete the account, its history, balance and subscription"""
    try:
        return delete_account(user, db, access_token=get_access_token(request))
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)


@router.get("/auth-status")
def auth_status(request: Request):
    """Session diagnostics for the client"""
    access_token = get_access_token(request)
    user: Optional[AuthUser] = None
    error = None
    if access_token:
        try:
            user = get_user_from_token(access_token)
            if not user:
                error = "Invalid or expired session"
        except Exception as e:
            logger.error(f"Auth status check failed: {e}", exc_info=True)
            error = str(e)

    source = "bearer" if request.headers.get("Authorization") else "cookie"
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": {
            "error": error,
            "hasSession": access_token is not None,
            "hasUser": user is not None,
            "sessionData": {"source": source} if access_token else None,
            "userData": {"id": user.id, "email": user.email} if user else None,
        },
    }
