"""Token API routes"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.security import require_auth
from app.db.session import get_db
from app.schemas.auth import AuthUser
from app.services.subscription_service import initialize_account, get_account_debug
from app.services.token_service import get_token_balance, get_token_transactions, initialize_tokens

router = APIRouter(prefix="/api/tokens", tags=["tokens"])
account_router = APIRouter(prefix="/api", tags=["tokens"])


@router.get("/balance")
def get_balance(user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    """Get current token balance"""
    return get_token_balance(user.id, db)


@router.get("/transactions")
def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Get token transaction history"""
    transactions = get_token_transactions(user.id, limit, db)
    return {"transactions": transactions}


@account_router.post("/init-tokens")
def init_tokens(user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    """Seed the monthly allowance for a new user (idempotent)"""
    usage, created = initialize_tokens(user.id, db)
    message = "Tokens initialized successfully" if created else "Tokens already initialized"
    return {"success": True, "message": message, "data": usage.to_dict()}


@account_router.get("/token-debug")
def token_debug(user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    """Raw subscription and token rows for the current user"""
    return get_account_debug(user, db)


@account_router.post("/token-debug")
def token_debug_initialize(user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    """Create missing subscription and token rows for the current user"""
    return initialize_account(user.id, db)
