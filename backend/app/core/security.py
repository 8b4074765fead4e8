"""Security dependencies, middleware helpers, and rate limiting"""
import json
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional
from fastapi import Header, HTTPException, Request
from app.db.redis import check_rate_limit as redis_check_rate_limit
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.schemas.auth import AuthUser

security_logger = logging.getLogger("security")
api_access_logger = logging.getLogger("api_access")


def get_access_token(request: Request) -> Optional[str]:
    """Read the access token from the Authorization header or the session cookie"""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(settings.SUPABASE_AUTH_COOKIE)


def _token_source(request: Request) -> str:
    return "bearer" if request.headers.get("Authorization") else "cookie"


def authenticate_request(request: Request) -> AuthUser:
    """Resolve the request's access token to the auth provider's user

    Raises:
        AuthenticationError: If no token is present or the provider rejects it
    """
    from app.services.auth_service import get_user_from_token

    access_token = get_access_token(request)
    if not access_token:
        raise AuthenticationError()

    user = get_user_from_token(access_token, source=_token_source(request))
    if not user:
        security_logger.warning(
            f"Invalid access token - IP: {request.client.host if request.client else 'unknown'}, "
            f"Path: {request.url.path}"
        )
        raise AuthenticationError("Invalid or expired session")

    return user


def require_auth(request: Request) -> AuthUser:
    """Dependency: Require authentication, return the auth provider's user"""
    try:
        return authenticate_request(request)
    except AuthenticationError as e:
        raise HTTPException(e.status_code, e.message)


def get_optional_user(request: Request) -> Optional[AuthUser]:
    """Dependency: Return the authenticated user if a valid token is present"""
    from app.services.auth_service import get_user_from_token

    access_token = get_access_token(request)
    if not access_token:
        return None
    return get_user_from_token(access_token, source=_token_source(request))


def require_admin_key(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")) -> None:
    """Dependency: Require the operator API key for repair endpoints"""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(403, "Admin endpoints are disabled")
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        security_logger.warning("Rejected admin request with invalid X-Admin-Key")
        raise HTTPException(403, "Forbidden")


def ensure_same_user(user: AuthUser, requested_user_id: Optional[str]) -> None:
    """Reject requests that act on another user's behalf"""
    if requested_user_id and user.id != requested_user_id:
        security_logger.warning(f"User {user.id} attempted to act as {requested_user_id}")
        raise HTTPException(403, "User mismatch")


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for rate limiting"""
    access_token = get_access_token(request)
    if access_token:
        return f"token:{access_token[-16:]}"

    # Fallback to IP address
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit

    Args:
        identifier: Client identifier (token suffix or IP)
        strict: If True, use stricter rate limits for state-changing operations

    Returns:
        True if within limit (or Redis is unavailable), False if exceeded
    """
    try:
        return redis_check_rate_limit(identifier, strict=strict)
    except Exception as e:
        security_logger.warning(f"Rate limit check failed, allowing request: {e}")
        return True


def log_api_access(
    request: Request,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"

    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "query": str(request.url.query) if request.url.query else None,
        "authenticated": get_access_token(request) is not None,
        "client_ip": client_ip,
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "origin": request.headers.get("Origin", "none"),
        "status_code": status_code,
        "error": error
    }

    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")
