"""Auth service - Supabase Auth REST calls"""
import hashlib
import logging
from typing import Optional

import httpx

from app.core.config import settings, SUPABASE_AUTH_URL
from app.core.exceptions import AccountDeletionError
from app.core.metrics import auth_attempts_counter
from app.db.redis import get_cached_auth_user, set_cached_auth_user, invalidate_cached_auth_user
from app.schemas.auth import AuthUser

logger = logging.getLogger(__name__)

AUTH_TIMEOUT = 10.0


def token_fingerprint(access_token: str) -> str:
    """Stable, non-reversible cache key for an access token"""
    return hashlib.sha256(access_token.encode("utf-8")).hexdigest()


def _to_auth_user(payload: dict) -> AuthUser:
    return AuthUser(
        id=payload["id"],
        email=payload.get("email"),
        user_metadata=payload.get("user_metadata") or {},
    )


def _admin_headers() -> dict:
    return {
        "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
        "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
    }


def get_user_from_token(access_token: str, source: str = "bearer") -> Optional[AuthUser]:
    """Validate an access token with the auth provider and return its user

    Successful lookups are cached in Redis for AUTH_CACHE_TTL seconds.

    Returns:
        AuthUser, or None if the token is invalid or expired
    """
    fingerprint = token_fingerprint(access_token)

    try:
        cached = get_cached_auth_user(fingerprint)
        if cached:
            return AuthUser(**cached)
    except Exception as e:
        logger.warning(f"Auth cache read failed: {e}")

    try:
        response = httpx.get(
            f"{SUPABASE_AUTH_URL}/user",
            headers={
                "apikey": settings.SUPABASE_ANON_KEY,
                "Authorization": f"Bearer {access_token}",
            },
            timeout=AUTH_TIMEOUT
        )
    except httpx.RequestError as e:
        logger.error(f"Auth provider unreachable: {e}")
        auth_attempts_counter.labels(status="error", source=source).inc()
        return None

    if response.status_code != 200:
        auth_attempts_counter.labels(status="failure", source=source).inc()
        return None

    user = _to_auth_user(response.json())
    auth_attempts_counter.labels(status="success", source=source).inc()

    try:
        set_cached_auth_user(fingerprint, user.model_dump())
    except Exception as e:
        logger.warning(f"Auth cache write failed: {e}")

    return user


def get_user_by_id(user_id: str) -> Optional[AuthUser]:
    """Look up a user with the service-role key

    Returns:
        AuthUser, or None if the user does not exist

    Raises:
        httpx.HTTPStatusError: For any other provider error
    """
    response = httpx.get(
        f"{SUPABASE_AUTH_URL}/admin/users/{user_id}",
        headers=_admin_headers(),
        timeout=AUTH_TIMEOUT
    )
    if response.status_code == 404:
        return None
    response.raise_for_status()
    payload = response.json()
    # Some deployments wrap the admin payload in {"user": {...}}
    return _to_auth_user(payload.get("user", payload))


def delete_user(user_id: str, access_token: Optional[str] = None) -> None:
    """Delete a user from the auth provider

    Raises:
        AccountDeletionError: If the provider refuses or is unreachable
    """
    try:
        response = httpx.delete(
            f"{SUPABASE_AUTH_URL}/admin/users/{user_id}",
            headers=_admin_headers(),
            timeout=AUTH_TIMEOUT
        )
    except httpx.RequestError as e:
        raise AccountDeletionError(f"Failed to delete user account: {e}")

    if response.status_code >= 400:
        logger.error(f"Auth provider refused to delete user {user_id}: HTTP {response.status_code} {response.text}")
        raise AccountDeletionError("Failed to delete user account")

    if access_token:
        invalidate_cached_auth_user(token_fingerprint(access_token))

    logger.info(f"Deleted auth user {user_id}")
