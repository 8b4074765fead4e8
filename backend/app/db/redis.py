"""Redis client for rate limiting and auth caching"""
import redis
import json
import logging
from typing import Optional, Dict
from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def ping() -> bool:
    """Check the Redis connection (raises on failure)"""
    return get_redis_client().ping()


# Rate limiting configuration
if settings.ENVIRONMENT == "development":
    RATE_LIMIT_WINDOW = 60  # seconds
    RATE_LIMIT_REQUESTS = 1000  # very lenient for dev
    RATE_LIMIT_STRICT_WINDOW = 60  # seconds
    RATE_LIMIT_STRICT_REQUESTS = 1000
else:
    RATE_LIMIT_WINDOW = 60  # seconds
    RATE_LIMIT_REQUESTS = 300  # requests per window
    RATE_LIMIT_STRICT_WINDOW = 60  # seconds
    RATE_LIMIT_STRICT_REQUESTS = 60  # requests per window for state-changing operations


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment rate limit counter and return current count.
    The TTL is set only when the key is new (fixed window rate limiting)."""
    key = f"ratelimit:{identifier}"
    client = get_redis_client()
    count = client.incr(key)
    if count == 1:
        client.expire(key, window)
    return int(count)


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit using Redis. Returns True if allowed, False if rate limited."""
    window = RATE_LIMIT_STRICT_WINDOW if strict else RATE_LIMIT_WINDOW
    max_requests = RATE_LIMIT_STRICT_REQUESTS if strict else RATE_LIMIT_REQUESTS

    current_count = increment_rate_limit(identifier, window)
    return current_count <= max_requests


def get_cached_auth_user(token_fingerprint: str) -> Optional[Dict]:
    """Get the auth provider's user record cached for an access token"""
    cached = get_redis_client().get(f"cache:auth:{token_fingerprint}")
    if cached:
        return json.loads(cached)
    return None


def set_cached_auth_user(token_fingerprint: str, user: Dict) -> None:
    """Cache the auth provider's user record for a short TTL"""
    get_redis_client().setex(
        f"cache:auth:{token_fingerprint}", settings.AUTH_CACHE_TTL, json.dumps(user)
    )


def invalidate_cached_auth_user(token_fingerprint: str) -> None:
    """Drop a cached auth lookup

    Gracefully handles Redis failures - cache invalidation should not break user operations.
    """
    try:
        get_redis_client().delete(f"cache:auth:{token_fingerprint}")
    except Exception as e:
        logger.warning(f"Failed to invalidate auth cache: {e}")
