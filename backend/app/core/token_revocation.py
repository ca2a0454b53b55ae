"""
Token Revocation System using Redis.

Blacklists JWT tokens so a logout takes effect before the token expires.
"""

import logging
from typing import Optional
from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


async def revoke_token(token: str, user_id: int, ttl_seconds: Optional[int] = None) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    The entry lives as long as the token would have, so the blacklist
    never outgrows the set of still-valid tokens.

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        ttl_seconds = ttl_seconds or settings.access_token_expire_minutes * 60
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_module.redis_client.setex(key, ttl_seconds, str(user_id))
        return True
    except Exception as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except Exception as e:
        # Fail open: Redis outage must not lock every user out
        logger.warning("Error checking token revocation: %s", e)
        return False
