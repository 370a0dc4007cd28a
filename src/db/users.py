import logging
import time
from typing import Any

from src.config.supabase_config import execute_with_retry
from src.utils.security_validators import sanitize_for_logging

logger = logging.getLogger(__name__)

# Profile lookups for customer creation; the data rarely changes
_profile_cache: dict[str, dict[str, Any]] = {}
_profile_cache_ttl = 300  # 5 minutes


def clear_user_cache(user_id: str | None = None) -> None:
    """Clear cached profiles (for testing or explicit invalidation)"""
    if user_id:
        _profile_cache.pop(user_id, None)
    else:
        _profile_cache.clear()


def get_user_by_id(user_id: str) -> dict[str, Any] | None:
    """
    Get the profile fields needed for billing (email, full name)

    Args:
        user_id: User's id

    Returns:
        User dictionary if found, None otherwise
    """
    cached = _profile_cache.get(user_id)
    if cached and time.monotonic() - cached["timestamp"] < _profile_cache_ttl:
        return cached["user"]

    def _fetch(client):
        return (
            client.table("users")
            .select("id, email, full_name")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )

    try:
        result = execute_with_retry(_fetch, operation_name="get_user_by_id")
    except Exception as e:
        logger.error(
            "Error getting user by ID %s: %s",
            sanitize_for_logging(str(user_id)),
            sanitize_for_logging(str(e)),
        )
        return None

    if not result.data:
        return None

    user = result.data[0]
    _profile_cache[user_id] = {"user": user, "timestamp": time.monotonic()}
    return user
