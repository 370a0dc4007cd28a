"""
FastAPI Security Dependencies
Resolve the authenticated caller from a Supabase access token
"""

import asyncio
import logging
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config.supabase_config import get_supabase_client
from src.utils.exceptions import APIExceptions

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme with auto_error=False to allow custom error handling
security = HTTPBearer(auto_error=False)


def _lookup_token_user(token: str) -> Any:
    return get_supabase_client().auth.get_user(token)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict[str, Any]:
    """
    Get the authenticated user for the bearer token.

    Args:
        credentials: HTTP Authorization credentials containing the access token

    Returns:
        Dict with the user's `id` and `email`

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise APIExceptions.unauthorized("Authorization header is required")

    try:
        response = await asyncio.to_thread(_lookup_token_user, credentials.credentials)
    except Exception as e:
        logger.warning(f"Access token validation failed: {type(e).__name__}")
        raise APIExceptions.unauthorized() from e

    user = getattr(response, "user", None)
    if user is None:
        raise APIExceptions.unauthorized()

    return {"id": str(user.id), "email": getattr(user, "email", None)}
