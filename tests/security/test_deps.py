"""
Tests for the bearer-token user dependency
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from src.security.deps import get_current_user


def _credentials(token: str = "valid_token") -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def _supabase_with(response=None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.auth.get_user.side_effect = error
    else:
        client.auth.get_user.return_value = response
    return client


@pytest.mark.asyncio
async def test_missing_credentials_is_unauthorized():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(credentials=None)

    assert exc_info.value.status_code == 401
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
async def test_valid_token_resolves_user():
    response = SimpleNamespace(user=SimpleNamespace(id="user_123", email="test@example.com"))

    with patch(
        "src.security.deps.get_supabase_client", return_value=_supabase_with(response)
    ) as mock_client:
        user = await get_current_user(credentials=_credentials())

    mock_client.return_value.auth.get_user.assert_called_once_with("valid_token")
    assert user == {"id": "user_123", "email": "test@example.com"}


@pytest.mark.asyncio
async def test_rejected_token_is_unauthorized():
    with patch(
        "src.security.deps.get_supabase_client",
        return_value=_supabase_with(error=Exception("invalid JWT")),
    ):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=_credentials("expired"))

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_response_without_user_is_unauthorized():
    with patch(
        "src.security.deps.get_supabase_client",
        return_value=_supabase_with(SimpleNamespace(user=None)),
    ):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=_credentials())

    assert exc_info.value.status_code == 401
