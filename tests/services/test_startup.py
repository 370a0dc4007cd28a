"""
Tests for the application lifespan
"""

from unittest.mock import MagicMock, patch

import pytest

from src.services.startup import lifespan


@pytest.mark.asyncio
async def test_lifespan_warms_and_cleans_up_client():
    with (
        patch("src.services.startup.Config") as mock_config,
        patch("src.services.startup.get_supabase_client") as mock_get_client,
        patch("src.services.startup.cleanup_supabase_client") as mock_cleanup,
    ):
        async with lifespan(MagicMock()):
            mock_config.validate.assert_called_once()
            mock_get_client.assert_called_once()
            mock_cleanup.assert_not_called()

    mock_cleanup.assert_called_once()


@pytest.mark.asyncio
async def test_lifespan_starts_degraded_without_datastore():
    with (
        patch("src.services.startup.Config"),
        patch(
            "src.services.startup.get_supabase_client",
            side_effect=RuntimeError("Supabase client initialization failed"),
        ),
        patch("src.services.startup.cleanup_supabase_client") as mock_cleanup,
    ):
        async with lifespan(MagicMock()):
            pass

    mock_cleanup.assert_called_once()


@pytest.mark.asyncio
async def test_lifespan_refuses_to_start_without_config():
    with patch("src.services.startup.Config") as mock_config:
        mock_config.validate.side_effect = RuntimeError("Missing required environment variables")

        with pytest.raises(RuntimeError):
            async with lifespan(MagicMock()):
                pass
