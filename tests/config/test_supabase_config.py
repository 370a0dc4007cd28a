"""
Tests for src/config/supabase_config.py
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

import src.config.supabase_config as supabase_config_mod


@pytest.fixture(autouse=True)
def _reset_client_state():
    supabase_config_mod._supabase_client = None
    supabase_config_mod._last_error = None
    supabase_config_mod._last_error_time = 0
    yield
    supabase_config_mod._supabase_client = None
    supabase_config_mod._last_error = None
    supabase_config_mod._last_error_time = 0


class TestGetSupabaseClient:
    def test_rejects_url_without_protocol(self):
        with patch.object(supabase_config_mod.Config, "SUPABASE_URL", "test.supabase.co"):
            with pytest.raises(RuntimeError) as exc_info:
                supabase_config_mod.get_supabase_client()

        assert "https://" in str(exc_info.value)

    def test_failure_is_cached(self):
        with patch.object(supabase_config_mod.Config, "SUPABASE_URL", "test.supabase.co"):
            with pytest.raises(RuntimeError):
                supabase_config_mod.get_supabase_client()

        with patch("src.config.supabase_config.create_client") as mock_create:
            with pytest.raises(RuntimeError) as exc_info:
                supabase_config_mod.get_supabase_client()

        mock_create.assert_not_called()
        assert "retry in" in str(exc_info.value)

    def test_client_is_reused(self):
        with patch("src.config.supabase_config.create_client") as mock_create:
            first = supabase_config_mod.get_supabase_client()
            second = supabase_config_mod.get_supabase_client()

        assert first is second
        mock_create.assert_called_once()


class TestHttp2ErrorDetection:
    @pytest.mark.parametrize(
        "error",
        [
            httpx.RemoteProtocolError("ConnectionTerminated"),
            Exception("<ConnectionState.CLOSED: 6>: StreamInputs.SEND_HEADERS"),
            Exception("Invalid input ConnectionInputs.RECV_DATA in state ConnectionState.CLOSED"),
        ],
    )
    def test_protocol_errors(self, error):
        assert supabase_config_mod.is_http2_protocol_error(error) is True

    def test_ordinary_errors(self):
        assert supabase_config_mod.is_http2_protocol_error(ValueError("bad row")) is False


class TestExecuteWithRetry:
    def test_resets_and_retries_protocol_errors(self):
        client = MagicMock()
        operation = MagicMock(
            side_effect=[Exception("stream closed by peer"), {"data": [1]}]
        )

        with (
            patch("src.config.supabase_config.get_supabase_client", return_value=client),
            patch("src.config.supabase_config.reset_supabase_client") as mock_reset,
            patch("src.config.supabase_config.time.sleep"),
        ):
            result = supabase_config_mod.execute_with_retry(operation, operation_name="read")

        assert result == {"data": [1]}
        assert operation.call_count == 2
        mock_reset.assert_called_once()

    def test_other_errors_raise_immediately(self):
        operation = MagicMock(side_effect=ValueError("constraint violated"))

        with patch("src.config.supabase_config.get_supabase_client", return_value=MagicMock()):
            with pytest.raises(ValueError):
                supabase_config_mod.execute_with_retry(operation)

        assert operation.call_count == 1

    def test_gives_up_after_max_retries(self):
        operation = MagicMock(side_effect=Exception("GOAWAY received"))

        with (
            patch("src.config.supabase_config.get_supabase_client", return_value=MagicMock()),
            patch("src.config.supabase_config.reset_supabase_client"),
            patch("src.config.supabase_config.time.sleep"),
        ):
            with pytest.raises(Exception, match="GOAWAY"):
                supabase_config_mod.execute_with_retry(operation, max_retries=2)

        assert operation.call_count == 3
