"""
Tests for Sentry error context helpers
"""

from unittest.mock import patch

from src.utils.sentry_context import capture_database_error, capture_error, capture_payment_error


def test_capture_error_sets_context_and_tags():
    error = ValueError("boom")

    with (
        patch("src.utils.sentry_context.set_context") as mock_context,
        patch("src.utils.sentry_context.set_tag") as mock_tag,
        patch("src.utils.sentry_context.capture_exception", return_value="evt_1") as mock_capture,
    ):
        event_id = capture_error(
            error,
            context_type="payment",
            context_data={"subscription_id": "sub_1"},
            tags={"operation": "cancel"},
        )

    assert event_id == "evt_1"
    mock_context.assert_called_once_with("payment", {"subscription_id": "sub_1"})
    mock_tag.assert_called_once_with("operation", "cancel")
    mock_capture.assert_called_once_with(error)


def test_capture_error_never_raises():
    with patch("src.utils.sentry_context.capture_exception", side_effect=RuntimeError("no hub")):
        assert capture_error(ValueError("boom")) is None


def test_capture_payment_error_context():
    error = ValueError("card declined")

    with patch("src.utils.sentry_context.capture_error") as mock_capture:
        capture_payment_error(
            error,
            operation="update_subscription",
            user_id="user_123",
            details={"subscription_id": "sub_1"},
        )

    kwargs = mock_capture.call_args.kwargs
    assert kwargs["context_type"] == "payment"
    assert kwargs["context_data"] == {
        "operation": "update_subscription",
        "provider": "stripe",
        "user_id": "user_123",
        "subscription_id": "sub_1",
    }
    assert kwargs["tags"] == {"operation": "update_subscription", "provider": "stripe"}


def test_capture_database_error_tags_table():
    error = ConnectionError("refused")

    with patch("src.utils.sentry_context.capture_error") as mock_capture:
        capture_database_error(error, operation="update", table="subscriptions")

    assert mock_capture.call_args.kwargs["tags"] == {
        "db_operation": "update",
        "db_table": "subscriptions",
    }
