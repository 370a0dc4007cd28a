"""
Tests for subscription record access rules
"""

from unittest.mock import patch

import pytest

from src.schemas.payments import SubscriptionStatus
from src.services.billing_errors import (
    OwnershipError,
    PersistenceError,
    SubscriptionNotFoundError,
)
from src.services.records import local_status, require_subscription_owner, write_after_mutation
from tests.helpers.data_generators import make_record


class TestLocalStatus:
    @pytest.mark.parametrize(
        "processor_status,expected",
        [
            ("active", SubscriptionStatus.ACTIVE),
            ("trialing", SubscriptionStatus.TRIALING),
            ("past_due", SubscriptionStatus.PAST_DUE),
            ("unpaid", SubscriptionStatus.PAST_DUE),
            ("canceled", SubscriptionStatus.CANCELLED),
            ("incomplete_expired", SubscriptionStatus.EXPIRED),
        ],
    )
    def test_known_statuses(self, processor_status, expected):
        assert local_status(processor_status) == expected

    def test_unknown_status_reads_as_active(self):
        assert local_status("something_new") == SubscriptionStatus.ACTIVE


class TestRequireSubscriptionOwner:
    def test_owner_gets_record(self):
        with patch(
            "src.services.records.get_subscription_by_user_id", return_value=make_record()
        ):
            record = require_subscription_owner("user_123", "sub_test123")

        assert record.stripe_subscription_id == "sub_test123"

    def test_other_subscription_is_rejected(self):
        with patch(
            "src.services.records.get_subscription_by_user_id", return_value=make_record()
        ):
            with pytest.raises(OwnershipError):
                require_subscription_owner("user_123", "sub_someone_else")

    def test_unbound_record_is_rejected(self):
        with patch(
            "src.services.records.get_subscription_by_user_id",
            return_value=make_record(stripe_subscription_id=None),
        ):
            with pytest.raises(OwnershipError):
                require_subscription_owner("user_123", "sub_test123")

    def test_missing_record(self):
        with patch("src.services.records.get_subscription_by_user_id", return_value=None):
            with pytest.raises(SubscriptionNotFoundError) as exc_info:
                require_subscription_owner("user_123", "sub_test123")

        assert exc_info.value.user_id == "user_123"


class TestWriteAfterMutation:
    def test_returns_updated_record(self):
        updated = make_record(cancel_at_period_end=True)
        with patch(
            "src.services.records.update_subscription_record", return_value=updated
        ) as mock_update:
            result = write_after_mutation("user_123", {"cancel_at_period_end": True}, "cancel")

        mock_update.assert_called_once_with("user_123", {"cancel_at_period_end": True})
        assert result is updated

    def test_write_failure_is_captured_not_raised(self):
        with (
            patch(
                "src.services.records.update_subscription_record",
                side_effect=PersistenceError("db down"),
            ),
            patch("src.services.records.capture_database_error") as mock_capture,
        ):
            result = write_after_mutation("user_123", {"tier": "premium"}, "update_subscription")

        assert result is None
        assert mock_capture.call_args.kwargs["operation"] == "update_subscription"
        assert mock_capture.call_args.kwargs["details"] == {
            "user_id": "user_123",
            "columns": ["tier"],
        }
