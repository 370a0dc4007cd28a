"""
Tests for checkout verification
"""

from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from src.schemas.payments import BillingInterval, SubscriptionStatus, Tier
from src.services.billing_errors import BusinessRuleError, OwnershipError, PersistenceError
from src.services.checkout_verifier import CheckoutVerifier
from tests.helpers.data_generators import (
    ANNUAL_PERIOD_END,
    make_checkout_session,
    make_record,
    make_subscription,
)


@pytest.fixture
def verifier(processor):
    return CheckoutVerifier(processor)


@pytest.fixture
def free_record():
    with patch(
        "src.services.checkout_verifier.get_subscription_by_user_id",
        return_value=make_record(
            tier="free",
            monthly_limit=10,
            stripe_subscription_id=None,
            has_used_trial=False,
        ),
    ):
        yield


@pytest.fixture
def mock_upsert():
    with patch("src.services.checkout_verifier.upsert_subscription_record") as mock:
        yield mock


def test_already_processed_short_circuits(verifier, processor, mock_upsert):
    with patch(
        "src.services.checkout_verifier.get_subscription_by_user_id",
        return_value=make_record(),
    ):
        result = verifier.verify_checkout_session("user_123", "cs_test123")

    assert result.success is True
    assert result.already_processed is True
    assert result.tier == Tier.PROFESSIONAL
    assert processor.method_calls == []
    mock_upsert.assert_not_called()


def test_expanded_subscription_is_bound(verifier, processor, free_record, mock_upsert):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        subscription=make_subscription("price_premium_annual", period_end=ANNUAL_PERIOD_END)
    )

    result = verifier.verify_checkout_session("user_123", "cs_test123")

    processor.retrieve_checkout_session.assert_called_once_with(
        "cs_test123", expand=["subscription"]
    )
    processor.retrieve_subscription.assert_not_called()

    user_id, fields = mock_upsert.call_args.args
    assert user_id == "user_123"
    assert fields == {
        "stripe_customer_id": "cus_test123",
        "stripe_subscription_id": "sub_test123",
        "tier": Tier.PREMIUM,
        "status": SubscriptionStatus.ACTIVE,
        "monthly_limit": 999999,
        "billing_interval": BillingInterval.ANNUAL,
        "has_used_trial": True,
        "usage_reset_date": datetime(2027, 1, 1, tzinfo=UTC),
        "cancel_at_period_end": False,
    }
    assert result.success is True
    assert result.tier == Tier.PREMIUM
    assert result.already_processed is False


def test_id_only_subscription_is_retrieved(verifier, processor, free_record, mock_upsert):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        subscription="sub_test123", payment_status="no_payment_required"
    )
    processor.retrieve_subscription.return_value = make_subscription(
        "price_pro_monthly", status="trialing"
    )

    result = verifier.verify_checkout_session("user_123", "cs_test123")

    processor.retrieve_subscription.assert_called_once_with("sub_test123")
    assert result.tier == Tier.PROFESSIONAL
    assert result.status == SubscriptionStatus.ACTIVE


def test_foreign_session_is_rejected_without_write(
    verifier, processor, free_record, mock_upsert
):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        user_id="someone_else", subscription="sub_other"
    )

    with pytest.raises(OwnershipError):
        verifier.verify_checkout_session("user_123", "cs_test123")

    processor.retrieve_subscription.assert_not_called()
    mock_upsert.assert_not_called()


def test_unpaid_session_is_rejected(verifier, processor, free_record, mock_upsert):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        payment_status="unpaid", subscription="sub_test123"
    )

    with pytest.raises(BusinessRuleError):
        verifier.verify_checkout_session("user_123", "cs_test123")

    mock_upsert.assert_not_called()


def test_session_without_subscription_is_rejected(
    verifier, processor, free_record, mock_upsert
):
    processor.retrieve_checkout_session.return_value = make_checkout_session(subscription=None)

    with pytest.raises(BusinessRuleError):
        verifier.verify_checkout_session("user_123", "cs_test123")

    mock_upsert.assert_not_called()


def test_persistence_failure_is_surfaced(verifier, processor, free_record):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        subscription=make_subscription()
    )

    with patch(
        "src.services.checkout_verifier.upsert_subscription_record",
        side_effect=PersistenceError("db down"),
    ):
        with pytest.raises(PersistenceError):
            verifier.verify_checkout_session("user_123", "cs_test123")


@pytest.mark.parametrize("ended_status", ["canceled", "incomplete_expired"])
def test_ended_subscription_is_not_reactivated(verifier, processor, mock_upsert, ended_status):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        subscription=make_subscription("price_premium_monthly", status=ended_status)
    )

    with patch(
        "src.services.checkout_verifier.get_subscription_by_user_id",
        return_value=make_record(tier="premium", status="cancelled"),
    ):
        with pytest.raises(BusinessRuleError):
            verifier.verify_checkout_session("user_123", "cs_test123")

    mock_upsert.assert_not_called()


def test_past_due_subscription_keeps_its_status(verifier, processor, free_record, mock_upsert):
    processor.retrieve_checkout_session.return_value = make_checkout_session(
        subscription=make_subscription("price_pro_monthly", status="past_due")
    )

    result = verifier.verify_checkout_session("user_123", "cs_test123")

    assert mock_upsert.call_args.args[1]["status"] == SubscriptionStatus.PAST_DUE
    assert result.status == SubscriptionStatus.PAST_DUE
