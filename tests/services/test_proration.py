"""
Tests for proration previews
"""

from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from src.services.billing_errors import OwnershipError
from src.services.proration import (
    ProrationService,
    format_amount,
    is_proration_line,
    sum_proration_lines,
)
from tests.helpers.data_generators import make_record, make_subscription


@pytest.fixture
def service(processor):
    processor.retrieve_subscription.return_value = make_subscription(
        "price_pro_monthly", unit_amount=2900
    )
    processor.retrieve_price.return_value = {
        "id": "price_premium_monthly",
        "unit_amount": 9900,
        "currency": "usd",
    }
    return ProrationService(processor)


@pytest.fixture(autouse=True)
def owned_record():
    with patch("src.services.records.get_subscription_by_user_id", return_value=make_record()):
        yield


def _invoice(*lines):
    return {"currency": "usd", "lines": {"data": list(lines)}}


class TestLineDetection:
    def test_legacy_proration_flag(self):
        assert is_proration_line({"amount": 100, "proration": True})

    def test_parent_item_details_flag(self):
        line = {
            "amount": 100,
            "parent": {"subscription_item_details": {"proration": True}},
        }
        assert is_proration_line(line)

    def test_regular_line(self):
        assert not is_proration_line({"amount": 9900, "proration": False})

    def test_sums_zero_one_or_many_lines(self):
        assert sum_proration_lines(_invoice()) == 0
        assert sum_proration_lines(_invoice({"amount": 500, "proration": True})) == 500
        assert (
            sum_proration_lines(
                _invoice(
                    {"amount": -2500, "proration": True},
                    {"amount": 8500, "proration": True},
                    {"amount": 9900, "proration": False},
                )
            )
            == 6000
        )


def test_format_amount():
    assert format_amount(1234) == "$12.34"
    assert format_amount(-1234) == "$12.34"
    assert format_amount(0) == "$0.00"


def test_upgrade_preview(service, processor):
    processor.preview_invoice.return_value = _invoice(
        {"amount": -1450, "proration": True},
        {"amount": 4950, "proration": True},
        {"amount": 9900, "proration": False},
    )

    summary = service.preview_proration("user_123", "sub_test123", "price_premium_monthly")

    processor.preview_invoice.assert_called_once_with(
        customer_id="cus_test123",
        subscription_id="sub_test123",
        items=[{"id": "si_test123", "price": "price_premium_monthly"}],
        proration_behavior="always_invoice",
    )
    # Current price is expanded on the subscription item; only the target is fetched
    processor.retrieve_price.assert_called_once_with("price_premium_monthly")

    assert summary.current_price_amount == 2900
    assert summary.new_price_amount == 9900
    assert summary.proration_amount == 3500
    assert summary.is_upgrade is True
    assert summary.amount_due_now == 3500
    assert summary.amount_due_now_formatted == "$35.00"
    assert summary.credit_amount == 0
    assert summary.currency == "usd"
    assert summary.period_end == datetime(2026, 2, 1, tzinfo=UTC)


def test_downgrade_preview_reports_credit(service, processor):
    processor.retrieve_subscription.return_value = make_subscription(
        "price_premium_monthly", unit_amount=9900
    )
    processor.retrieve_price.return_value = {"id": "price_pro_monthly", "unit_amount": 2900}
    processor.preview_invoice.return_value = _invoice(
        {"amount": -4950, "parent": {"subscription_item_details": {"proration": True}}},
        {"amount": 1450, "parent": {"subscription_item_details": {"proration": True}}},
    )

    summary = service.preview_proration("user_123", "sub_test123", "price_pro_monthly")

    assert summary.is_upgrade is False
    assert summary.proration_amount == -3500
    assert summary.amount_due_now == 0
    assert summary.credit_amount == 3500
    assert summary.credit_amount_formatted == "$35.00"


def test_preview_is_read_only(service, processor):
    processor.preview_invoice.return_value = _invoice()

    with patch("src.services.records.update_subscription_record") as mock_update:
        service.preview_proration("user_123", "sub_test123", "price_premium_monthly")

    mock_update.assert_not_called()
    processor.modify_subscription.assert_not_called()


def test_foreign_subscription_is_forbidden(service, processor):
    with pytest.raises(OwnershipError):
        service.preview_proration("user_123", "sub_other", "price_premium_monthly")

    assert processor.method_calls == []
