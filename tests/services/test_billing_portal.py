"""
Tests for billing portal and catalog reads
"""

from unittest.mock import patch

import pytest

from src.services.billing_errors import BusinessRuleError
from src.services.billing_portal import BillingPortalService
from tests.helpers.data_generators import make_record, make_subscription


@pytest.fixture
def service(processor):
    return BillingPortalService(processor)


@pytest.fixture
def bound_customer():
    with patch(
        "src.services.billing_portal.get_subscription_by_user_id", return_value=make_record()
    ):
        yield


@pytest.fixture
def no_customer():
    with patch(
        "src.services.billing_portal.get_subscription_by_user_id",
        return_value=make_record(stripe_customer_id=None),
    ):
        yield


def test_portal_session_uses_bound_customer(service, processor, bound_customer):
    processor.create_portal_session.return_value = {"url": "https://billing.stripe.com/p/1"}

    result = service.create_portal_session("user_123", "https://app/billing")

    processor.create_portal_session.assert_called_once_with("cus_test123", "https://app/billing")
    assert result.url == "https://billing.stripe.com/p/1"


def test_portal_session_requires_customer(service, processor, no_customer):
    with pytest.raises(BusinessRuleError):
        service.create_portal_session("user_123", "https://app/billing")

    processor.create_portal_session.assert_not_called()


def test_list_payment_methods(service, processor, bound_customer):
    processor.list_payment_methods.return_value = {
        "data": [
            {
                "id": "pm_1",
                "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030},
            }
        ]
    }

    methods = service.list_payment_methods("user_123")

    assert methods == [
        {"id": "pm_1", "brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}
    ]


def test_reads_without_customer_are_empty(service, processor, no_customer):
    assert service.list_payment_methods("user_123") == []
    assert service.list_subscriptions("user_123") == []
    assert processor.method_calls == []


def test_list_subscriptions(service, processor, bound_customer):
    subscription = make_subscription("price_pro_annual", cancel_at_period_end=True)
    subscription["default_payment_method"] = "pm_1"
    processor.list_subscriptions.return_value = {"data": [subscription]}

    result = service.list_subscriptions("user_123")

    processor.list_subscriptions.assert_called_once_with("cus_test123")
    assert result == [
        {
            "id": "sub_test123",
            "status": "active",
            "cancel_at_period_end": True,
            "price_id": "price_pro_annual",
            "default_payment_method": "pm_1",
        }
    ]


def test_list_prices_with_expanded_and_bare_products(service, processor):
    processor.list_prices.return_value = {
        "data": [
            {
                "id": "price_pro_monthly",
                "unit_amount": 2900,
                "currency": "usd",
                "recurring": {"interval": "month"},
                "product": {"id": "prod_pro", "name": "Professional", "description": None},
            },
            {
                "id": "price_credits",
                "unit_amount": 500,
                "currency": "usd",
                "recurring": None,
                "product": "prod_credits",
            },
        ]
    }

    prices = service.list_prices()

    assert prices[0]["product"] == {"id": "prod_pro", "name": "Professional", "description": None}
    assert prices[0]["interval"] == "month"
    assert prices[1]["product"] == {"id": "prod_credits"}
    assert prices[1]["interval"] is None
