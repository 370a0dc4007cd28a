"""
Billing portal and catalog reads

Read-side helpers for the billing page: the Stripe-hosted customer portal,
saved cards, the customer's subscriptions and the active price catalog.
All of them act on the customer bound to the caller's record.
"""

import logging
from typing import Any

from src.db.subscriptions import get_subscription_by_user_id
from src.schemas.payments import PortalSessionResponse
from src.services.billing_errors import BusinessRuleError, ProcessorError
from src.services.stripe_client import StripeProcessor
from src.utils.sentry_context import capture_payment_error
from src.utils.stripe_objects import Expanded, as_ref, get_value, ref_id

logger = logging.getLogger(__name__)


def _list_data(result: Any) -> list[Any]:
    return list(get_value(result, "data") or [])


def _card_summary(payment_method: Any) -> dict[str, Any]:
    card = get_value(payment_method, "card")
    return {
        "id": get_value(payment_method, "id"),
        "brand": get_value(card, "brand"),
        "last4": get_value(card, "last4"),
        "exp_month": get_value(card, "exp_month"),
        "exp_year": get_value(card, "exp_year"),
    }


def _price_summary(price: Any) -> dict[str, Any]:
    recurring = get_value(price, "recurring")
    product_ref = as_ref(get_value(price, "product"))
    product: dict[str, Any] | None = None
    if isinstance(product_ref, Expanded):
        product = {
            "id": product_ref.id,
            "name": get_value(product_ref.obj, "name"),
            "description": get_value(product_ref.obj, "description"),
        }
    elif product_ref is not None:
        product = {"id": product_ref.id}

    return {
        "id": get_value(price, "id"),
        "unit_amount": get_value(price, "unit_amount"),
        "currency": get_value(price, "currency"),
        "interval": get_value(recurring, "interval"),
        "product": product,
    }


def _subscription_summary(subscription: Any) -> dict[str, Any]:
    items = _list_data(get_value(subscription, "items"))
    price = get_value(items[0], "price") if items else None
    payment_method = get_value(subscription, "default_payment_method")
    return {
        "id": get_value(subscription, "id"),
        "status": get_value(subscription, "status"),
        "cancel_at_period_end": bool(get_value(subscription, "cancel_at_period_end")),
        "price_id": ref_id(price),
        "default_payment_method": (
            _card_summary(payment_method)
            if payment_method is not None and not isinstance(payment_method, str)
            else payment_method
        ),
    }


class BillingPortalService:
    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    def _bound_customer_id(self, user_id: str) -> str | None:
        record = get_subscription_by_user_id(user_id)
        return record.stripe_customer_id if record else None

    def create_portal_session(self, user_id: str, return_url: str) -> PortalSessionResponse:
        """Open a Stripe billing portal session for the caller's customer"""
        customer_id = self._bound_customer_id(user_id)
        if not customer_id:
            raise BusinessRuleError("No billing account found. Subscribe to a plan first.")

        try:
            session = self.processor.create_portal_session(customer_id, return_url)
        except ProcessorError as e:
            capture_payment_error(e, operation="create_portal_session", user_id=user_id)
            raise

        logger.info(f"Billing portal session created for user {user_id}")
        return PortalSessionResponse(url=get_value(session, "url"))

    def list_payment_methods(self, user_id: str) -> list[dict[str, Any]]:
        customer_id = self._bound_customer_id(user_id)
        if not customer_id:
            return []
        result = self.processor.list_payment_methods(customer_id)
        return [_card_summary(pm) for pm in _list_data(result)]

    def list_subscriptions(self, user_id: str) -> list[dict[str, Any]]:
        customer_id = self._bound_customer_id(user_id)
        if not customer_id:
            return []
        result = self.processor.list_subscriptions(customer_id)
        return [_subscription_summary(sub) for sub in _list_data(result)]

    def list_prices(self) -> list[dict[str, Any]]:
        """Active prices with their products"""
        return [_price_summary(price) for price in _list_data(self.processor.list_prices())]
