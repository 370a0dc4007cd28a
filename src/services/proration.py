"""
Proration preview

Asks Stripe for the invoice a price change would produce right now and
summarises its proration lines, without changing anything.
"""

import logging
from typing import Any

from src.schemas.payments import ProrationSummary
from src.services.billing_errors import BusinessRuleError, ProcessorError
from src.services.records import require_subscription_owner
from src.services.stripe_client import StripeProcessor
from src.utils.sentry_context import capture_payment_error
from src.utils.stripe_objects import (
    Expanded,
    IdOnly,
    as_ref,
    first_subscription_item,
    get_period_bounds,
    get_value,
    ref_id,
    to_datetime,
)

logger = logging.getLogger(__name__)


def format_amount(cents: int) -> str:
    """Format a non-negative amount in cents as '$12.34'"""
    return f"${abs(cents) / 100:,.2f}"


def is_proration_line(line: Any) -> bool:
    """
    A preview line is a proration if it says so directly or, on newer API
    versions, through its parent subscription item details.
    """
    if get_value(line, "proration"):
        return True
    parent = get_value(line, "parent")
    details = get_value(parent, "subscription_item_details")
    return bool(get_value(details, "proration"))


def sum_proration_lines(invoice: Any) -> int:
    """Signed total (cents) of every proration line on the invoice"""
    lines = get_value(invoice, "lines")
    data = get_value(lines, "data") or []
    return sum(int(get_value(line, "amount") or 0) for line in data if is_proration_line(line))


class ProrationService:
    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    def preview_proration(
        self, user_id: str, subscription_id: str, new_price_id: str
    ) -> ProrationSummary:
        """
        Preview the charge or credit of moving the subscription to new_price_id.

        Returns:
            ProrationSummary where proration_amount is signed (positive means
            the customer pays now, negative means a credit on the next invoice)
        """
        require_subscription_owner(user_id, subscription_id)

        try:
            subscription = self.processor.retrieve_subscription(subscription_id)
            item = first_subscription_item(subscription)
            if item is None:
                raise BusinessRuleError("Subscription has no items to preview")

            price_ref = as_ref(get_value(item, "price"))
            if isinstance(price_ref, Expanded):
                current_price = price_ref.obj
            elif isinstance(price_ref, IdOnly):
                current_price = self.processor.retrieve_price(price_ref.id)
            else:
                raise BusinessRuleError("Subscription item has no price")
            new_price = self.processor.retrieve_price(new_price_id)

            invoice = self.processor.preview_invoice(
                customer_id=ref_id(get_value(subscription, "customer")),
                subscription_id=subscription_id,
                items=[{"id": get_value(item, "id"), "price": new_price_id}],
                proration_behavior="always_invoice",
            )
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="preview_proration",
                user_id=user_id,
                details={"subscription_id": subscription_id, "new_price_id": new_price_id},
            )
            raise

        current_amount = int(get_value(current_price, "unit_amount") or 0)
        new_amount = int(get_value(new_price, "unit_amount") or 0)
        proration_amount = sum_proration_lines(invoice)
        amount_due_now = max(proration_amount, 0)
        credit_amount = max(-proration_amount, 0)
        _, period_end = get_period_bounds(subscription)

        logger.info(
            f"Proration preview for user {user_id} on {subscription_id} -> {new_price_id}: "
            f"{proration_amount} cents"
        )

        return ProrationSummary(
            current_price_amount=current_amount,
            new_price_amount=new_amount,
            proration_amount=proration_amount,
            is_upgrade=new_amount > current_amount,
            amount_due_now=amount_due_now,
            amount_due_now_formatted=format_amount(amount_due_now),
            credit_amount=credit_amount,
            credit_amount_formatted=format_amount(credit_amount),
            currency=(
                get_value(invoice, "currency") or get_value(new_price, "currency") or "usd"
            ).lower(),
            period_end=to_datetime(period_end),
        )
