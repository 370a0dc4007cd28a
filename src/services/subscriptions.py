"""
Subscription mutations

Immediate-effect plan changes on an existing subscription: tier changes,
billing-cycle switches and cancellation. Every mutation checks that the
caller owns the subscription before touching the processor, then mirrors the
result into the local record optimistically. The processor stays the source
of truth; its webhooks repair any local drift.
"""

import logging
from datetime import datetime
from typing import Any

from src.db.subscriptions import ensure_subscription_record
from src.schemas.payments import (
    BillingInterval,
    CurrentSubscriptionResponse,
    SubscriptionSnapshot,
)
from src.services.billing_errors import BusinessRuleError, ProcessorError
from src.services.downgrades import release_attached_schedule
from src.services.price_tiers import TierInfo, resolve_price_tier
from src.services.records import local_status, require_subscription_owner, write_after_mutation
from src.services.stripe_client import StripeProcessor
from src.utils.sentry_context import capture_payment_error
from src.utils.stripe_objects import (
    current_price_id,
    first_subscription_item,
    get_period_bounds,
    get_value,
    to_datetime,
)

logger = logging.getLogger(__name__)


def _format_boundary(period_end: datetime | None) -> str:
    if period_end is None:
        return "the end of the current billing period"
    return period_end.strftime("%B %d, %Y")


class SubscriptionService:
    """Service for changing and cancelling an existing subscription"""

    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    @staticmethod
    def _snapshot(subscription: Any, tier_info: TierInfo | None = None) -> SubscriptionSnapshot:
        _, period_end = get_period_bounds(subscription)
        return SubscriptionSnapshot(
            subscription_id=get_value(subscription, "id"),
            status=get_value(subscription, "status") or "unknown",
            tier=tier_info.tier if tier_info else None,
            billing_interval=tier_info.billing_interval if tier_info else None,
            monthly_limit=tier_info.monthly_limit if tier_info else None,
            cancel_at_period_end=bool(get_value(subscription, "cancel_at_period_end")),
            current_period_end=to_datetime(period_end),
        )

    def _change_price(
        self, user_id: str, subscription: Any, new_price_id: str, operation: str
    ) -> SubscriptionSnapshot:
        """Swap the subscription's price now, charging the prorated difference"""
        subscription_id = get_value(subscription, "id")
        item = first_subscription_item(subscription)
        if item is None:
            raise BusinessRuleError("Subscription has no items to update")

        # A pending downgrade schedule would override this change at period end
        released = release_attached_schedule(self.processor, subscription)
        if released:
            logger.info(f"Pending downgrade on {subscription_id} released before {operation}")

        try:
            updated = self.processor.modify_subscription(
                subscription_id,
                items=[{"id": get_value(item, "id"), "price": new_price_id}],
                proration_behavior="always_invoice",
                cancel_at_period_end=False,
            )
        except ProcessorError:
            if released:
                # The processor no longer holds the downgrade; stop advertising it
                write_after_mutation(
                    user_id,
                    {"scheduled_tier": None, "scheduled_tier_change_date": None},
                    operation=f"{operation}_schedule_release",
                )
            raise

        tier_info = resolve_price_tier(new_price_id)
        _, period_end = get_period_bounds(updated)
        logger.info(
            f"{operation}: subscription {subscription_id} for user {user_id} now on "
            f"{new_price_id} ({tier_info.tier.value}/{tier_info.billing_interval.value})",
            extra={
                "billing": {
                    "operation": operation,
                    "user_id": user_id,
                    "subscription_id": subscription_id,
                    "price_id": new_price_id,
                }
            },
        )

        write_after_mutation(
            user_id,
            {
                "tier": tier_info.tier,
                "monthly_limit": tier_info.monthly_limit,
                "billing_interval": tier_info.billing_interval,
                "status": local_status(get_value(updated, "status")),
                "usage_reset_date": to_datetime(period_end),
                "cancel_at_period_end": False,
                "scheduled_tier": None,
                "scheduled_tier_change_date": None,
            },
            operation=operation,
        )
        return self._snapshot(updated, tier_info)

    def update_subscription(
        self, user_id: str, subscription_id: str, new_price_id: str
    ) -> SubscriptionSnapshot:
        """
        Move the subscription to a new price immediately.

        Upgrades are invoiced right away for the prorated difference. Any
        pending deferred downgrade is discarded.

        Args:
            user_id: Authenticated caller
            subscription_id: Caller's processor subscription
            new_price_id: Price to switch to

        Returns:
            SubscriptionSnapshot of the processor state after the change
        """
        require_subscription_owner(user_id, subscription_id)

        try:
            subscription = self.processor.retrieve_subscription(subscription_id)
            return self._change_price(
                user_id, subscription, new_price_id, operation="update_subscription"
            )
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="update_subscription",
                user_id=user_id,
                details={"subscription_id": subscription_id, "new_price_id": new_price_id},
            )
            raise

    def switch_billing_cycle(
        self, user_id: str, subscription_id: str, new_price_id: str
    ) -> SubscriptionSnapshot:
        """
        Switch between monthly and annual billing.

        Annual to monthly is refused until the paid annual period is over;
        monthly to annual (or same-interval moves) go through immediately.
        """
        require_subscription_owner(user_id, subscription_id)

        try:
            subscription = self.processor.retrieve_subscription(subscription_id)

            current = resolve_price_tier(current_price_id(subscription))
            target = resolve_price_tier(new_price_id)

            if (
                current.billing_interval == BillingInterval.ANNUAL
                and target.billing_interval == BillingInterval.MONTHLY
            ):
                _, period_end = get_period_bounds(subscription)
                boundary = _format_boundary(to_datetime(period_end))
                raise BusinessRuleError(
                    "Cannot switch from annual to monthly billing mid-term. "
                    f"Your annual plan is paid through {boundary}; you can switch after that date."
                )

            return self._change_price(
                user_id, subscription, new_price_id, operation="switch_billing_cycle"
            )
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="switch_billing_cycle",
                user_id=user_id,
                details={"subscription_id": subscription_id, "new_price_id": new_price_id},
            )
            raise

    def cancel_subscription(
        self, user_id: str, subscription_id: str, cancel_at_period_end: bool = True
    ) -> SubscriptionSnapshot:
        """
        Set or clear cancellation at period end.

        The local status stays as is; the subscription keeps working until the
        period ends and the processor's deletion webhook downgrades the record.
        """
        require_subscription_owner(user_id, subscription_id)

        try:
            updated = self.processor.modify_subscription(
                subscription_id, cancel_at_period_end=cancel_at_period_end
            )
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="cancel_subscription",
                user_id=user_id,
                details={"subscription_id": subscription_id},
            )
            raise

        logger.info(
            f"Subscription {subscription_id} for user {user_id} "
            f"cancel_at_period_end={cancel_at_period_end}"
        )

        if cancel_at_period_end:
            write_after_mutation(
                user_id, {"cancel_at_period_end": True}, operation="cancel_subscription"
            )

        return self._snapshot(updated)

    def get_current_subscription(self, user_id: str) -> CurrentSubscriptionResponse:
        """Cached local view of the caller's plan (no processor call)"""
        record = ensure_subscription_record(user_id)
        return CurrentSubscriptionResponse(
            tier=record.tier,
            status=record.status,
            billing_interval=record.billing_interval,
            monthly_limit=record.monthly_limit,
            usage_count=record.usage_count,
            usage_reset_date=record.usage_reset_date,
            cancel_at_period_end=record.cancel_at_period_end,
            scheduled_tier=record.scheduled_tier,
            scheduled_tier_change_date=record.scheduled_tier_change_date,
            has_used_trial=record.has_used_trial,
            stripe_subscription_id=record.stripe_subscription_id,
        )
