"""
Deferred downgrades

A downgrade never takes effect mid-period. Downgrading to free marks the
subscription to cancel at period end; downgrading to a cheaper paid tier
attaches a two-phase subscription schedule whose second phase starts on the
current period end. Both can be undone until then.
"""

import logging
from typing import Any

from src.schemas.payments import (
    CancelScheduledDowngradeResponse,
    ScheduledDowngradeResponse,
    Tier,
)
from src.services.billing_errors import BusinessRuleError, ProcessorError
from src.services.price_tiers import resolve_price_tier, tier_rank
from src.services.records import require_subscription_owner, write_after_mutation
from src.services.stripe_client import StripeProcessor
from src.utils.sentry_context import capture_payment_error
from src.utils.stripe_objects import (
    Expanded,
    IdOnly,
    as_ref,
    current_price_id,
    first_subscription_item,
    get_period_bounds,
    get_value,
    to_datetime,
)

logger = logging.getLogger(__name__)

# Schedule statuses that still control the subscription
LIVE_SCHEDULE_STATUSES = ("active", "not_started")


def _live_schedule_id(processor: StripeProcessor, subscription: Any) -> str | None:
    """Id of the schedule attached to the subscription, if it is still live"""
    ref = as_ref(get_value(subscription, "schedule"))
    if ref is None:
        return None

    if isinstance(ref, Expanded):
        schedule = ref.obj
    elif isinstance(ref, IdOnly):
        schedule = processor.retrieve_schedule(ref.id)
    else:
        return None

    status = get_value(schedule, "status")
    if status not in LIVE_SCHEDULE_STATUSES:
        logger.info(f"Schedule {ref.id} is {status}; nothing to release")
        return None
    return ref.id


def release_attached_schedule(processor: StripeProcessor, subscription: Any) -> bool:
    """
    Release a live schedule from the subscription, keeping the subscription.

    Returns:
        True if a schedule was released
    """
    schedule_id = _live_schedule_id(processor, subscription)
    if schedule_id is None:
        return False

    processor.release_schedule(schedule_id)
    logger.info(
        f"Released schedule {schedule_id} from subscription {get_value(subscription, 'id')}"
    )
    return True


class DowngradeService:
    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    def schedule_downgrade(
        self,
        user_id: str,
        subscription_id: str,
        new_tier: Tier | str,
        new_price_id: str | None = None,
    ) -> ScheduledDowngradeResponse:
        """
        Schedule a move to a lower tier at the end of the current period.

        Args:
            user_id: Authenticated caller
            subscription_id: Caller's processor subscription
            new_tier: Target tier, which must rank below the current tier
            new_price_id: Target price; required unless new_tier is free

        Raises:
            OwnershipError: Subscription is not the caller's
            BusinessRuleError: Target is not a downgrade or the price does not match it
            ProcessorError: The processor call failed
        """
        require_subscription_owner(user_id, subscription_id)
        target = Tier(new_tier)

        if target != Tier.FREE:
            if not new_price_id:
                raise BusinessRuleError(f"A price is required to downgrade to {target.value}")
            target_info = resolve_price_tier(new_price_id)
            if target_info.is_fallback or target_info.tier != target:
                raise BusinessRuleError(
                    f"Price {new_price_id} does not belong to the {target.value} tier"
                )

        fields: dict[str, Any] = {}
        try:
            subscription = self.processor.retrieve_subscription(subscription_id)
            current_price = current_price_id(subscription)
            current_tier = resolve_price_tier(current_price).tier

            if tier_rank(target) >= tier_rank(current_tier):
                raise BusinessRuleError(
                    f"Cannot schedule a downgrade from {current_tier.value} to {target.value}"
                )

            period_start, period_end = get_period_bounds(subscription)

            if target == Tier.FREE:
                self.processor.modify_subscription(subscription_id, cancel_at_period_end=True)
                logger.info(
                    f"Subscription {subscription_id} for user {user_id} set to cancel at "
                    "period end (downgrade to free)"
                )
            else:
                # A pending cancellation would end the subscription before the new phase starts
                if get_value(subscription, "cancel_at_period_end"):
                    self.processor.modify_subscription(subscription_id, cancel_at_period_end=False)
                    fields["cancel_at_period_end"] = False
                self._attach_downgrade_schedule(
                    subscription, current_price, new_price_id, period_start, period_end
                )
                logger.info(
                    f"Scheduled downgrade of subscription {subscription_id} for user {user_id} "
                    f"from {current_tier.value} to {target.value} at {period_end}"
                )
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="schedule_downgrade",
                user_id=user_id,
                details={"subscription_id": subscription_id, "new_tier": target.value},
            )
            if fields:
                write_after_mutation(user_id, fields, operation="schedule_downgrade_resume")
            raise

        effective_date = to_datetime(period_end)
        fields.update({"scheduled_tier": target, "scheduled_tier_change_date": effective_date})
        write_after_mutation(
            user_id,
            fields,
            operation="schedule_downgrade",
        )
        return ScheduledDowngradeResponse(scheduled_tier=target, effective_date=effective_date)

    def _attach_downgrade_schedule(
        self,
        subscription: Any,
        current_price: str | None,
        new_price_id: str,
        period_start: int | None,
        period_end: int | None,
    ) -> None:
        subscription_id = get_value(subscription, "id")
        item = first_subscription_item(subscription)
        quantity = get_value(item, "quantity") or 1

        schedule_id = _live_schedule_id(self.processor, subscription)
        if schedule_id is None:
            schedule = self.processor.create_schedule(subscription_id)
            schedule_id = get_value(schedule, "id")
        else:
            logger.info(f"Reusing schedule {schedule_id} for subscription {subscription_id}")

        self.processor.modify_schedule(
            schedule_id,
            end_behavior="release",
            phases=[
                {
                    "items": [{"price": current_price, "quantity": quantity}],
                    "start_date": period_start,
                    "end_date": period_end,
                },
                {
                    "items": [{"price": new_price_id, "quantity": quantity}],
                    "start_date": period_end,
                    "iterations": 1,
                    "proration_behavior": "none",
                },
            ],
        )

    def cancel_scheduled_downgrade(
        self, user_id: str, subscription_id: str
    ) -> CancelScheduledDowngradeResponse:
        """
        Undo a pending downgrade. Safe to call when nothing is pending.
        """
        require_subscription_owner(user_id, subscription_id)

        try:
            subscription = self.processor.retrieve_subscription(subscription_id)

            if get_value(subscription, "cancel_at_period_end"):
                self.processor.modify_subscription(subscription_id, cancel_at_period_end=False)
                logger.info(f"Cleared cancel_at_period_end on subscription {subscription_id}")

            release_attached_schedule(self.processor, subscription)
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="cancel_scheduled_downgrade",
                user_id=user_id,
                details={"subscription_id": subscription_id},
            )
            raise

        write_after_mutation(
            user_id,
            {
                "scheduled_tier": None,
                "scheduled_tier_change_date": None,
                "cancel_at_period_end": False,
            },
            operation="cancel_scheduled_downgrade",
        )
        return CancelScheduledDowngradeResponse(success=True)
