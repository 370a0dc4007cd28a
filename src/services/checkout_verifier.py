"""
Checkout verification

The success page calls this right after Stripe redirects back, which is often
before the checkout webhook has landed. It reads the completed session and
writes the paid subscription into the local record so the user sees their new
plan immediately. The webhook later applies the same state again.
"""

import logging
from typing import Any

from src.db.subscriptions import get_subscription_by_user_id, upsert_subscription_record
from src.schemas.payments import SubscriptionStatus, VerifyCheckoutResponse
from src.services.billing_errors import BusinessRuleError, OwnershipError, ProcessorError
from src.services.price_tiers import resolve_price_tier
from src.services.records import local_status
from src.services.stripe_client import StripeProcessor
from src.utils.sentry_context import capture_payment_error
from src.utils.stripe_objects import (
    Expanded,
    IdOnly,
    as_ref,
    current_price_id,
    get_period_bounds,
    get_value,
    metadata_to_dict,
    ref_id,
    to_datetime,
)

logger = logging.getLogger(__name__)

SETTLED_PAYMENT_STATUSES = ("paid", "no_payment_required")

# Stripe statuses of a subscription that can never bill again
ENDED_SUBSCRIPTION_STATUSES = ("canceled", "incomplete_expired")


class CheckoutVerifier:
    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    def _load_subscription(self, session: Any) -> Any:
        ref = as_ref(get_value(session, "subscription"))
        if isinstance(ref, Expanded):
            return ref.obj
        if isinstance(ref, IdOnly):
            return self.processor.retrieve_subscription(ref.id)
        raise BusinessRuleError("Checkout session has no subscription")

    def verify_checkout_session(self, user_id: str, session_id: str) -> VerifyCheckoutResponse:
        """
        Bind a completed subscription checkout to the caller's record.

        Args:
            user_id: Authenticated caller
            session_id: Checkout session id from the success redirect

        Returns:
            VerifyCheckoutResponse; already_processed is True when the record
            was already active with a subscription and nothing was written

        Raises:
            OwnershipError: The session was created for another user
            BusinessRuleError: The session is unpaid, has no subscription, or its
                subscription has already ended
            ProcessorError: The processor call failed
            PersistenceError: The local write failed
        """
        record = get_subscription_by_user_id(user_id)
        if (
            record is not None
            and record.status == SubscriptionStatus.ACTIVE
            and record.stripe_subscription_id
        ):
            logger.info(
                f"Checkout {session_id} for user {user_id} already reconciled "
                f"(subscription {record.stripe_subscription_id})"
            )
            return VerifyCheckoutResponse(
                success=True, tier=record.tier, status=record.status, already_processed=True
            )

        try:
            session = self.processor.retrieve_checkout_session(
                session_id, expand=["subscription"]
            )

            metadata = metadata_to_dict(get_value(session, "metadata"))
            if metadata.get("userId") != user_id:
                logger.warning(
                    f"User {user_id} attempted to verify checkout session {session_id} "
                    "that belongs to another account"
                )
                raise OwnershipError("This checkout session does not belong to your account")

            payment_status = get_value(session, "payment_status")
            if payment_status not in SETTLED_PAYMENT_STATUSES:
                raise BusinessRuleError(
                    f"Checkout session is not paid (payment status: {payment_status})"
                )

            subscription = self._load_subscription(session)
        except ProcessorError as e:
            capture_payment_error(
                e,
                operation="verify_checkout_session",
                user_id=user_id,
                details={"session_id": session_id},
            )
            raise

        processor_status = get_value(subscription, "status")
        subscription_id = get_value(subscription, "id")
        if processor_status in ENDED_SUBSCRIPTION_STATUSES:
            logger.warning(
                f"User {user_id} verified checkout {session_id} whose subscription "
                f"{subscription_id} has already ended ({processor_status})"
            )
            raise BusinessRuleError(
                "The subscription from this checkout has ended. Start a new checkout to subscribe."
            )

        # Trials are recorded as active; the subscription webhook refines the status
        status = local_status(processor_status)
        if status == SubscriptionStatus.TRIALING:
            status = SubscriptionStatus.ACTIVE

        tier_info = resolve_price_tier(current_price_id(subscription))
        _, period_end = get_period_bounds(subscription)
        customer_id = ref_id(get_value(session, "customer")) or ref_id(
            get_value(subscription, "customer")
        )

        upsert_subscription_record(
            user_id,
            {
                "stripe_customer_id": customer_id,
                "stripe_subscription_id": subscription_id,
                "tier": tier_info.tier,
                "status": status,
                "monthly_limit": tier_info.monthly_limit,
                "billing_interval": tier_info.billing_interval,
                "has_used_trial": True,
                "usage_reset_date": to_datetime(period_end),
                "cancel_at_period_end": False,
            },
        )

        logger.info(
            f"Checkout {session_id} verified for user {user_id}: "
            f"{tier_info.tier.value}/{tier_info.billing_interval.value} ({status.value})"
        )
        return VerifyCheckoutResponse(success=True, tier=tier_info.tier, status=status)
