"""
Shared access rules for the local subscription record.

`require_subscription_owner` gates every mutation on a processor
subscription, and `write_after_mutation` applies the optimistic local write
that follows a successful processor call.
"""

import logging
from typing import Any

from src.db.subscriptions import get_subscription_by_user_id, update_subscription_record
from src.schemas.payments import SubscriptionRecord, SubscriptionStatus
from src.services.billing_errors import (
    OwnershipError,
    PersistenceError,
    SubscriptionNotFoundError,
)
from src.utils.sentry_context import capture_database_error

logger = logging.getLogger(__name__)

# Stripe subscription statuses collapsed onto the local status set
_PROCESSOR_STATUSES: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}


def local_status(processor_status: str | None) -> SubscriptionStatus:
    """Map a Stripe subscription status to the local record's status"""
    status = _PROCESSOR_STATUSES.get(processor_status or "")
    if status is None:
        logger.warning(f"Unrecognised Stripe subscription status '{processor_status}'")
        return SubscriptionStatus.ACTIVE
    return status


def require_subscription_owner(user_id: str, subscription_id: str) -> SubscriptionRecord:
    """
    Load the caller's record and confirm it references the subscription.

    Raises:
        SubscriptionNotFoundError: The caller has no record at all
        OwnershipError: The record is bound to a different (or no) subscription
    """
    record = get_subscription_by_user_id(user_id)
    if record is None:
        raise SubscriptionNotFoundError(user_id)

    if record.stripe_subscription_id != subscription_id:
        logger.warning(
            f"Ownership check failed: user {user_id} attempted to act on subscription "
            f"{subscription_id}",
            extra={"billing": {"user_id": user_id, "subscription_id": subscription_id}},
        )
        raise OwnershipError()

    return record


def write_after_mutation(
    user_id: str, fields: dict[str, Any], operation: str
) -> SubscriptionRecord | None:
    """
    Mirror a processor change into the local record.

    The processor already holds the new state and its webhook will repair the
    row, so a failed write is logged and captured but not raised.
    """
    try:
        return update_subscription_record(user_id, fields)
    except PersistenceError as e:
        logger.error(
            f"Local write after {operation} failed for user {user_id}; "
            "relying on webhook reconciliation",
            exc_info=True,
        )
        capture_database_error(
            e,
            operation=operation,
            table="subscriptions",
            details={"user_id": user_id, "columns": sorted(fields)},
        )
        return None
