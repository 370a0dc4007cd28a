"""
Subscription record storage

One row per user in the `subscriptions` table. The row caches what the
payment processor knows about the user's plan; every writer here stamps
`updated_at` and failures are raised as PersistenceError so callers decide
whether a failed write matters.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.config.supabase_config import execute_with_retry
from src.schemas.payments import SubscriptionRecord
from src.services.billing_errors import PersistenceError

logger = logging.getLogger(__name__)

TABLE = "subscriptions"

DEFAULT_RECORD: dict[str, Any] = {
    "tier": "free",
    "status": "active",
    "monthly_limit": 10,
    "billing_interval": "monthly",
    "usage_count": 0,
    "cancel_at_period_end": False,
    "has_used_trial": False,
}


def _serialize(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert enums and datetimes into JSON-safe column values"""
    row: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        row[key] = value
    return row


def get_subscription_by_user_id(user_id: str) -> SubscriptionRecord | None:
    """
    Fetch the subscription record for a user

    Args:
        user_id: Authenticated user's id

    Returns:
        SubscriptionRecord if the user has one, None otherwise

    Raises:
        PersistenceError: If the datastore could not be read
    """

    def _fetch(client):
        return client.table(TABLE).select("*").eq("user_id", user_id).limit(1).execute()

    try:
        result = execute_with_retry(_fetch, operation_name="get_subscription_by_user_id")
    except Exception as e:
        logger.error(f"Error reading subscription for user {user_id}: {e}", exc_info=True)
        raise PersistenceError(f"Failed to read subscription for user {user_id}") from e

    if not result.data:
        return None
    return SubscriptionRecord(**result.data[0])


def ensure_subscription_record(user_id: str) -> SubscriptionRecord:
    """
    Return the user's record, creating the free default when none exists.

    Registration normally creates the row; this covers users whose row was
    never written. Concurrent callers are safe because the insert ignores
    an existing row.
    """
    existing = get_subscription_by_user_id(user_id)
    if existing is not None:
        return existing

    logger.info(f"Creating default subscription record for user {user_id}")
    row = {
        **DEFAULT_RECORD,
        "user_id": user_id,
        "updated_at": datetime.now(UTC).isoformat(),
    }

    def _insert(client):
        return (
            client.table(TABLE)
            .upsert(row, on_conflict="user_id", ignore_duplicates=True)
            .execute()
        )

    try:
        execute_with_retry(_insert, operation_name="create_default_subscription")
    except Exception as e:
        logger.error(f"Error creating subscription for user {user_id}: {e}", exc_info=True)
        raise PersistenceError(f"Failed to create subscription for user {user_id}") from e

    created = get_subscription_by_user_id(user_id)
    if created is None:
        raise PersistenceError(f"Subscription for user {user_id} missing after create")
    return created


def update_subscription_record(user_id: str, fields: dict[str, Any]) -> SubscriptionRecord | None:
    """
    Apply a partial update to the user's record.

    Args:
        user_id: Owner of the record
        fields: Columns to write; `updated_at` is always added

    Returns:
        The updated record, or None if the user has no row

    Raises:
        PersistenceError: If the write failed
    """
    row = _serialize({**fields, "updated_at": datetime.now(UTC)})

    def _update(client):
        return client.table(TABLE).update(row).eq("user_id", user_id).execute()

    try:
        result = execute_with_retry(_update, operation_name="update_subscription_record")
    except Exception as e:
        logger.error(
            f"Error updating subscription for user {user_id}: {e}",
            exc_info=True,
            extra={"billing": {"user_id": user_id, "columns": sorted(row)}},
        )
        raise PersistenceError(f"Failed to update subscription for user {user_id}") from e

    if not result.data:
        logger.warning(f"No subscription row updated for user {user_id}")
        return None

    logger.info(f"Updated subscription for user {user_id}: {sorted(fields)}")
    return SubscriptionRecord(**result.data[0])


def upsert_subscription_record(user_id: str, fields: dict[str, Any]) -> SubscriptionRecord:
    """
    Insert or overwrite the user's record keyed by user_id.

    Raises:
        PersistenceError: If the write failed or returned no row
    """
    row = _serialize({**fields, "user_id": user_id, "updated_at": datetime.now(UTC)})

    def _upsert(client):
        return client.table(TABLE).upsert(row, on_conflict="user_id").execute()

    try:
        result = execute_with_retry(_upsert, operation_name="upsert_subscription_record")
    except Exception as e:
        logger.error(f"Error upserting subscription for user {user_id}: {e}", exc_info=True)
        raise PersistenceError(f"Failed to upsert subscription for user {user_id}") from e

    if not result.data:
        raise PersistenceError(f"Upsert for user {user_id} returned no row")

    logger.info(f"Upserted subscription for user {user_id}")
    return SubscriptionRecord(**result.data[0])
