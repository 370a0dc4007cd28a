"""
Customer binding

Resolves the processor customer for a user, reusing the id cached on the
subscription record while it is still valid and creating a new customer when
there is none or the cached one was deleted.
"""

import logging
from typing import Any

from src.db.subscriptions import ensure_subscription_record, update_subscription_record
from src.db.users import get_user_by_id
from src.services.billing_errors import PersistenceError, ProcessorError
from src.services.stripe_client import StripeProcessor
from src.utils.idempotency import build_idempotency_key
from src.utils.security_validators import mask_email
from src.utils.sentry_context import capture_database_error
from src.utils.stripe_objects import get_value

logger = logging.getLogger(__name__)


class CustomerBinder:
    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    def _customer_is_live(self, customer_id: str) -> bool:
        """False when the processor reports the customer deleted or missing"""
        try:
            customer = self.processor.retrieve_customer(customer_id)
        except ProcessorError as e:
            if e.code == "resource_missing":
                return False
            raise
        return not get_value(customer, "deleted", False)

    def get_or_create_customer(self, user_id: str) -> str:
        """
        Return the processor customer id for a user.

        Args:
            user_id: Authenticated user's id

        Returns:
            Processor customer id

        Raises:
            ProcessorError: If the processor could not be reached or refused the call
        """
        record = ensure_subscription_record(user_id)
        cached_id = record.stripe_customer_id

        if cached_id:
            if self._customer_is_live(cached_id):
                return cached_id
            logger.warning(
                f"Cached Stripe customer {cached_id} for user {user_id} no longer exists, "
                "creating a new one"
            )

        user: dict[str, Any] = get_user_by_id(user_id) or {}
        customer = self.processor.create_customer(
            email=user.get("email"),
            name=user.get("full_name"),
            metadata={"userId": user_id},
            idempotency_key=build_idempotency_key(
                "create_customer", user_id, cached_id or "new"
            ),
        )
        customer_id = get_value(customer, "id")
        logger.info(
            f"Stripe customer created: {customer_id} for user {user_id} "
            f"({mask_email(user.get('email'))})"
        )

        try:
            update_subscription_record(user_id, {"stripe_customer_id": customer_id})
        except PersistenceError as e:
            # Checkout verification binds the customer from the session later
            logger.error(f"Failed to store Stripe customer {customer_id} for user {user_id}")
            capture_database_error(
                e,
                operation="bind_customer",
                table="subscriptions",
                details={"user_id": user_id, "customer_id": customer_id},
            )

        return customer_id
