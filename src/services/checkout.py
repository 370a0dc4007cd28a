"""
Checkout orchestration

Creates hosted Stripe checkout sessions for one-time payments and
subscriptions. Sessions are created with a deterministic idempotency key so a
double-submitted form yields one session, and nothing local is written here:
the subscription record changes only once payment completes.
"""

import logging
from typing import Any

from src.db.subscriptions import ensure_subscription_record
from src.db.users import get_user_by_id
from src.schemas.payments import CheckoutSessionResponse
from src.services.billing_errors import BusinessRuleError, ProcessorError
from src.services.customers import CustomerBinder
from src.services.stripe_client import IDEMPOTENCY_CONFLICT_CODE, StripeProcessor
from src.utils.idempotency import build_idempotency_key
from src.utils.sentry_context import capture_payment_error
from src.utils.stripe_objects import get_value

logger = logging.getLogger(__name__)

__all__ = ["CheckoutService", "build_idempotency_key"]


class CheckoutService:
    """Builds checkout sessions for the authenticated caller"""

    def __init__(self, processor: StripeProcessor, customers: CustomerBinder | None = None):
        self.processor = processor
        self.customers = customers or CustomerBinder(processor)

    @staticmethod
    def _session_metadata(
        user_id: str, email: str | None, extra: dict[str, str] | None
    ) -> dict[str, str]:
        # Caller metadata first so it can never overwrite the owner fields
        metadata: dict[str, str] = dict(extra or {})
        metadata["userId"] = user_id
        if email:
            metadata["email"] = email
        return metadata

    def _create(
        self, operation: str, user_id: str, price_id: str, params: dict[str, Any]
    ) -> CheckoutSessionResponse:
        idempotency_key = build_idempotency_key(operation, user_id, price_id)
        try:
            session = self.processor.create_checkout_session(params, idempotency_key)
        except ProcessorError as e:
            if e.code == IDEMPOTENCY_CONFLICT_CODE:
                # Same key within the window but different success/cancel URLs or metadata
                logger.warning(
                    f"Checkout for user {user_id} (price={price_id}) reused key "
                    f"{idempotency_key} with different parameters"
                )
                raise BusinessRuleError(
                    "A checkout for this plan with different details was just started. "
                    "Please try again in a few minutes."
                ) from e
            capture_payment_error(
                e,
                operation=operation,
                user_id=user_id,
                details={"price_id": price_id, "idempotency_key": idempotency_key},
            )
            raise

        session_id = get_value(session, "id")
        logger.info(
            f"Checkout session created: {session_id} for user {user_id} "
            f"(mode={params['mode']}, price={price_id})"
        )
        return CheckoutSessionResponse(session_id=session_id, url=get_value(session, "url"))

    def create_checkout_session(
        self,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSessionResponse:
        """Create a one-time payment checkout session"""
        customer_id = self.customers.get_or_create_customer(user_id)
        user = get_user_by_id(user_id) or {}

        params: dict[str, Any] = {
            "mode": "payment",
            "customer": customer_id,
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": self._session_metadata(user_id, user.get("email"), metadata),
        }
        return self._create("payment_checkout", user_id, price_id, params)

    def create_subscription_session(
        self,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        trial_period_days: int | None = None,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSessionResponse:
        """
        Create a subscription checkout session.

        A requested trial is honoured only if the user has never had one;
        otherwise the session is created without it.
        """
        customer_id = self.customers.get_or_create_customer(user_id)
        record = ensure_subscription_record(user_id)
        user = get_user_by_id(user_id) or {}
        session_metadata = self._session_metadata(user_id, user.get("email"), metadata)

        subscription_data: dict[str, Any] = {"metadata": session_metadata}
        if trial_period_days:
            if record.has_used_trial:
                logger.info(
                    f"User {user_id} already used a trial; creating checkout without "
                    f"the requested {trial_period_days}-day trial"
                )
            else:
                subscription_data["trial_period_days"] = trial_period_days

        params: dict[str, Any] = {
            "mode": "subscription",
            "customer": customer_id,
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "billing_address_collection": "auto",
            "allow_promotion_codes": True,
            "payment_method_collection": "always",
            "subscription_data": subscription_data,
            "metadata": session_metadata,
        }
        return self._create("subscription_checkout", user_id, price_id, params)
