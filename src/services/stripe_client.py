"""
Stripe processor client

Thin wrapper around an instance-held `stripe.StripeClient` that the billing
services receive by constructor injection. It owns the API key and request
timeout, and turns every SDK failure into a ProcessorError so services never
handle raw `stripe.StripeError` subclasses.
"""

import logging
from collections.abc import Callable
from typing import Any

import stripe

from src.config import Config
from src.services.billing_errors import ProcessorError

logger = logging.getLogger(__name__)

# ProcessorError.code for an idempotency key replayed with different parameters
IDEMPOTENCY_CONFLICT_CODE = "idempotency_conflict"

# Errors where repeating the same request cannot succeed
_NON_RETRYABLE_ERRORS = (
    stripe.InvalidRequestError,
    stripe.AuthenticationError,
    stripe.PermissionError,
    stripe.CardError,
)


def _options(idempotency_key: str | None) -> dict[str, Any]:
    return {"idempotency_key": idempotency_key} if idempotency_key else {}


class StripeProcessor:
    """Payment processor capability backed by the Stripe API"""

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        client: stripe.StripeClient | None = None,
    ):
        self.api_key = api_key or Config.STRIPE_SECRET_KEY
        if not self.api_key:
            raise ValueError("STRIPE_SECRET_KEY not found in environment variables")

        self.timeout_seconds = timeout_seconds or Config.STRIPE_REQUEST_TIMEOUT_SECONDS

        # Bound every SDK request; the SDK's default HTTP client waits 80 seconds
        self.client = client or stripe.StripeClient(
            self.api_key,
            http_client=stripe.RequestsClient(timeout=self.timeout_seconds),
        )

        logger.info("Stripe processor initialized (timeout=%ss)", self.timeout_seconds)

    def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke a Stripe SDK call, mapping SDK errors to ProcessorError"""
        try:
            return func(*args, **kwargs)
        except stripe.APIConnectionError as e:
            # The request may have reached Stripe before the connection dropped
            logger.error(f"Stripe connection error during {operation}: {e}")
            raise ProcessorError(
                operation, str(e), outcome_unknown=True, retryable=True
            ) from e
        except stripe.IdempotencyError as e:
            logger.warning(f"Stripe idempotency conflict during {operation}: {e}")
            raise ProcessorError(
                operation, str(e), retryable=False, code=IDEMPOTENCY_CONFLICT_CODE
            ) from e
        except stripe.StripeError as e:
            code = getattr(e, "code", None)
            logger.error(f"Stripe error during {operation} (code={code}): {e}")
            raise ProcessorError(
                operation,
                str(e),
                retryable=not isinstance(e, _NON_RETRYABLE_ERRORS),
                code=code,
            ) from e

    # Customers

    def retrieve_customer(self, customer_id: str) -> Any:
        return self._call(
            "retrieve_customer", self.client.v1.customers.retrieve, customer_id
        )

    def create_customer(
        self,
        *,
        email: str | None,
        name: str | None,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> Any:
        params: dict[str, Any] = {"metadata": metadata}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        return self._call(
            "create_customer",
            self.client.v1.customers.create,
            params=params,
            options=_options(idempotency_key),
        )

    # Checkout

    def create_checkout_session(self, params: dict[str, Any], idempotency_key: str) -> Any:
        return self._call(
            "create_checkout_session",
            self.client.v1.checkout.sessions.create,
            params=params,
            options=_options(idempotency_key),
        )

    def retrieve_checkout_session(
        self, session_id: str, expand: list[str] | None = None
    ) -> Any:
        return self._call(
            "retrieve_checkout_session",
            self.client.v1.checkout.sessions.retrieve,
            session_id,
            params={"expand": expand or []},
        )

    # Subscriptions

    def retrieve_subscription(self, subscription_id: str) -> Any:
        return self._call(
            "retrieve_subscription", self.client.v1.subscriptions.retrieve, subscription_id
        )

    def modify_subscription(self, subscription_id: str, **params: Any) -> Any:
        return self._call(
            "modify_subscription",
            self.client.v1.subscriptions.update,
            subscription_id,
            params=params,
        )

    def list_subscriptions(self, customer_id: str) -> Any:
        return self._call(
            "list_subscriptions",
            self.client.v1.subscriptions.list,
            params={
                "customer": customer_id,
                "status": "all",
                "expand": ["data.default_payment_method"],
            },
        )

    # Prices and invoices

    def retrieve_price(self, price_id: str) -> Any:
        return self._call("retrieve_price", self.client.v1.prices.retrieve, price_id)

    def list_prices(self) -> Any:
        return self._call(
            "list_prices",
            self.client.v1.prices.list,
            params={"active": True, "expand": ["data.product"]},
        )

    def preview_invoice(
        self,
        *,
        customer_id: str | None,
        subscription_id: str,
        items: list[dict[str, Any]],
        proration_behavior: str = "always_invoice",
    ) -> Any:
        params: dict[str, Any] = {
            "subscription": subscription_id,
            "subscription_details": {
                "items": items,
                "proration_behavior": proration_behavior,
            },
        }
        if customer_id:
            params["customer"] = customer_id
        return self._call(
            "preview_invoice", self.client.v1.invoices.create_preview, params=params
        )

    # Subscription schedules

    def create_schedule(self, subscription_id: str) -> Any:
        return self._call(
            "create_schedule",
            self.client.v1.subscription_schedules.create,
            params={"from_subscription": subscription_id},
        )

    def retrieve_schedule(self, schedule_id: str) -> Any:
        return self._call(
            "retrieve_schedule", self.client.v1.subscription_schedules.retrieve, schedule_id
        )

    def modify_schedule(self, schedule_id: str, **params: Any) -> Any:
        return self._call(
            "modify_schedule",
            self.client.v1.subscription_schedules.update,
            schedule_id,
            params=params,
        )

    def release_schedule(self, schedule_id: str) -> Any:
        return self._call(
            "release_schedule", self.client.v1.subscription_schedules.release, schedule_id
        )

    # Billing portal and payment methods

    def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        return self._call(
            "create_portal_session",
            self.client.v1.billing_portal.sessions.create,
            params={"customer": customer_id, "return_url": return_url},
        )

    def list_payment_methods(self, customer_id: str) -> Any:
        return self._call(
            "list_payment_methods",
            self.client.v1.payment_methods.list,
            params={"customer": customer_id, "type": "card"},
        )


_processor: StripeProcessor | None = None


def get_stripe_processor() -> StripeProcessor:
    """Process-wide processor instance, created on first use"""
    global _processor
    if _processor is None:
        _processor = StripeProcessor()
    return _processor
