"""
Stripe Billing Routes
Checkout, subscription lifecycle and billing portal endpoints for the caller
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, Request

from src.schemas.payments import (
    CancelScheduledDowngradeRequest,
    CancelScheduledDowngradeResponse,
    CancelSubscriptionRequest,
    CheckoutSessionResponse,
    CreateCheckoutSessionRequest,
    CreatePortalSessionRequest,
    CreateSubscriptionSessionRequest,
    CurrentSubscriptionResponse,
    PortalSessionResponse,
    PreviewProrationRequest,
    ProrationSummary,
    ScheduleDowngradeRequest,
    ScheduledDowngradeResponse,
    SubscriptionSnapshot,
    SwitchBillingCycleRequest,
    UpdateSubscriptionRequest,
    VerifyCheckoutResponse,
    VerifyCheckoutSessionRequest,
)
from src.security import deps as security_deps
from src.security.deps import security as bearer_security
from src.services.billing_errors import BillingError
from src.services.billing_portal import BillingPortalService
from src.services.checkout import CheckoutService
from src.services.checkout_verifier import CheckoutVerifier
from src.services.downgrades import DowngradeService
from src.services.proration import ProrationService
from src.services.stripe_client import get_stripe_processor
from src.services.subscriptions import SubscriptionService
from src.utils.exceptions import APIExceptions
from src.utils.security_validators import sanitize_for_logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["Stripe Billing"])

# Services share one processor client
processor = get_stripe_processor()
checkout_service = CheckoutService(processor)
subscription_service = SubscriptionService(processor)
proration_service = ProrationService(processor)
downgrade_service = DowngradeService(processor)
checkout_verifier = CheckoutVerifier(processor)
billing_portal_service = BillingPortalService(processor)


async def _execute_user_override(override, request: Request):
    try:
        result = override(request)
    except TypeError:
        result = override()

    if inspect.isawaitable(result):
        return await result
    return result


async def _get_current_user_dependency(request: Request):
    override = globals().get("get_current_user")
    if override is not _get_current_user_dependency:
        return await _execute_user_override(override, request)

    credentials = await bearer_security(request)
    return await security_deps.get_current_user(credentials=credentials)


# Expose name expected by tests for patching
get_current_user = _get_current_user_dependency


async def _run(operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Run a blocking billing call off the event loop and translate its errors.

    Billing errors map to their HTTP status; anything else becomes a 500
    without leaking the underlying message.
    """
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except BillingError as e:
        raise APIExceptions.from_billing_error(e, operation) from e
    except Exception as e:
        raise APIExceptions.internal_error(operation, e) from e


# ==================== Checkout ====================


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CreateCheckoutSessionRequest, current_user: dict[str, Any] = Depends(get_current_user)
):
    """
    Create a Stripe checkout session for a one-time payment

    Example request body:
    {
        "price_id": "price_xxxxx",
        "success_url": "https://app.example.com/billing/success",
        "cancel_url": "https://app.example.com/billing"
    }
    """
    user_id = current_user["id"]
    logger.info(
        f"Creating payment checkout for user {user_id} "
        f"(price={sanitize_for_logging(request.price_id)})"
    )
    return await _run(
        "create checkout session",
        checkout_service.create_checkout_session,
        user_id=user_id,
        price_id=request.price_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
        metadata=request.metadata,
    )


@router.post("/subscription-session", response_model=CheckoutSessionResponse)
async def create_subscription_session(
    request: CreateSubscriptionSessionRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """
    Create a Stripe checkout session for a subscription

    A requested trial is only applied to users who have never had one.
    """
    user_id = current_user["id"]
    logger.info(
        f"Creating subscription checkout for user {user_id} "
        f"(price={sanitize_for_logging(request.price_id)}, trial={request.trial_period_days})"
    )
    return await _run(
        "create subscription session",
        checkout_service.create_subscription_session,
        user_id=user_id,
        price_id=request.price_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
        trial_period_days=request.trial_period_days,
        metadata=request.metadata,
    )


@router.post("/checkout-session/verify", response_model=VerifyCheckoutResponse)
async def verify_checkout_session(
    request: VerifyCheckoutSessionRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """
    Confirm a completed subscription checkout from the success page

    Writes the paid plan into the caller's record if the checkout webhook has
    not done so yet.
    """
    return await _run(
        "verify checkout session",
        checkout_verifier.verify_checkout_session,
        user_id=current_user["id"],
        session_id=request.session_id,
    )


# ==================== Subscription lifecycle ====================


@router.get("/subscription", response_model=CurrentSubscriptionResponse)
async def get_current_subscription(current_user: dict[str, Any] = Depends(get_current_user)):
    """Get the caller's cached subscription state"""
    return await _run(
        "get subscription",
        subscription_service.get_current_subscription,
        user_id=current_user["id"],
    )


@router.post("/subscription/update", response_model=SubscriptionSnapshot)
async def update_subscription(
    request: UpdateSubscriptionRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """
    Change the subscription's price immediately

    Upgrades are invoiced right away for the prorated difference.

    Example request body:
    {
        "subscription_id": "sub_xxxxx",
        "new_price_id": "price_xxxxx"
    }
    """
    return await _run(
        "update subscription",
        subscription_service.update_subscription,
        user_id=current_user["id"],
        subscription_id=request.subscription_id,
        new_price_id=request.new_price_id,
    )


@router.post("/subscription/switch-billing-cycle", response_model=SubscriptionSnapshot)
async def switch_billing_cycle(
    request: SwitchBillingCycleRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """Switch between monthly and annual billing (annual to monthly is refused mid-term)"""
    return await _run(
        "switch billing cycle",
        subscription_service.switch_billing_cycle,
        user_id=current_user["id"],
        subscription_id=request.subscription_id,
        new_price_id=request.new_price_id,
    )


@router.post("/subscription/preview-proration", response_model=ProrationSummary)
async def preview_proration(
    request: PreviewProrationRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """Preview the charge or credit a price change would produce now"""
    return await _run(
        "preview proration",
        proration_service.preview_proration,
        user_id=current_user["id"],
        subscription_id=request.subscription_id,
        new_price_id=request.new_price_id,
    )


@router.post("/subscription/cancel", response_model=SubscriptionSnapshot)
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """
    Cancel at period end (or undo that with cancel_at_period_end=false)
    """
    return await _run(
        "cancel subscription",
        subscription_service.cancel_subscription,
        user_id=current_user["id"],
        subscription_id=request.subscription_id,
        cancel_at_period_end=request.cancel_at_period_end,
    )


@router.post("/subscription/schedule-downgrade", response_model=ScheduledDowngradeResponse)
async def schedule_downgrade(
    request: ScheduleDowngradeRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """
    Schedule a downgrade that takes effect at the end of the current period

    Example request body:
    {
        "subscription_id": "sub_xxxxx",
        "new_tier": "professional",
        "new_price_id": "price_xxxxx"
    }
    """
    return await _run(
        "schedule downgrade",
        downgrade_service.schedule_downgrade,
        user_id=current_user["id"],
        subscription_id=request.subscription_id,
        new_tier=request.new_tier,
        new_price_id=request.new_price_id,
    )


@router.post(
    "/subscription/cancel-scheduled-downgrade",
    response_model=CancelScheduledDowngradeResponse,
)
async def cancel_scheduled_downgrade(
    request: CancelScheduledDowngradeRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """Undo a pending downgrade; succeeds when nothing is pending"""
    return await _run(
        "cancel scheduled downgrade",
        downgrade_service.cancel_scheduled_downgrade,
        user_id=current_user["id"],
        subscription_id=request.subscription_id,
    )


# ==================== Billing portal & catalog ====================


@router.post("/portal-session", response_model=PortalSessionResponse)
async def create_portal_session(
    request: CreatePortalSessionRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    """Open the Stripe billing portal for the caller's customer"""
    return await _run(
        "create portal session",
        billing_portal_service.create_portal_session,
        user_id=current_user["id"],
        return_url=request.return_url,
    )


@router.get("/payment-methods")
async def list_payment_methods(current_user: dict[str, Any] = Depends(get_current_user)):
    methods = await _run(
        "list payment methods",
        billing_portal_service.list_payment_methods,
        user_id=current_user["id"],
    )
    return {"payment_methods": methods}


@router.get("/subscriptions")
async def list_subscriptions(current_user: dict[str, Any] = Depends(get_current_user)):
    subscriptions = await _run(
        "list subscriptions",
        billing_portal_service.list_subscriptions,
        user_id=current_user["id"],
    )
    return {"subscriptions": subscriptions}


@router.get("/prices")
async def list_prices(current_user: dict[str, Any] = Depends(get_current_user)):
    prices = await _run("list prices", billing_portal_service.list_prices)
    return {"prices": prices}
