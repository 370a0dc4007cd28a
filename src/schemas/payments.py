from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Tier(str, Enum):
    FREE = "free"
    PROFESSIONAL = "professional"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


# Local subscription record (one row per user in the `subscriptions` table)
class SubscriptionRecord(BaseModel):
    user_id: str
    tier: Tier = Tier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    monthly_limit: int = 10
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    usage_count: int = 0
    usage_reset_date: datetime | None = None
    cancel_at_period_end: bool = False
    scheduled_tier: Tier | None = None
    scheduled_tier_change_date: datetime | None = None
    has_used_trial: bool = False
    updated_at: datetime | None = None

    @field_validator("billing_interval", mode="before")
    @classmethod
    def _legacy_interval(cls, value: Any) -> Any:
        # Free rows created before intervals existed have NULL here
        return value or BillingInterval.MONTHLY

    @field_validator("cancel_at_period_end", "has_used_trial", mode="before")
    @classmethod
    def _null_flags(cls, value: Any) -> Any:
        return bool(value)

    @field_validator("usage_count", mode="before")
    @classmethod
    def _null_usage(cls, value: Any) -> Any:
        return value or 0


# Requests
class CreateCheckoutSessionRequest(BaseModel):
    price_id: str = Field(..., min_length=1, description="Stripe price ID")
    success_url: str
    cancel_url: str
    metadata: dict[str, str] | None = None


class CreateSubscriptionSessionRequest(BaseModel):
    price_id: str = Field(..., min_length=1, description="Stripe recurring price ID")
    success_url: str
    cancel_url: str
    trial_period_days: int | None = Field(None, ge=1, le=730)
    metadata: dict[str, str] | None = None


class UpdateSubscriptionRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)
    new_price_id: str = Field(..., min_length=1)


class SwitchBillingCycleRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)
    new_price_id: str = Field(..., min_length=1)


class PreviewProrationRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)
    new_price_id: str = Field(..., min_length=1)


class CancelSubscriptionRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)
    cancel_at_period_end: bool = True


class ScheduleDowngradeRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)
    new_tier: Tier
    new_price_id: str | None = Field(None, description="Required unless new_tier is free")


class CancelScheduledDowngradeRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)


class VerifyCheckoutSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class CreatePortalSessionRequest(BaseModel):
    return_url: str


# Responses
class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: str | None = None


class SubscriptionSnapshot(BaseModel):
    subscription_id: str
    status: str
    tier: Tier | None = None
    billing_interval: BillingInterval | None = None
    monthly_limit: int | None = None
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None


class ProrationSummary(BaseModel):
    current_price_amount: int
    new_price_amount: int
    proration_amount: int
    is_upgrade: bool
    amount_due_now: int
    amount_due_now_formatted: str
    credit_amount: int
    credit_amount_formatted: str
    currency: str
    period_end: datetime | None = None


class ScheduledDowngradeResponse(BaseModel):
    success: bool = True
    scheduled_tier: Tier
    effective_date: datetime | None = None


class CancelScheduledDowngradeResponse(BaseModel):
    success: bool = True


class VerifyCheckoutResponse(BaseModel):
    success: bool
    tier: Tier | None = None
    status: SubscriptionStatus | None = None
    already_processed: bool = False


class CurrentSubscriptionResponse(BaseModel):
    tier: Tier
    status: SubscriptionStatus
    billing_interval: BillingInterval
    monthly_limit: int
    usage_count: int
    usage_reset_date: datetime | None = None
    cancel_at_period_end: bool = False
    scheduled_tier: Tier | None = None
    scheduled_tier_change_date: datetime | None = None
    has_used_trial: bool = False
    stripe_subscription_id: str | None = None


class PortalSessionResponse(BaseModel):
    url: str
