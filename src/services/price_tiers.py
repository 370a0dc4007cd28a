"""
Price to tier resolution

Maps a Stripe recurring price id to the subscription tier, monthly usage quota
and billing interval it grants. The mapping is driven by the four configured
price ids; it is the only place that knows how prices translate to quotas.
"""

import logging
from dataclasses import dataclass

from src.config import Config
from src.schemas.payments import BillingInterval, Tier

logger = logging.getLogger(__name__)

# Monthly usage quota per tier; premium uses a sentinel for "unlimited"
TIER_MONTHLY_LIMITS: dict[Tier, int] = {
    Tier.FREE: 10,
    Tier.PROFESSIONAL: 75,
    Tier.PREMIUM: 999999,
}

TIER_RANKS: dict[Tier, int] = {
    Tier.FREE: 0,
    Tier.PROFESSIONAL: 1,
    Tier.PREMIUM: 2,
}


@dataclass(frozen=True)
class TierInfo:
    tier: Tier
    monthly_limit: int
    billing_interval: BillingInterval
    is_fallback: bool = False


def _price_table() -> dict[str, tuple[Tier, BillingInterval]]:
    table: dict[str, tuple[Tier, BillingInterval]] = {}
    for key, price_id in Config.price_ids().items():
        if not price_id:
            continue
        tier_name, interval_name = key.split("_", 1)
        table[price_id] = (Tier(tier_name), BillingInterval(interval_name))
    return table


def resolve_price_tier(price_id: str | None) -> TierInfo:
    """
    Resolve a processor price id to its tier, quota and billing interval.

    Unknown or empty ids resolve to premium/monthly with is_fallback=True so a
    paying customer is never locked out by a catalog mismatch. Never raises.
    """
    entry = _price_table().get(price_id) if price_id else None

    if entry is None:
        logger.warning(
            f"Unknown price id '{price_id}', falling back to premium tier",
            extra={"billing": {"price_id": price_id, "fallback_tier": Tier.PREMIUM.value}},
        )
        return TierInfo(
            tier=Tier.PREMIUM,
            monthly_limit=TIER_MONTHLY_LIMITS[Tier.PREMIUM],
            billing_interval=BillingInterval.MONTHLY,
            is_fallback=True,
        )

    tier, interval = entry
    return TierInfo(
        tier=tier,
        monthly_limit=TIER_MONTHLY_LIMITS[tier],
        billing_interval=interval,
    )


def tier_rank(tier: Tier | str) -> int:
    """Ordering of tiers: free < professional < premium"""
    return TIER_RANKS[Tier(tier)]


def monthly_limit_for(tier: Tier | str) -> int:
    return TIER_MONTHLY_LIMITS[Tier(tier)]


def price_id_for(tier: Tier | str, interval: BillingInterval | str) -> str | None:
    """Configured price id for a paid tier and interval, None for free or unset"""
    tier = Tier(tier)
    if tier == Tier.FREE:
        return None
    return Config.price_ids().get(f"{tier.value}_{BillingInterval(interval).value}")
