"""
Helpers for reading Stripe objects safely.

Stripe returns nested fields either as a bare identifier or, when expanded, as
a full object. `as_ref` turns such a field into an explicit `IdOnly` or
`Expanded` value so callers branch on what they actually received instead of
assuming one shape.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class IdOnly:
    """A reference that carries only the object's identifier."""

    id: str


@dataclass(frozen=True)
class Expanded:
    """A reference whose full object was returned by the processor."""

    id: str
    obj: Any


StripeRef = IdOnly | Expanded


def get_value(obj: Any, attr: str, default: Any = None) -> Any:
    """
    Safely extract a field from a Stripe object (dict-like or attribute-based).
    """
    if obj is None:
        return default

    if isinstance(obj, dict):
        return obj.get(attr, default)

    try:
        return obj[attr]
    except (KeyError, TypeError, IndexError, AttributeError):
        pass

    return getattr(obj, attr, default)


def as_ref(value: Any) -> StripeRef | None:
    """
    Classify a possibly-expanded Stripe field.

    Returns:
        IdOnly for a bare string id, Expanded for an object carrying an id,
        None when the field is empty.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return IdOnly(value)

    ref_id = get_value(value, "id")
    if not ref_id:
        return None
    return Expanded(id=str(ref_id), obj=value)


def ref_id(value: Any) -> str | None:
    """Identifier of a possibly-expanded field, whichever shape it has."""
    ref = as_ref(value)
    return ref.id if ref else None


def to_datetime(timestamp: Any) -> datetime | None:
    """Convert a Stripe unix timestamp into an aware UTC datetime"""
    if timestamp is None or isinstance(timestamp, bool):
        return None
    try:
        return datetime.fromtimestamp(int(timestamp), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def metadata_to_dict(metadata: Any) -> dict[str, Any]:
    """Convert Stripe metadata object into a plain dictionary."""
    if metadata is None:
        return {}
    if isinstance(metadata, dict):
        return dict(metadata)
    to_dict = getattr(metadata, "to_dict", None)
    if callable(to_dict):
        result = to_dict()
        if isinstance(result, dict):
            return result
    try:
        return dict(metadata)
    except (TypeError, ValueError):
        return {}


def first_subscription_item(subscription: Any) -> Any:
    """First line item of a subscription, or None when it has none"""
    items = get_value(subscription, "items")
    data = get_value(items, "data") if items is not None else None
    if not data:
        return None
    return data[0]


def current_price_id(subscription: Any) -> str | None:
    """Price id of the subscription's first line item"""
    item = first_subscription_item(subscription)
    if item is None:
        return None
    return ref_id(get_value(item, "price"))


def get_period_bounds(subscription: Any) -> tuple[int | None, int | None]:
    """
    Current billing period (start, end) as unix timestamps.

    Newer Stripe API versions report the period on subscription items rather
    than on the subscription itself, so both places are checked.
    """
    start = get_value(subscription, "current_period_start")
    end = get_value(subscription, "current_period_end")

    if start is None or end is None:
        item = first_subscription_item(subscription)
        if item is not None:
            start = start if start is not None else get_value(item, "current_period_start")
            end = end if end is not None else get_value(item, "current_period_end")

    return start, end
