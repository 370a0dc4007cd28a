"""
Deterministic idempotency keys for processor create calls.

Requests for the same operation, user and target that land in the same time
bucket produce the same key, so the processor collapses double-clicks and
client retries into a single object.
"""

import math
import time

from src.config import Config


def time_bucket(now: float | None = None, window_seconds: int | None = None) -> int:
    window = window_seconds or Config.CHECKOUT_IDEMPOTENCY_WINDOW_SECONDS
    current = time.time() if now is None else now
    return math.floor(current / window)


def build_idempotency_key(
    operation: str,
    user_id: str,
    target_id: str,
    now: float | None = None,
    window_seconds: int | None = None,
) -> str:
    """
    Build '<operation>:<user_id>:<target_id>:<bucket>'.

    Args:
        operation: Processor operation name (e.g. 'subscription_checkout')
        user_id: Caller the object is created for
        target_id: What is being bought or created (price id, etc.)
        now: Unix time to bucket; defaults to the current time
        window_seconds: Bucket width; defaults to CHECKOUT_IDEMPOTENCY_WINDOW_SECONDS
    """
    bucket = time_bucket(now, window_seconds)
    return f"{operation}:{user_id}:{target_id}:{bucket}"
