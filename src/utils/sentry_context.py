"""
Sentry error context utilities for enhanced error tracking and reporting.

This module provides helper functions to add structured context to errors
captured by Sentry across the billing service.
"""

import logging
from typing import Any

from sentry_sdk import capture_exception, set_context, set_tag

logger = logging.getLogger(__name__)


def set_error_context(context_type: str, data: dict[str, Any]) -> None:
    """
    Set structured context for Sentry error capture.

    Args:
        context_type: Type of context (e.g., 'payment', 'database')
        data: Dictionary of contextual information
    """
    try:
        set_context(context_type, data)
    except Exception as e:
        logger.warning(f"Failed to set Sentry context: {e}")


def capture_error(
    exception: Exception,
    context_type: str | None = None,
    context_data: dict[str, Any] | None = None,
    tags: dict[str, str] | None = None,
) -> str | None:
    """
    Capture an exception to Sentry with structured context.

    Args:
        exception: The exception to capture
        context_type: Type of context for the error
        context_data: Additional context information
        tags: Dictionary of tags for filtering

    Returns:
        Event ID if captured, None if Sentry is not initialised or capture failed

    Example:
        try:
            processor.modify_subscription(subscription_id, ...)
        except ProcessorError as e:
            capture_error(
                e,
                context_type='payment',
                context_data={'subscription_id': subscription_id},
                tags={'operation': 'update_subscription'}
            )
    """
    try:
        if context_type and context_data:
            set_context(context_type, context_data)

        if tags:
            for key, value in tags.items():
                set_tag(key, str(value))

        return capture_exception(exception)
    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")
        return None


def capture_payment_error(
    exception: Exception,
    operation: str,
    provider: str = "stripe",
    user_id: str | None = None,
    amount: float | None = None,
    details: dict[str, Any] | None = None,
) -> str | None:
    """
    Capture a payment-related error with standard context.

    Args:
        exception: The exception to capture
        operation: Payment operation (e.g., 'update_subscription', 'checkout_session')
        provider: Payment provider (default: 'stripe')
        user_id: User ID if applicable
        amount: Transaction amount if applicable
        details: Additional details (subscription ID, price ID, etc.)

    Returns:
        Event ID if captured, None otherwise
    """
    context_data: dict[str, Any] = {
        "operation": operation,
        "provider": provider,
    }
    if user_id:
        context_data["user_id"] = user_id
    if amount:
        context_data["amount"] = amount
    if details:
        context_data.update(details)

    return capture_error(
        exception,
        context_type="payment",
        context_data=context_data,
        tags={"operation": operation, "provider": provider},
    )


def capture_database_error(
    exception: Exception,
    operation: str,
    table: str,
    details: dict[str, Any] | None = None,
) -> str | None:
    """
    Capture a datastore error with standard context.

    Args:
        exception: The exception to capture
        operation: Database operation (e.g., 'update', 'upsert')
        table: Table name
        details: Additional details (user ID, columns written, etc.)

    Returns:
        Event ID if captured, None otherwise
    """
    context_data: dict[str, Any] = {"operation": operation, "table": table}
    if details:
        context_data.update(details)

    return capture_error(
        exception,
        context_type="database",
        context_data=context_data,
        tags={"db_operation": operation, "db_table": table},
    )
