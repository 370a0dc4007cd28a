"""
HTTP Exception Factories

Centralized exception creation with consistent error messages and status codes
for the billing API.

Usage:
    from src.utils.exceptions import APIExceptions

    raise APIExceptions.forbidden("Subscription does not belong to this account")
    raise APIExceptions.from_billing_error(exc, operation="update subscription")
"""

import logging
from typing import Any

from fastapi import HTTPException

from src.services.billing_errors import (
    BillingError,
    BusinessRuleError,
    OwnershipError,
    ProcessorError,
    SubscriptionNotFoundError,
)

logger = logging.getLogger(__name__)

PROCESSOR_FAILURE_DETAIL = "Payment processor operation failed"


class APIExceptions:
    """Factory class for creating standardized HTTP exceptions."""

    @staticmethod
    def unauthorized(detail: str = "Invalid or missing access token") -> HTTPException:
        """401 Unauthorized - Authentication failed."""
        return HTTPException(
            status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"}
        )

    @staticmethod
    def forbidden(detail: str = "Access forbidden") -> HTTPException:
        """
        403 Forbidden - Caller does not own the target resource.

        Args:
            detail: Custom error message

        Returns:
            HTTPException with status 403
        """
        return HTTPException(status_code=403, detail=detail)

    @staticmethod
    def not_found(resource: str = "Resource", resource_id: Any | None = None) -> HTTPException:
        """
        404 Not Found - Resource doesn't exist.

        Args:
            resource: Type of resource (e.g., "Subscription", "Checkout session")
            resource_id: Optional ID of the resource

        Returns:
            HTTPException with status 404
        """
        detail = f"{resource} not found"
        if resource_id is not None:
            detail += f": {resource_id}"
        return HTTPException(status_code=404, detail=detail)

    @staticmethod
    def bad_request(detail: str = "Bad request") -> HTTPException:
        """400 Bad Request - Invalid request or business rule violation."""
        return HTTPException(status_code=400, detail=detail)

    @staticmethod
    def internal_error(
        operation: str = "operation", error: Exception | None = None
    ) -> HTTPException:
        """
        500 Internal Server Error - Server-side error.

        The error itself is logged but never echoed to the caller.

        Args:
            operation: Name of the operation that failed
            error: Optional exception that caused the error

        Returns:
            HTTPException with status 500
        """
        if error:
            logger.error(f"Internal error in {operation}: {error}", exc_info=True)

        return HTTPException(status_code=500, detail=f"Internal error during {operation}")

    @staticmethod
    def processor_error(operation: str, error: ProcessorError) -> HTTPException:
        """
        500 Internal Server Error - Payment processor call failed.

        Processor messages can leak account details, so only a generic detail
        is returned. A timed-out mutation is flagged so the client re-reads
        state instead of blindly retrying.
        """
        logger.error(f"Processor error during {operation}: {error}")
        detail: dict[str, Any] = {"message": PROCESSOR_FAILURE_DETAIL, "operation": operation}
        if error.outcome_unknown:
            detail["outcome_unknown"] = True
        return HTTPException(status_code=500, detail=detail)

    @staticmethod
    def from_billing_error(error: BillingError, operation: str) -> HTTPException:
        """Translate a billing domain error into the matching HTTP response"""
        if isinstance(error, OwnershipError):
            return APIExceptions.forbidden(str(error))
        if isinstance(error, BusinessRuleError):
            return APIExceptions.bad_request(str(error))
        if isinstance(error, SubscriptionNotFoundError):
            return APIExceptions.not_found("Subscription", error.user_id)
        if isinstance(error, ProcessorError):
            return APIExceptions.processor_error(operation, error)
        return APIExceptions.internal_error(operation, error)
