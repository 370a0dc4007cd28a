"""
Billing error taxonomy

Every failure the subscription engine raises is a BillingError subclass so that
routes can translate it into an HTTP status without string matching.
"""


class BillingError(Exception):
    """Base exception for billing operations."""

    pass


class OwnershipError(BillingError):
    """Raised when the caller's record does not reference the target processor object."""

    def __init__(self, message: str = "This subscription does not belong to your account"):
        super().__init__(message)


class BusinessRuleError(BillingError):
    """Raised when a requested change violates a billing rule (message is user-facing)."""

    pass


class SubscriptionNotFoundError(BillingError):
    """Raised when a user has no local subscription record."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No subscription record for user {user_id}")


class ProcessorError(BillingError):
    """
    Raised when a call to the payment processor fails.

    Attributes:
        operation: Processor operation that failed (e.g. 'modify_subscription')
        outcome_unknown: True when the request timed out or the connection dropped,
            so the side effect may still have happened on the processor
        retryable: True when repeating the whole operation is safe
        code: Processor-defined error code, when one was returned
    """

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        outcome_unknown: bool = False,
        retryable: bool = True,
        code: str | None = None,
    ):
        self.operation = operation
        self.outcome_unknown = outcome_unknown
        self.retryable = retryable
        self.code = code
        super().__init__(f"{operation} failed: {message}")


class PersistenceError(BillingError):
    """Raised when a write to the local subscription table fails."""

    pass
