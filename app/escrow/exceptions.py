"""
Escrow-specific exceptions.

Exception Hierarchy:
    TransactionNotFoundError - Transaction lookup failures (NotFoundError)
    NotTransactionPartyError - Wrong actor for the action (PermissionDeniedError)
    InvalidStateTransitionError - Transition not in the graph (ConflictError)
    StaleRecordError - Lost a compare-and-swap race (ConflictError)
    GatewayError - Base for payment gateway failures (ExternalServiceError)
        ├── PaymentDeclinedError - Card declined (permanent)
        ├── InsufficientFundsError - Insufficient funds (permanent)
        ├── InvalidAccountError - Invalid connected account (permanent)
        ├── InvalidGatewayRequestError - Invalid request params (permanent)
        ├── WebhookSignatureError - Unverifiable webhook (permanent)
        ├── GatewayRateLimitError - Rate limited (transient, retry)
        ├── GatewayUnavailableError - Gateway unavailable (transient, retry)
        └── GatewayTimeoutError - Request timeout (transient, retry)

Usage:
    from escrow.exceptions import GatewayError, StaleRecordError

    try:
        gateway.capture_payment_intent(intent_id, idempotency_key=key)
    except GatewayError as e:
        if e.is_retryable:
            ...  # leave the transaction as it is, retry with the same key
        else:
            ...  # move the transaction to failed

    if rows_updated == 0:
        raise StaleRecordError(
            f"Transaction {pk} was modified by another process",
            details={"transaction_id": str(pk), "expected_version": 3},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Domain Exceptions
# =============================================================================


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction cannot be found."""

    default_error_code: str = "TRANSACTION_NOT_FOUND"


class NotTransactionPartyError(PermissionDeniedError):
    """
    Raised when the caller is not the party allowed to act.

    Only the seller may mark shipped, only the buyer may confirm delivery,
    and only the buyer or seller may open a dispute.
    """

    default_error_code: str = "NOT_TRANSACTION_PARTY"


# =============================================================================
# Concurrency Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a transition is attempted from an unexpected status.

    Example:
        raise InvalidStateTransitionError(
            "Cannot confirm delivery from 'disputed'",
            details={"current_status": "disputed", "target_status": "completed"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class StaleRecordError(ConflictError):
    """
    Raised when the persisted transaction changed after it was read.

    The write was not applied; callers must re-read before retrying.
    """

    default_error_code: str = "STALE_RECORD"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for all payment gateway errors.

    Attributes:
        gateway_code: The gateway's own error code
        decline_code: Card decline code (if applicable)
        is_retryable: True for transient errors that are safe to retry
            with the same idempotency key
    """

    default_error_code: str = "GATEWAY_ERROR"
    http_status: int = 502
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        if decline_code:
            details["decline_code"] = decline_code
        details["retryable"] = self.is_retryable
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class PaymentDeclinedError(GatewayError):
    """Card was declined by the issuing bank."""

    default_error_code: str = "CARD_DECLINED"
    http_status: int = 402


class InsufficientFundsError(GatewayError):
    """Insufficient funds on the payment method."""

    default_error_code: str = "INSUFFICIENT_FUNDS"
    http_status: int = 402


class InvalidAccountError(GatewayError):
    """
    The destination connected account cannot receive the transfer.

    Requires the seller to finish onboarding; payouts are retried later.
    """

    default_error_code: str = "INVALID_CONNECTED_ACCOUNT"


class InvalidGatewayRequestError(GatewayError):
    """
    The gateway rejected the request parameters.

    Examples: capturing an authorization that has expired or was already
    cancelled, or an unknown payment intent id.
    """

    default_error_code: str = "INVALID_GATEWAY_REQUEST"
    http_status: int = 400


class WebhookSignatureError(GatewayError):
    """The webhook payload could not be verified against the signing secret."""

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"
    http_status: int = 400


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with the same idempotency key)
# -----------------------------------------------------------------------------


class GatewayRateLimitError(GatewayError):
    """Rate limited by the gateway."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    http_status: int = 503
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """The gateway returned a 5xx or could not be reached."""

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    http_status: int = 503
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """
    The gateway call exceeded its timeout.

    The outcome is unknown, so the transaction stays in its prior status
    and the call is retried with the same idempotency key.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    http_status: int = 503
    is_retryable: bool = True
