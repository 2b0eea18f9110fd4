"""
Base exception classes for application-wide error handling.

Every error raised by the service layer carries a human-readable message,
a machine-readable error code and optional details, so that API clients
and logs see the same shape regardless of where the failure happened.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input (400, never retried)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Wrong actor for the action (403)
    ├── ConflictError - State precondition not met, lost races (409)
    └── ExternalServiceError - Third-party service failures (502)

Usage:
    from core.exceptions import ConflictError, ValidationError

    raise ValidationError("Price must be positive", error_code="INVALID_PRICE")

    raise ConflictError(
        "Transaction is not awaiting shipment",
        error_code="INVALID_STATE_TRANSITION",
        details={"current_status": "disputed", "action": "mark_shipped"},
    )

Note:
    These exceptions are for domain/business logic errors. DRF handles
    API-layer exceptions (serialization, authentication). The HTTP status
    used when one of these reaches a view is the class's ``http_status``;
    see core.exception_handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, identifiers, etc.)

    Example:
        try:
            transaction = store.get(transaction_id)
        except NotFoundError as e:
            logger.warning(f"Transaction lookup failed: {e.error_code}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Transaction not found",
                "error_code": "TRANSACTION_NOT_FOUND",
                "details": {"transaction_id": "5b0c..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for service-layer validation such as a non-positive price, an
    unknown carrier or dispute reason. DRF serializers still handle
    request-shape validation.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        raise NotFoundError(
            f"Item {item_id} not found",
            error_code="ITEM_NOT_FOUND",
            details={"item_id": str(item_id)},
        )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller is not allowed to perform an operation.

    Note:
        For authentication failures (missing/invalid token), DRF's
        NotAuthenticated applies. Use this for authorization failures.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions
    - Optimistic locking failures (another writer got there first)
    - Resources that are no longer available

    Callers may retry only after re-reading the current state.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose internal
    details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
