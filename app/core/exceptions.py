"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the application
- Machine-readable error codes for client handling
- A fixed HTTP status per error kind for the API exception handler

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input, user-correctable (400)
    ├── UnauthorizedError - Signature/credential failure (401)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── NotFoundError - Resource not found (404)
    ├── ConflictError - Duplicates, already-sold, invalid transitions (409)
    └── ExternalServiceError - Upstream gateway unavailable (503)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Invalid account number")

    # Raise with error code for client handling
    raise NotFoundError("Product not found", error_code="PRODUCT_NOT_FOUND")

    # Raise with additional details
    raise ConflictError(
        "Product already sold",
        error_code="PRODUCT_ALREADY_SOLD",
        details={"product_id": str(product.id)},
    )

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
    core.views.api_exception_handler renders both.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description (safe to show users)
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, identifiers, etc.)

    Example:
        try:
            PaymentInitiator.initiate(buyer, product_id)
        except NotFoundError as e:
            logger.warning(f"Initiation failed: {e.error_code}")
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
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Product already sold",
                "error_code": "PRODUCT_ALREADY_SOLD",
                "details": {"product_id": "..."}
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

    Use for:
    - Malformed or missing request values
    - Business rule violations the caller can correct (price mismatch,
      missing bank details)

    Note:
        For DRF serializer validation, use DRF's built-in validation.
        Use this for service-layer validation logic.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class UnauthorizedError(BaseApplicationError):
    """
    Raised when a caller cannot prove who it is.

    Use for inbound webhook signature mismatches. These are rejected,
    logged and never retried.
    """

    default_error_code: str = "UNAUTHORIZED"
    http_status: int = 401


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when user lacks permission for an operation.

    Example:
        if transaction.buyer_id != user.id:
            raise PermissionDeniedError(
                "Only the buyer can confirm delivery",
                error_code="NOT_TRANSACTION_BUYER",
            )
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        product = Product.objects.filter(id=product_id).first()
        if not product:
            raise NotFoundError(
                f"Product {product_id} not found",
                error_code="PRODUCT_NOT_FOUND",
                details={"product_id": str(product_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Concurrent modification conflicts
    - Invalid state transitions

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for:
    - Payment gateway failures
    - Network timeouts
    - Unexpected upstream responses

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 503
