"""Custom exceptions for the application."""
from typing import List, Optional


class BaseAPIException(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = None,
        details: dict = None,
        errors: Optional[List[dict]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.errors = errors
        super().__init__(self.message)


class ValidationError(BaseAPIException):
    """Malformed input, rejected before touching any store."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: dict = None,
        errors: Optional[List[dict]] = None
    ):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details,
            errors=errors
        )


class DuplicateAccountError(BaseAPIException):
    """An account already exists for the email."""

    def __init__(self, message: str = "User already exists", details: dict = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="DUPLICATE_ACCOUNT",
            details=details
        )


class NotFoundError(BaseAPIException):
    """Resource not found error."""

    def __init__(self, message: str = "Resource not found", details: dict = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND_ERROR",
            details=details
        )


class InvalidCredentialsError(BaseAPIException):
    """Unknown email or wrong password; the two are indistinguishable."""

    def __init__(self, message: str = "Invalid credentials", details: dict = None):
        super().__init__(
            message=message,
            status_code=401,
            error_code="INVALID_CREDENTIALS",
            details=details
        )


class UnverifiedError(BaseAPIException):
    """Email address not verified yet."""

    def __init__(
        self,
        message: str = "Please verify your email before logging in",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=403,
            error_code="EMAIL_NOT_VERIFIED",
            details=details
        )


class AlreadyVerifiedError(BaseAPIException):
    """Email address already verified."""

    def __init__(self, message: str = "Email already verified", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="ALREADY_VERIFIED",
            details=details
        )


class AccountLockedError(BaseAPIException):
    """Account temporarily locked after repeated failures."""

    def __init__(
        self,
        message: str = "Account is temporarily locked due to too many failed attempts",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=423,
            error_code="ACCOUNT_LOCKED",
            details=details
        )


class InvalidCodeError(BaseAPIException):
    """One-time code absent, mismatched or expired."""

    def __init__(self, message: str = "Invalid or expired code", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_CODE",
            details=details
        )


class InvalidTokenError(BaseAPIException):
    """Reset or challenge token absent or expired."""

    def __init__(self, message: str = "Invalid or expired token", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_TOKEN",
            details=details
        )


class AuthenticationError(BaseAPIException):
    """Missing or invalid session token."""

    def __init__(self, message: str = "Authentication required", details: dict = None):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTHENTICATION_ERROR",
            details=details
        )


class AuthorizationError(BaseAPIException):
    """Authorization error."""

    def __init__(self, message: str = "Insufficient permissions", details: dict = None):
        super().__init__(
            message=message,
            status_code=403,
            error_code="AUTHORIZATION_ERROR",
            details=details
        )


class CSRFError(BaseAPIException):
    """CSRF token missing or invalid."""

    def __init__(self, message: str = "CSRF token validation failed", details: dict = None):
        super().__init__(
            message=message,
            status_code=403,
            error_code="CSRF_ERROR",
            details=details
        )


class RateLimitExceeded(BaseAPIException):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str = "Too many requests. Please try again later.",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details=details
        )


class DeliveryError(BaseAPIException):
    """Downstream email or bot-check failure."""

    def __init__(self, message: str = "External service error", details: dict = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="DELIVERY_ERROR",
            details=details
        )


class InternalError(BaseAPIException):
    """Unexpected failure; carries only a generic message."""

    def __init__(self, message: str = "Internal server error", details: dict = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="INTERNAL_ERROR",
            details=details
        )


class ConfigurationError(BaseAPIException):
    """Configuration error."""

    def __init__(self, message: str = "Configuration error", details: dict = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            details=details
        )
