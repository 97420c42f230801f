"""Error taxonomy for the authentication and OTP flows.

Every error carries the HTTP status it maps to, a stable machine-readable
``code`` and optional ``details`` that are safe to show to clients (attempts
left, seconds to wait). Raw store and provider exceptions are translated into
these at the service boundary and never reach a response.
"""

from typing import Any


class AuthFlowError(Exception):
    """Base class for errors raised by the authentication core."""

    status_code: int = 500
    code: str = "error"
    default_message: str = "An error occurred"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = {k: v for k, v in details.items() if v is not None}
        super().__init__(self.message)


# 400 - malformed input


class ValidationError(AuthFlowError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class MissingFields(ValidationError):
    code = "missing_fields"
    default_message = "Please provide all required fields"


class InvalidOtpFormat(ValidationError):
    code = "invalid_otp_format"
    default_message = "Invalid OTP format. OTP must be 6 digits."


# 401 - bad credentials


class AuthenticationError(AuthFlowError):
    status_code = 401
    code = "authentication_failed"
    default_message = "Authentication failed"


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class InvalidToken(AuthenticationError):
    code = "invalid_token"
    default_message = "Invalid or expired token"


class EmailNotVerified(AuthenticationError):
    code = "email_not_verified"
    default_message = "Email address not verified by identity provider"


class OtpPurposeMismatch(AuthenticationError):
    code = "invalid_otp_type"
    default_message = "Invalid OTP type"


# 400 - no live OTP (user-correctable)


class NotFoundError(AuthFlowError):
    status_code = 400
    code = "not_found"
    default_message = "Not found"


class OtpNotFound(NotFoundError):
    code = "otp_not_found"
    default_message = "OTP expired or not found. Please request a new one."


class OtpExpired(NotFoundError):
    code = "otp_expired"
    default_message = "OTP has expired. Please request a new one."


class OtpAlreadyUsed(NotFoundError):
    code = "otp_already_used"
    default_message = "OTP already used"


class InvalidOtp(NotFoundError):
    code = "invalid_otp"
    default_message = "Invalid OTP"

    def __init__(self, attempts_left: int) -> None:
        plural = "" if attempts_left == 1 else "s"
        super().__init__(
            f"Invalid OTP. {attempts_left} attempt{plural} remaining.",
            attempts_left=attempts_left,
        )


# 429 - throttled


class RateLimitError(AuthFlowError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests"


class ResendCooldown(RateLimitError):
    code = "resend_cooldown"
    default_message = "Please wait before requesting a new OTP"

    def __init__(self, wait_seconds: int) -> None:
        super().__init__(wait_seconds=wait_seconds)


class TooManyAttempts(RateLimitError):
    code = "too_many_attempts"
    default_message = "Too many failed attempts. Please request a new OTP."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, attempts_left=0)


# 500 - collaborator failures


class DependencyError(AuthFlowError):
    status_code = 500
    code = "dependency_error"
    default_message = "A required service is unavailable. Please try again later."


class DeliveryFailed(DependencyError):
    code = "delivery_failed"
    default_message = "Failed to send verification email"


class StoreUnavailable(DependencyError):
    code = "store_unavailable"
    default_message = "Verification store unavailable"


class ProviderNotConfigured(DependencyError):
    code = "provider_not_configured"
    default_message = "Identity provider not configured"
