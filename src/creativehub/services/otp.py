"""OTP generation and timing policy."""

import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from creativehub.config import Settings
from creativehub.models.base import as_utc

OTP_LENGTH = 6
OTP_EXPIRY_SECONDS = 300
MAX_OTP_ATTEMPTS = 3
MIN_RESEND_INTERVAL_SECONDS = 60

_OTP_PATTERN = re.compile(r"[0-9]{6}")

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(UTC)


def generate_code() -> str:
    """Generate a uniformly random 6-digit code from the OS CSPRNG."""
    return f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"


def is_valid_format(code: object) -> bool:
    """True iff ``code`` is exactly six ASCII digits."""
    return isinstance(code, str) and _OTP_PATTERN.fullmatch(code) is not None


def codes_match(expected: str, provided: str) -> bool:
    return secrets.compare_digest(expected.encode(), provided.encode())


def normalize_email(email: str) -> str:
    return email.strip().lower()


def mask_email(email: str) -> str:
    """Mask the local part of an address, e.g. ``a***e@example.com``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    if len(local) <= 2:
        masked = local[:1] + "***"
    else:
        masked = f"{local[0]}***{local[-1]}"
    return f"{masked}@{domain}"


@dataclass(frozen=True)
class OtpPolicy:
    """Expiry, attempt and resend limits for OTP challenges."""

    expiry_seconds: int = OTP_EXPIRY_SECONDS
    max_attempts: int = MAX_OTP_ATTEMPTS
    resend_interval_seconds: int = MIN_RESEND_INTERVAL_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpPolicy":
        return cls(
            expiry_seconds=settings.otp_expiration_seconds,
            max_attempts=settings.otp_max_attempts,
            resend_interval_seconds=settings.otp_resend_interval_seconds,
        )

    def expires_at(self, created_at: datetime) -> datetime:
        return as_utc(created_at) + timedelta(seconds=self.expiry_seconds)

    def is_expired(self, created_at: datetime, now: datetime) -> bool:
        """Expired once ``now`` is past ``created_at`` plus the validity window."""
        return now > self.expires_at(created_at)

    def remaining_seconds(self, created_at: datetime, now: datetime) -> int:
        """Seconds left in the validity window, floored at zero."""
        remaining = (self.expires_at(created_at) - now).total_seconds()
        return max(0, int(remaining))

    def resend_wait_seconds(self, created_at: datetime, now: datetime) -> int:
        """Seconds until another code may be issued, zero when allowed."""
        age = int((now - as_utc(created_at)).total_seconds())
        return max(0, self.resend_interval_seconds - age)

    def attempts_left(self, attempts: int) -> int:
        return max(0, self.max_attempts - attempts)


DEFAULT_POLICY = OtpPolicy()


def is_expired(created_at: datetime, now: datetime | None = None) -> bool:
    return DEFAULT_POLICY.is_expired(created_at, now or utc_clock())


def remaining_seconds(created_at: datetime, now: datetime | None = None) -> int:
    return DEFAULT_POLICY.remaining_seconds(created_at, now or utc_clock())
