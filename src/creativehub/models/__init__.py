"""SQLModel database models."""

from creativehub.models.base import TimestampMixin
from creativehub.models.otp import OtpPurpose, OtpRecord
from creativehub.models.user import Privilege, User

__all__ = [
    "OtpPurpose",
    "OtpRecord",
    "Privilege",
    "TimestampMixin",
    "User",
]
