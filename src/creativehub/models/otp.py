"""One-time passcode records."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from creativehub.models.base import generate_nanoid, utcnow


class OtpPurpose(str, Enum):
    """What an OTP was issued for. A code only satisfies its own purpose."""

    LOGIN = "login"
    REGISTRATION = "registration"
    VERIFICATION = "verification"
    PASSWORD_RESET = "password-reset"


class OtpRecord(SQLModel, table=True):
    """An outstanding verification challenge for one email address."""

    __tablename__ = "otp_records"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    subject_email: str = Field(index=True, max_length=255, description="Lower-cased email")
    code: str = Field(max_length=6, description="6-digit passcode")
    purpose: OtpPurpose | None = Field(default=None, description="Null on legacy records")
    attempts: int = Field(default=0, ge=0, description="Failed verifications so far")
    verified: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Start of the validity window",
    )
