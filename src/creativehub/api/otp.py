"""Standalone OTP endpoints (email verification, password reset, ...)."""

from fastapi import APIRouter
from pydantic import BaseModel, EmailStr

from creativehub.api.deps import OtpRateLimit, OtpServiceDep
from creativehub.models import OtpPurpose
from creativehub.models.user import UserRead
from creativehub.schemas import ErrorResponse

router = APIRouter()

VERIFY_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}

SENT_MESSAGE = "If the email exists, an OTP has been sent"


class SendOtpRequest(BaseModel):
    email: EmailStr
    purpose: OtpPurpose = OtpPurpose.VERIFICATION


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str
    purpose: OtpPurpose | None = None


class ResendOtpRequest(BaseModel):
    email: EmailStr


class OtpSentResponse(BaseModel):
    """Identical for known and unknown emails."""

    success: bool = True
    message: str = SENT_MESSAGE
    expires_in: int
    otp_preview: str | None = None


class OtpVerifiedResponse(BaseModel):
    success: bool = True
    message: str = "OTP verified successfully"
    user: UserRead | None = None


class OtpStatusResponse(BaseModel):
    success: bool = True
    has_active_otp: bool
    remaining_time: int | None = None
    attempts_left: int | None = None


@router.post("/send", response_model=OtpSentResponse, responses={429: {"model": ErrorResponse}})
async def send_otp(request: SendOtpRequest, otp: OtpServiceDep, _rate_limit: OtpRateLimit):
    """Email a code to the account, if there is one."""
    outcome = await otp.send(request.email, request.purpose)
    return OtpSentResponse(
        expires_in=otp.policy.expiry_seconds,
        otp_preview=outcome.challenge.code_preview if outcome.challenge else None,
    )


@router.post("/verify", response_model=OtpVerifiedResponse, responses=VERIFY_ERRORS)
async def verify_otp(request: VerifyOtpRequest, otp: OtpServiceDep, _rate_limit: OtpRateLimit):
    """Check a code. The code is consumed on success."""
    user = await otp.verify_standalone(request.email, request.code, request.purpose)
    return OtpVerifiedResponse(
        user=UserRead.model_validate(user, from_attributes=True) if user else None,
    )


@router.post("/resend", response_model=OtpSentResponse)
async def resend_otp(request: ResendOtpRequest, otp: OtpServiceDep, _rate_limit: OtpRateLimit):
    """Replace the current code with a new one, subject to the resend cooldown."""
    outcome = await otp.resend(request.email)
    return OtpSentResponse(
        expires_in=otp.policy.expiry_seconds,
        otp_preview=outcome.challenge.code_preview if outcome.challenge else None,
    )


@router.get("/status/{email}", response_model=OtpStatusResponse)
async def otp_status(email: str, otp: OtpServiceDep, _rate_limit: OtpRateLimit):
    """Whether a live code exists, with its countdown and attempts left."""
    status = await otp.status(email)
    return OtpStatusResponse(
        has_active_otp=status.has_active_otp,
        remaining_time=status.remaining_time,
        attempts_left=status.attempts_left,
    )
