"""Authentication endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from creativehub.api.deps import (
    AuthenticatorDep,
    AuthRateLimit,
    CurrentUser,
    SessionDep,
    TokenClaims,
)
from creativehub.exceptions import InvalidCredentials, ValidationError
from creativehub.models import Privilege
from creativehub.models.user import UserRead
from creativehub.schemas import ErrorResponse, SuccessResponse
from creativehub.services.accounts import AccountStore
from creativehub.services.auth import create_token
from creativehub.services.identity import Provider
from creativehub.services.otp import mask_email
from creativehub.services.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from creativehub.services.step_up import LoginOutcome

logger = logging.getLogger(__name__)

router = APIRouter()

LOGIN_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


class LoginRequest(BaseModel):
    """Request body for password login."""

    email: EmailStr
    password: str = Field(min_length=1)
    code: str | None = Field(default=None, description="Emailed OTP, for privileged accounts")


class RegisterRequest(BaseModel):
    """Request body for account registration."""

    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=32)
    password: str
    confirm_password: str


class VerifyOtpRequest(BaseModel):
    """Request body for completing a pending step-up login."""

    email: EmailStr
    code: str


class ResendOtpRequest(BaseModel):
    email: EmailStr


class IdTokenLoginRequest(BaseModel):
    """Google / Apple sign-in."""

    id_token: str = Field(min_length=1)
    full_name: str | None = Field(default=None, description="Apple only sends the name once")


class FacebookLoginRequest(BaseModel):
    access_token: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class UpdateProfileRequest(BaseModel):
    """Fields left out are not changed."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None


class TokenResponse(BaseModel):
    """Response containing a session token."""

    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class OtpRequiredResponse(BaseModel):
    """Login paused until the emailed code is presented."""

    success: bool = True
    requires_otp: bool = True
    email: str = Field(description="Masked destination address")
    message: str = "OTP sent to your email"
    expires_in: int
    # Only populated outside production, for testing
    otp_preview: str | None = None


class OtpSentResponse(BaseModel):
    success: bool = True
    message: str
    expires_in: int | None = None
    otp_preview: str | None = None


def _token_response(outcome: LoginOutcome) -> TokenResponse:
    return TokenResponse(
        access_token=outcome.token or "",
        user=UserRead.model_validate(outcome.user, from_attributes=True),
    )


def _login_response(outcome: LoginOutcome) -> TokenResponse | OtpRequiredResponse:
    if outcome.requires_otp:
        return OtpRequiredResponse(
            email=outcome.masked_email or "",
            expires_in=outcome.expires_in or 0,
            otp_preview=outcome.code_preview,
        )
    return _token_response(outcome)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    session: SessionDep,
    _rate_limit: AuthRateLimit,
):
    """Create a standard account and sign it in."""
    if request.password != request.confirm_password:
        raise ValidationError("Passwords do not match")
    if len(request.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    accounts = AccountStore(session)
    if await accounts.find_by_email(request.email):
        raise ValidationError("User with this email already exists")

    user = await accounts.create(
        email=request.email,
        password_hash=hash_password(request.password),
        name=request.name.strip(),
        phone=request.phone.strip(),
        privilege=Privilege.STANDARD,
    )
    return TokenResponse(
        access_token=create_token(user),
        user=UserRead.model_validate(user, from_attributes=True),
    )


@router.post("/login", response_model=TokenResponse | OtpRequiredResponse, responses=LOGIN_ERRORS)
async def login(
    request: LoginRequest,
    authenticator: AuthenticatorDep,
    _rate_limit: AuthRateLimit,
):
    """
    Sign in with email and password.

    Privileged accounts receive ``requires_otp`` instead of a token on the
    first call and repeat the call with ``code``, or finish via ``/verify-otp``.
    """
    outcome = await authenticator.login_with_password(request.email, request.password, request.code)
    return _login_response(outcome)


@router.post("/verify-otp", response_model=TokenResponse, responses=LOGIN_ERRORS)
async def verify_otp(
    request: VerifyOtpRequest,
    authenticator: AuthenticatorDep,
    _rate_limit: AuthRateLimit,
):
    """Complete a pending login (password or federated) with the emailed code."""
    outcome = await authenticator.complete_step_up(request.email, request.code)
    return _token_response(outcome)


@router.post("/resend-otp", response_model=OtpSentResponse)
async def resend_otp(
    request: ResendOtpRequest,
    authenticator: AuthenticatorDep,
    _rate_limit: AuthRateLimit,
):
    """Send a new login code. Unknown or standard accounts get the same reply."""
    outcome = await authenticator.resend_login_code(request.email)
    challenge = outcome.challenge
    return OtpSentResponse(
        message=f"If a login is pending, a new OTP has been sent to {mask_email(request.email)}",
        expires_in=authenticator.policy.otp.expiry_seconds,
        otp_preview=challenge.code_preview if challenge else None,
    )


@router.post("/google", response_model=TokenResponse | OtpRequiredResponse)
async def google_login(
    request: IdTokenLoginRequest,
    authenticator: AuthenticatorDep,
    _rate_limit: AuthRateLimit,
):
    """Sign in with a Google ID token."""
    outcome = await authenticator.login_federated(Provider.GOOGLE, request.id_token)
    return _login_response(outcome)


@router.post("/apple", response_model=TokenResponse | OtpRequiredResponse)
async def apple_login(
    request: IdTokenLoginRequest,
    authenticator: AuthenticatorDep,
    _rate_limit: AuthRateLimit,
):
    """Sign in with an Apple ID token."""
    outcome = await authenticator.login_federated(
        Provider.APPLE, request.id_token, display_name=request.full_name
    )
    return _login_response(outcome)


@router.post("/facebook", response_model=TokenResponse | OtpRequiredResponse)
async def facebook_login(
    request: FacebookLoginRequest,
    authenticator: AuthenticatorDep,
    _rate_limit: AuthRateLimit,
):
    """Sign in with a Facebook user access token."""
    outcome = await authenticator.login_federated(Provider.FACEBOOK, request.access_token)
    return _login_response(outcome)


@router.get("/me", response_model=UserRead)
async def get_current_user_info(user: CurrentUser):
    """Get current authenticated user info."""
    return UserRead.model_validate(user, from_attributes=True)


@router.put("/update", response_model=TokenResponse, responses={400: {"model": ErrorResponse}})
async def update_profile(
    request: UpdateProfileRequest,
    user: CurrentUser,
    session: SessionDep,
    _rate_limit: AuthRateLimit,
):
    """Update the current user's name or email.

    The email is part of the token claims, so a fresh token is returned.
    """
    name = request.name.strip() if request.name is not None else None
    if name == "":
        raise ValidationError("Name cannot be blank")

    await AccountStore(session).update_profile(user, name=name, email=request.email)
    return TokenResponse(
        access_token=create_token(user),
        user=UserRead.model_validate(user, from_attributes=True),
    )


@router.put("/change-password", response_model=TokenResponse)
async def change_password(
    request: ChangePasswordRequest,
    user: CurrentUser,
    session: SessionDep,
    _rate_limit: AuthRateLimit,
):
    """Change the current user's password and issue a fresh token."""
    if request.new_password != request.confirm_password:
        raise ValidationError("New passwords do not match")
    if len(request.new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not verify_password(request.current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")

    await AccountStore(session).set_password(user, hash_password(request.new_password))
    logger.info(f"Password changed for {mask_email(user.email)}")
    return TokenResponse(
        access_token=create_token(user),
        user=UserRead.model_validate(user, from_attributes=True),
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout():
    """
    Logout endpoint.

    Since we use stateless JWT, this is mostly for client-side token clearing.
    """
    return SuccessResponse(message="Logged out successfully")


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    claims: TokenClaims,
    session: SessionDep,
    _rate_limit: AuthRateLimit,
):
    """
    Refresh a session token.

    Re-reads the account so a privilege change is reflected in the new token.
    """
    user = await AccountStore(session).find_by_id(claims.get("sub", ""))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return TokenResponse(
        access_token=create_token(user),
        user=UserRead.model_validate(user, from_attributes=True),
    )
