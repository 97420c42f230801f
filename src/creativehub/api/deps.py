"""FastAPI dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from creativehub.config import settings
from creativehub.database import get_session
from creativehub.exceptions import InvalidToken
from creativehub.models import Privilege, User
from creativehub.services.accounts import AccountStore
from creativehub.services.auth import TokenSigner, decode_token, token_signer, verify_token
from creativehub.services.email import EmailService, email_service
from creativehub.services.identity import IdentityProviders
from creativehub.services.otp import Clock, utc_clock
from creativehub.services.otp_flow import OtpService
from creativehub.services.otp_store import OtpStore
from creativehub.services.rate_limit import (
    RateLimitType,
    check_rate_limit,
    rate_limit_headers,
)
from creativehub.services.step_up import AuthPolicy, StepUpAuthenticator

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


def get_auth_policy(request: Request) -> AuthPolicy:
    """Policy built once at startup and kept on the application."""
    policy = getattr(request.app.state, "auth_policy", None)
    if policy is None:
        policy = AuthPolicy.from_settings(settings)
        request.app.state.auth_policy = policy
    return policy


def get_identity_providers(request: Request) -> IdentityProviders:
    providers = getattr(request.app.state, "identity_providers", None)
    if providers is None:
        policy = get_auth_policy(request)
        providers = IdentityProviders.from_settings(settings, allow_mock=policy.allow_mock_identity)
        request.app.state.identity_providers = providers
    return providers


def get_clock() -> Clock:
    return utc_clock


def get_email_service() -> EmailService:
    return email_service


def get_token_signer() -> TokenSigner:
    return token_signer


def get_otp_service(
    session: SessionDep,
    policy: Annotated[AuthPolicy, Depends(get_auth_policy)],
    clock: Annotated[Clock, Depends(get_clock)],
    email: Annotated[EmailService, Depends(get_email_service)],
) -> OtpService:
    return OtpService(
        store=OtpStore(session, clock=clock),
        accounts=AccountStore(session),
        email=email,
        policy=policy.otp,
        clock=clock,
        expose_code_preview=policy.expose_code_preview,
    )


def get_authenticator(
    session: SessionDep,
    otp: Annotated[OtpService, Depends(get_otp_service)],
    policy: Annotated[AuthPolicy, Depends(get_auth_policy)],
    identities: Annotated[IdentityProviders, Depends(get_identity_providers)],
    signer: Annotated[TokenSigner, Depends(get_token_signer)],
) -> StepUpAuthenticator:
    return StepUpAuthenticator(
        accounts=AccountStore(session),
        otp=otp,
        identities=identities,
        signer=signer,
        policy=policy,
    )


OtpServiceDep = Annotated[OtpService, Depends(get_otp_service)]
AuthenticatorDep = Annotated[StepUpAuthenticator, Depends(get_authenticator)]


async def get_current_user(
    session: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await verify_token(session, credentials.credentials)
    except InvalidToken as e:
        logger.debug(f"Token verification failed: {e!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def get_token_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> dict:
    """Decode the bearer token without touching the database."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_token(credentials.credentials)
    except InvalidToken as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_privileged(claims: Annotated[dict, Depends(get_token_claims)]) -> dict:
    """Authorize from the token's privilege claim alone."""
    if claims.get("privilege") != Privilege.PRIVILEGED.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return claims


# Type aliases for common dependencies
CurrentUser = Annotated[User, Depends(get_current_user)]
TokenClaims = Annotated[dict, Depends(get_token_claims)]
AdminUser = Annotated[dict, Depends(require_privileged)]


class RateLimitDependency:
    """Dependency class for rate limiting endpoints.

    Usage:
        @router.post("/endpoint")
        async def endpoint(_rate_limit: AuthRateLimit):
            ...
    """

    def __init__(self, limit_type: RateLimitType) -> None:
        self.limit_type = limit_type

    async def __call__(self, request: Request) -> None:
        """Check rate limit and raise 429 if exceeded."""
        result = await check_rate_limit(request, self.limit_type)

        if not result.success:
            headers = rate_limit_headers(result)
            retry_after = headers.get("Retry-After", "60")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
                headers=headers,
            )


# Pre-configured rate limit dependencies
AuthRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.AUTH))]
OtpRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.OTP))]
