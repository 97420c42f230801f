"""Login state machine with OTP step-up for privileged accounts.

A login moves through::

    AWAITING_CREDENTIALS -> CREDENTIALS_VERIFIED -> DIRECT_SUCCESS -> SESSION_ISSUED
                                                 \\-> OTP_PENDING -> OTP_VERIFIED -> SESSION_ISSUED

Any failure raises an ``AuthFlowError`` (the REJECTED state); the caller may
start over with fresh credentials. Standard accounts, and every account when
the operator override disables step-up, go straight to a session. Privileged
accounts get an emailed code and must come back with it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from creativehub.config import Settings
from creativehub.exceptions import InvalidCredentials
from creativehub.models import OtpPurpose, Privilege, User
from creativehub.services.accounts import AccountStore
from creativehub.services.auth import TokenSigner
from creativehub.services.identity import IdentityProviders, Provider, resolve_email
from creativehub.services.otp import OtpPolicy, mask_email, normalize_email
from creativehub.services.otp_flow import OtpService, SendOutcome
from creativehub.services.passwords import make_unusable_password, verify_password

logger = logging.getLogger(__name__)

# Compared against when the account does not exist, so both failure paths cost a hash
_DUMMY_PASSWORD_HASH = make_unusable_password()


class AuthState(str, Enum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    CREDENTIALS_VERIFIED = "credentials_verified"
    DIRECT_SUCCESS = "direct_success"
    OTP_PENDING = "otp_pending"
    OTP_VERIFIED = "otp_verified"
    SESSION_ISSUED = "session_issued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AuthPolicy:
    """Injected switches that shape the login flow."""

    require_step_up_for_privileged: bool = True
    step_up_federated_logins: bool = True
    allow_mock_identity: bool = False
    expose_code_preview: bool = False
    federated_email_domain: str = "rkch"
    otp: OtpPolicy = field(default_factory=OtpPolicy)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthPolicy":
        return cls(
            require_step_up_for_privileged=settings.require_step_up_for_privileged,
            step_up_federated_logins=settings.step_up_federated_logins,
            allow_mock_identity=settings.mock_identity_enabled,
            expose_code_preview=settings.is_development,
            federated_email_domain=settings.federated_email_domain,
            otp=OtpPolicy.from_settings(settings),
        )


@dataclass
class LoginOutcome:
    """Terminal result of one pass through the state machine."""

    state: AuthState
    user: User
    token: str | None = None
    masked_email: str | None = None
    expires_in: int | None = None
    code_preview: str | None = None

    @property
    def requires_otp(self) -> bool:
        return self.state == AuthState.OTP_PENDING


class StepUpAuthenticator:
    """Password and federated login with conditional OTP step-up."""

    def __init__(
        self,
        accounts: AccountStore,
        otp: OtpService,
        identities: IdentityProviders,
        signer: TokenSigner,
        policy: AuthPolicy,
    ) -> None:
        self.accounts = accounts
        self.otp = otp
        self.identities = identities
        self.signer = signer
        self.policy = policy

    def requires_step_up(self, user: User, federated: bool = False) -> bool:
        """Privilege is re-read at every login, so promotions apply on next sign-in."""
        if user.privilege != Privilege.PRIVILEGED:
            return False
        if not self.policy.require_step_up_for_privileged:
            return False
        if federated and not self.policy.step_up_federated_logins:
            return False
        return True

    def _issue_session(self, user: User, via: AuthState) -> LoginOutcome:
        token = self.signer.sign(user.id, user.privilege, user.email)
        logger.info(f"Session issued for {mask_email(user.email)} via {via.value}")
        return LoginOutcome(state=AuthState.SESSION_ISSUED, user=user, token=token)

    async def _after_first_factor(
        self,
        user: User,
        code: str | None = None,
        federated: bool = False,
    ) -> LoginOutcome:
        logger.debug(f"{mask_email(user.email)}: {AuthState.CREDENTIALS_VERIFIED.value}")

        if not self.requires_step_up(user, federated=federated):
            return self._issue_session(user, AuthState.DIRECT_SUCCESS)

        if code is None:
            challenge = await self.otp.issue(user.email, OtpPurpose.LOGIN)
            logger.info(f"Step-up required for {mask_email(user.email)}")
            return LoginOutcome(
                state=AuthState.OTP_PENDING,
                user=user,
                masked_email=mask_email(user.email),
                expires_in=challenge.expires_in,
                code_preview=challenge.code_preview,
            )

        await self.otp.verify(user.email, code, OtpPurpose.LOGIN)
        return self._issue_session(user, AuthState.OTP_VERIFIED)

    async def login_with_password(
        self,
        email: str,
        password: str,
        code: str | None = None,
    ) -> LoginOutcome:
        """Verify a password and either issue a session or demand an OTP."""
        user = await self.accounts.find_by_email(email)

        # Same error, same work, whether the account exists or not
        stored = user.password_hash if user else _DUMMY_PASSWORD_HASH
        if not verify_password(password, stored) or user is None:
            logger.info(f"Rejected password login for {mask_email(normalize_email(email))}")
            raise InvalidCredentials()

        return await self._after_first_factor(user, code=code or None)

    async def login_federated(
        self,
        provider: Provider,
        token: str,
        display_name: str | None = None,
    ) -> LoginOutcome:
        """Sign in with a provider token, provisioning the account on first use."""
        identity = await self.identities.get(provider).verify(token)
        email = resolve_email(identity, self.policy.federated_email_domain)

        user = await self.accounts.find_by_email(email)
        if user is None:
            name = (display_name or "").strip() or identity.display_name
            user = await self.accounts.create(
                email=email,
                password_hash=make_unusable_password(),
                name=name or f"{provider.value.title()} User",
                privilege=Privilege.STANDARD,
            )

        return await self._after_first_factor(user, federated=True)

    async def complete_step_up(self, email: str, code: str) -> LoginOutcome:
        """Finish a pending login by presenting the emailed code."""
        record = await self.otp.verify(email, code, OtpPurpose.LOGIN)
        user = await self.accounts.find_by_email(record.subject_email)
        if user is None or not self.requires_step_up(user):
            # A login code only completes a sign-in that demanded one
            logger.warning(f"Step-up completion refused for {mask_email(record.subject_email)}")
            raise InvalidCredentials()
        return self._issue_session(user, AuthState.OTP_VERIFIED)

    async def resend_login_code(self, email: str) -> SendOutcome:
        """Send a fresh login code to a privileged account awaiting step-up."""
        email = normalize_email(email)
        user = await self.accounts.find_by_email(email)
        if user is None or not self.requires_step_up(user):
            logger.info(f"Login OTP resend ignored for {mask_email(email)}")
            return SendOutcome()

        await self.otp.check_cooldown(email)
        return SendOutcome(challenge=await self.otp.issue(email, OtpPurpose.LOGIN))
