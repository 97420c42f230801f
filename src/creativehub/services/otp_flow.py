"""Issuing and checking OTP challenges.

``OtpService`` owns the challenge lifecycle: create and deliver a code
(rolling the record back if delivery fails), enforce the resend cooldown,
and verify a submitted code against the latest record for an email. Both the
standalone ``/otp`` endpoints and the login step-up use it.
"""

import logging
from dataclasses import dataclass

from creativehub.exceptions import (
    DeliveryFailed,
    InvalidOtp,
    InvalidOtpFormat,
    OtpAlreadyUsed,
    OtpExpired,
    OtpNotFound,
    OtpPurposeMismatch,
    ResendCooldown,
    TooManyAttempts,
    ValidationError,
)
from creativehub.models import OtpPurpose, OtpRecord, User
from creativehub.services.accounts import AccountStore
from creativehub.services.email import EmailService
from creativehub.services.otp import (
    Clock,
    OtpPolicy,
    codes_match,
    generate_code,
    is_valid_format,
    mask_email,
    normalize_email,
    utc_clock,
)
from creativehub.services.otp_store import OtpStore

logger = logging.getLogger(__name__)

# Login codes are only issued by the sign-in flow after the first factor
STANDALONE_PURPOSES = frozenset(OtpPurpose) - {OtpPurpose.LOGIN}

# Records created before purposes existed satisfy these requests
LEGACY_COMPATIBLE_PURPOSES = (OtpPurpose.LOGIN, OtpPurpose.VERIFICATION)


def purpose_satisfies(record_purpose: OtpPurpose | None, requested: OtpPurpose | None) -> bool:
    """Whether a record issued for ``record_purpose`` may answer ``requested``."""
    if requested is None:
        return True
    if record_purpose is None:
        return requested in LEGACY_COMPATIBLE_PURPOSES
    return OtpPurpose(record_purpose) == requested


@dataclass
class IssuedChallenge:
    """A freshly created and delivered OTP."""

    email: str
    purpose: OtpPurpose
    message_id: str
    expires_in: int
    code_preview: str | None = None


@dataclass
class SendOutcome:
    """Result of a send/resend request.

    ``challenge`` is None when the email matched no account; callers respond
    with the same success shape either way.
    """

    challenge: IssuedChallenge | None = None


@dataclass
class OtpStatus:
    has_active_otp: bool
    remaining_time: int | None = None
    attempts_left: int | None = None


class OtpService:
    """Lifecycle of OTP challenges for one request."""

    def __init__(
        self,
        store: OtpStore,
        accounts: AccountStore,
        email: EmailService,
        policy: OtpPolicy,
        clock: Clock = utc_clock,
        expose_code_preview: bool = False,
    ) -> None:
        self.store = store
        self.accounts = accounts
        self.email = email
        self.policy = policy
        self.clock = clock
        self.expose_code_preview = expose_code_preview

    async def issue(self, email: str, purpose: OtpPurpose) -> IssuedChallenge:
        """Create a record for ``email`` and deliver the code.

        A delivery failure deletes the new record so no undeliverable code is
        left live, then re-raises ``DeliveryFailed``.
        """
        code = generate_code()
        await self.store.create(email, code, purpose)

        try:
            delivery = await self.email.send_otp(
                email, code, purpose, expires_in=self.policy.expiry_seconds
            )
        except DeliveryFailed:
            logger.error(f"OTP delivery failed for {mask_email(email)}, discarding record")
            await self.store.delete_for_email(email)
            raise

        logger.info(f"Issued {purpose.value} OTP to {mask_email(email)}")
        return IssuedChallenge(
            email=email,
            purpose=purpose,
            message_id=delivery.message_id,
            expires_in=self.policy.expiry_seconds,
            code_preview=code if self.expose_code_preview else None,
        )

    async def check_cooldown(self, email: str) -> OtpRecord | None:
        """Raise ``ResendCooldown`` if a live code was issued too recently.

        Returns the latest unverified record, if any.
        """
        latest = await self.store.find_latest(email, verified=False)
        if latest is None:
            return None

        now = self.clock()
        if not self.policy.is_expired(latest.created_at, now):
            wait = self.policy.resend_wait_seconds(latest.created_at, now)
            if wait > 0:
                raise ResendCooldown(wait)
        return latest

    async def send(self, email: str, purpose: OtpPurpose) -> SendOutcome:
        """Issue a code to a known account; unknown emails get a silent no-op."""
        if purpose not in STANDALONE_PURPOSES:
            raise ValidationError(f"OTP purpose '{purpose.value}' cannot be requested directly")

        email = normalize_email(email)
        user = await self.accounts.find_by_email(email)
        if user is None:
            logger.info(f"OTP requested for unknown account {mask_email(email)}")
            return SendOutcome()

        await self.check_cooldown(email)
        return SendOutcome(challenge=await self.issue(email, purpose))

    async def resend(self, email: str, purpose: OtpPurpose | None = None) -> SendOutcome:
        """Replace the current code, keeping its purpose unless one is given."""
        if purpose is not None and purpose not in STANDALONE_PURPOSES:
            raise ValidationError(f"OTP purpose '{purpose.value}' cannot be requested directly")

        email = normalize_email(email)
        user = await self.accounts.find_by_email(email)
        if user is None:
            logger.info(f"OTP resend requested for unknown account {mask_email(email)}")
            return SendOutcome()

        pending = await self.store.find_latest(email, verified=False)
        if pending is not None and pending.purpose == OtpPurpose.LOGIN:
            logger.info(f"Standalone resend ignored for pending login of {mask_email(email)}")
            return SendOutcome()

        latest = await self.check_cooldown(email)
        if purpose is None:
            purpose = OtpPurpose(latest.purpose) if latest and latest.purpose else OtpPurpose.VERIFICATION
        return SendOutcome(challenge=await self.issue(email, purpose))

    async def verify(
        self,
        email: str,
        code: str,
        purpose: OtpPurpose | None = None,
    ) -> OtpRecord:
        """Check ``code`` against the latest record for ``email``.

        On success the record is consumed (marked verified, then deleted) and
        returned. Every terminal failure deletes the record.
        """
        if not is_valid_format(code):
            raise InvalidOtpFormat()

        email = normalize_email(email)
        record = await self.store.find_latest(email)
        if record is None:
            raise OtpNotFound()

        if record.verified:
            raise OtpAlreadyUsed()

        if self.policy.is_expired(record.created_at, self.clock()):
            await self.store.delete(record)
            raise OtpExpired()

        if not purpose_satisfies(record.purpose, purpose):
            raise OtpPurposeMismatch()

        max_attempts = self.policy.max_attempts
        if record.attempts >= max_attempts:
            await self.store.delete(record)
            raise TooManyAttempts("Maximum verification attempts reached. Please request a new OTP.")

        if not codes_match(record.code, code):
            attempts = await self.store.record_failed_attempt(record, max_attempts)
            if attempts is None or attempts >= max_attempts:
                await self.store.delete(record)
                logger.warning(f"OTP attempts exhausted for {mask_email(email)}")
                raise TooManyAttempts()
            raise InvalidOtp(self.policy.attempts_left(attempts))

        if not await self.store.consume(record, max_attempts):
            # A concurrent request consumed or exhausted the record first
            raise OtpNotFound()

        logger.info(f"OTP verified for {mask_email(email)}")
        return record

    async def verify_standalone(
        self,
        email: str,
        code: str,
        purpose: OtpPurpose | None = None,
    ) -> User | None:
        """Verify a code from the ``/otp`` flow and return the matching account."""
        record = await self.verify(email, code, purpose)
        return await self.accounts.find_by_email(record.subject_email)

    async def status(self, email: str) -> OtpStatus:
        """Report whether a live code exists for ``email``."""
        email = normalize_email(email)
        record = await self.store.find_latest(email, verified=False)
        if record is None:
            return OtpStatus(has_active_otp=False)

        now = self.clock()
        if self.policy.is_expired(record.created_at, now):
            await self.store.delete(record)
            return OtpStatus(has_active_otp=False)

        return OtpStatus(
            has_active_otp=True,
            remaining_time=self.policy.remaining_seconds(record.created_at, now),
            attempts_left=self.policy.attempts_left(record.attempts),
        )
