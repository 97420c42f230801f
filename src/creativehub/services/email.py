"""Delivery of one-time passcodes by email.

Backends only know how to hand an :class:`OutgoingEmail` to a transport
and return the provider's message id. Rendering lives in
:func:`render_otp_email` so every backend sends the same content.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid

import aiosmtplib
import httpx

from creativehub.config import settings
from creativehub.exceptions import DeliveryFailed
from creativehub.models import OtpPurpose
from creativehub.services.otp import mask_email

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

OTP_SUBJECTS = {
    OtpPurpose.LOGIN: "Your Admin Login OTP",
    OtpPurpose.REGISTRATION: "Verify Your Email",
    OtpPurpose.VERIFICATION: "Your Verification OTP",
    OtpPurpose.PASSWORD_RESET: "Password Reset OTP",
}


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: str


@dataclass
class DeliveryResult:
    """Outcome of handing an OTP to the email backend."""

    message_id: str


class EmailBackend(ABC):
    """Transport for outgoing mail."""

    @abstractmethod
    async def deliver(self, message: OutgoingEmail) -> str:
        """Hand ``message`` to the transport and return its message id.

        Raises:
            DeliveryFailed: if the transport refused or could not be reached
        """


class ConsoleEmailBackend(EmailBackend):
    """Writes messages to the log instead of sending them (development only)."""

    async def deliver(self, message: OutgoingEmail) -> str:
        message_id = f"console-{uuid.uuid4().hex}"
        logger.info(
            f"Email not sent (console backend) id={message_id} "
            f"to={mask_email(message.to)} subject={message.subject!r}"
        )
        # The body carries the passcode
        logger.debug(f"Console email {message_id} body:\n{message.text}")
        return message_id


class SMTPEmailBackend(EmailBackend):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def build_message(self, message: OutgoingEmail) -> EmailMessage:
        mime = EmailMessage()
        mime["From"] = self.from_address
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid()
        mime.set_content(message.text)
        mime.add_alternative(message.html, subtype="html")
        return mime

    async def deliver(self, message: OutgoingEmail) -> str:
        mime = self.build_message(message)
        try:
            await aiosmtplib.send(
                mime,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {mask_email(message.to)} failed: {e}")
            raise DeliveryFailed() from e

        logger.info(f"OTP email sent via SMTP to {mask_email(message.to)}")
        return mime["Message-ID"]


class ResendEmailBackend(EmailBackend):
    """Sends through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self._transport = transport

    async def deliver(self, message: OutgoingEmail) -> str:
        payload = {
            "from": self.from_address,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"Resend rejected email to {mask_email(message.to)}: "
                    f"{e.response.status_code} {e.response.text}"
                )
                raise DeliveryFailed() from e
            except httpx.HTTPError as e:
                logger.error(f"Resend unreachable for {mask_email(message.to)}: {e}")
                raise DeliveryFailed() from e

        logger.info(f"OTP email sent via Resend to {mask_email(message.to)}")
        return response.json().get("id", "")


def get_email_backend() -> EmailBackend:
    """Get the configured email backend."""
    backend = settings.email_backend
    if backend == "console":
        if settings.is_production:
            raise ValueError("Console email backend cannot be used in production")
        return ConsoleEmailBackend()
    if backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
        )
    if backend == "resend":
        return ResendEmailBackend(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
        )
    raise ValueError(f"Unknown email backend: {backend}")


def render_otp_email(
    to: str,
    code: str,
    purpose: OtpPurpose,
    expires_in: int,
    brand: str,
) -> OutgoingEmail:
    """Build the passcode email. The code appears once in each body."""
    title = OTP_SUBJECTS[purpose]
    minutes = max(1, expires_in // 60)

    html = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: 'Inter', Arial, sans-serif; background: #0f0f0f; color: #ffffff; max-width: 600px; margin: 0 auto; padding: 40px 20px;">
    <div style="text-align: center; margin-bottom: 40px;">
        <h1 style="color: #D4AF37; margin: 0;">{brand}</h1>
    </div>
    <div style="background: #1a1a1a; border: 1px solid #333; border-radius: 12px; padding: 40px; text-align: center;">
        <h2 style="color: #D4AF37; margin-top: 0;">{title}</h2>
        <p style="color: #a0a0a0;">Please use the following code to verify your action:</p>
        <div style="background: #D4AF37; color: #000; font-size: 36px; font-weight: bold; letter-spacing: 8px; padding: 20px; border-radius: 8px; margin: 30px 0; display: inline-block;">
            {code}
        </div>
        <p style="color: #a0a0a0;">
            This code will expire in <strong>{minutes} minutes</strong>.<br>
            Do not share this code with anyone.
        </p>
        <p style="color: #ff6b6b; font-size: 14px;">
            If you did not request this code, please ignore this email and ensure your account is secure.
        </p>
    </div>
    <p style="text-align: center; color: #666; font-size: 12px; margin-top: 40px;">
        This is an automated message, please do not reply.
    </p>
</body>
</html>
"""

    text = (
        f"{title}\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code will expire in {minutes} minutes. Do not share it with anyone.\n\n"
        "If you did not request this code, please ignore this email.\n"
    )

    return OutgoingEmail(to=to, subject=f"{title} - {brand}", html=html, text=text)


class EmailService:
    """Renders passcode emails and hands them to the configured backend."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        """Lazy-load the backend."""
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def send_otp(
        self,
        to: str,
        code: str,
        purpose: OtpPurpose | None = None,
        expires_in: int | None = None,
    ) -> DeliveryResult:
        """Send a one-time passcode email.

        ``purpose`` defaults to verification and ``expires_in`` to the
        configured OTP lifetime; both only affect the wording.

        Raises:
            DeliveryFailed: if the backend could not send the message
        """
        message = render_otp_email(
            to=to,
            code=code,
            purpose=purpose or OtpPurpose.VERIFICATION,
            expires_in=expires_in if expires_in is not None else settings.otp_expiration_seconds,
            brand=settings.email_brand_name,
        )
        message_id = await self.backend.deliver(message)
        return DeliveryResult(message_id=message_id)


# Global email service instance
email_service = EmailService()
