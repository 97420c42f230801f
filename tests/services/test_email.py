"""Email delivery tests."""

import json
import logging
from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest

from creativehub.exceptions import DeliveryFailed
from creativehub.models import OtpPurpose
from creativehub.services.email import (
    OTP_SUBJECTS,
    ConsoleEmailBackend,
    EmailService,
    OutgoingEmail,
    ResendEmailBackend,
    SMTPEmailBackend,
    get_email_backend,
    render_otp_email,
)
from creativehub.services.otp import mask_email
from tests.conftest import RecordingEmailBackend

MESSAGE = OutgoingEmail(
    to="test@example.com",
    subject="Your Admin Login OTP - Creative Hub",
    html="<p>042917</p>",
    text="Your verification code is: 042917",
)


class TestRenderOtpEmail:
    def test_code_and_lifetime_in_both_bodies(self):
        message = render_otp_email("a@example.com", "042917", OtpPurpose.LOGIN, 300, "Creative Hub")

        assert message.to == "a@example.com"
        assert message.subject == "Your Admin Login OTP - Creative Hub"
        assert "042917" in message.html
        assert "Your verification code is: 042917" in message.text
        assert "5 minutes" in message.text
        assert "5 minutes" in message.html

    @pytest.mark.parametrize("purpose", list(OtpPurpose))
    def test_subject_per_purpose(self, purpose: OtpPurpose):
        message = render_otp_email("a@example.com", "123456", purpose, 300, "Brand")
        assert message.subject.startswith(OTP_SUBJECTS[purpose])

    def test_short_lifetime_rounds_up_to_a_minute(self):
        message = render_otp_email("a@example.com", "123456", OtpPurpose.LOGIN, 30, "Brand")
        assert "1 minutes" in message.text


class TestConsoleEmailBackend:
    @pytest.mark.asyncio
    async def test_logs_instead_of_sending(self, caplog):
        with caplog.at_level(logging.INFO, logger="creativehub.services.email"):
            message_id = await ConsoleEmailBackend().deliver(MESSAGE)

        assert message_id.startswith("console-")
        assert mask_email("test@example.com") in caplog.text
        assert MESSAGE.subject in caplog.text

    @pytest.mark.asyncio
    async def test_code_only_logged_at_debug(self, caplog):
        with caplog.at_level(logging.INFO, logger="creativehub.services.email"):
            await ConsoleEmailBackend().deliver(MESSAGE)

        assert "042917" not in caplog.text
        assert "test@example.com" not in caplog.text

        caplog.clear()
        with caplog.at_level(logging.DEBUG, logger="creativehub.services.email"):
            await ConsoleEmailBackend().deliver(MESSAGE)

        assert "042917" in caplog.text

    @pytest.mark.asyncio
    async def test_message_ids_are_unique(self):
        backend = ConsoleEmailBackend()
        assert await backend.deliver(MESSAGE) != await backend.deliver(MESSAGE)


class TestSMTPEmailBackend:
    @pytest.fixture
    def backend(self) -> SMTPEmailBackend:
        return SMTPEmailBackend(
            host="smtp.example.com",
            port=587,
            username="user",
            password="pass",
            from_address="noreply@example.com",
        )

    def test_build_message_is_multipart(self, backend: SMTPEmailBackend):
        mime = backend.build_message(MESSAGE)

        assert mime["From"] == "noreply@example.com"
        assert mime["To"] == "test@example.com"
        assert mime.get_body(preferencelist=("plain",)).get_content().strip() == MESSAGE.text
        assert "042917" in mime.get_body(preferencelist=("html",)).get_content()

    @pytest.mark.asyncio
    async def test_returns_message_id_header(self, backend: SMTPEmailBackend):
        with patch("creativehub.services.email.aiosmtplib.send", new_callable=AsyncMock) as send:
            message_id = await backend.deliver(MESSAGE)

        sent = send.call_args[0][0]
        assert sent["Message-ID"] == message_id
        assert send.call_args[1]["hostname"] == "smtp.example.com"
        assert send.call_args[1]["start_tls"] is True

    @pytest.mark.asyncio
    async def test_anonymous_relay(self):
        backend = SMTPEmailBackend(host="localhost", port=25, username="", password="", use_tls=False)

        with patch("creativehub.services.email.aiosmtplib.send", new_callable=AsyncMock) as send:
            await backend.deliver(MESSAGE)

        assert send.call_args[1]["username"] is None
        assert send.call_args[1]["password"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [aiosmtplib.SMTPException("rejected"), ConnectionRefusedError()]
    )
    async def test_failures_raise_delivery_failed(self, backend: SMTPEmailBackend, error):
        with patch(
            "creativehub.services.email.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=error,
        ), pytest.raises(DeliveryFailed):
            await backend.deliver(MESSAGE)


class TestResendEmailBackend:
    @pytest.mark.asyncio
    async def test_posts_message(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "re_msg_123"})

        backend = ResendEmailBackend(
            "re_test_key", "noreply@example.com", transport=httpx.MockTransport(handler)
        )

        assert await backend.deliver(MESSAGE) == "re_msg_123"

        request = seen[0]
        body = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer re_test_key"
        assert body["to"] == ["test@example.com"]
        assert body["from"] == "noreply@example.com"
        assert body["text"] == MESSAGE.text

    @pytest.mark.asyncio
    async def test_rejected(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="Unauthorized"))
        backend = ResendEmailBackend("bad", "noreply@example.com", transport=transport)

        with pytest.raises(DeliveryFailed):
            await backend.deliver(MESSAGE)

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Network error", request=request)

        backend = ResendEmailBackend(
            "re_test_key", "noreply@example.com", transport=httpx.MockTransport(handler)
        )

        with pytest.raises(DeliveryFailed):
            await backend.deliver(MESSAGE)


class TestGetEmailBackend:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("console", ConsoleEmailBackend),
            ("smtp", SMTPEmailBackend),
            ("resend", ResendEmailBackend),
        ],
    )
    def test_selects_backend(self, name, expected):
        with patch("creativehub.services.email.settings") as mock_settings:
            mock_settings.email_backend = name
            mock_settings.is_production = False
            assert isinstance(get_email_backend(), expected)

    def test_console_refused_in_production(self):
        with patch("creativehub.services.email.settings") as mock_settings:
            mock_settings.email_backend = "console"
            mock_settings.is_production = True

            with pytest.raises(ValueError, match="cannot be used in production"):
                get_email_backend()

    def test_unknown_backend(self):
        with patch("creativehub.services.email.settings") as mock_settings:
            mock_settings.email_backend = "carrier-pigeon"

            with pytest.raises(ValueError, match="Unknown email backend"):
                get_email_backend()


class TestEmailService:
    @pytest.mark.asyncio
    async def test_send_otp(self, outbox: RecordingEmailBackend):
        result = await EmailService(backend=outbox).send_otp(
            "admin@example.com", "042917", OtpPurpose.LOGIN, expires_in=600
        )

        assert result.message_id == "test-1"
        assert outbox.sent[0]["to"] == "admin@example.com"
        assert outbox.last_code() == "042917"
        assert "10 minutes" in outbox.sent[0]["text"]

    @pytest.mark.asyncio
    async def test_defaults_to_verification(self, outbox: RecordingEmailBackend):
        await EmailService(backend=outbox).send_otp("a@example.com", "123456")

        assert outbox.sent[0]["subject"].startswith(OTP_SUBJECTS[OtpPurpose.VERIFICATION])

    @pytest.mark.asyncio
    async def test_propagates_delivery_failure(self, outbox: RecordingEmailBackend):
        outbox.fail = True

        with pytest.raises(DeliveryFailed):
            await EmailService(backend=outbox).send_otp("a@example.com", "123456")
