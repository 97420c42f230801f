"""OTP generation and timing policy tests."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from creativehub.services.otp import (
    OtpPolicy,
    codes_match,
    generate_code,
    is_expired,
    is_valid_format,
    mask_email,
    normalize_email,
    remaining_seconds,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class TestGenerateCode:
    def test_six_digits(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()

    def test_zero_padded(self):
        with patch("creativehub.services.otp.secrets.randbelow", return_value=42):
            assert generate_code() == "000042"

    def test_not_constant(self):
        assert len({generate_code() for _ in range(50)}) > 1


class TestFormat:
    @pytest.mark.parametrize("code", ["000000", "123456", "999999"])
    def test_valid(self, code):
        assert is_valid_format(code)

    @pytest.mark.parametrize(
        "code",
        ["", "12345", "1234567", "12a456", " 123456", "123456\n", "１２３４５６", None, 123456],
    )
    def test_invalid(self, code):
        assert not is_valid_format(code)

    def test_codes_match(self):
        assert codes_match("123456", "123456")
        assert not codes_match("123456", "123457")


class TestPolicy:
    def test_defaults(self):
        policy = OtpPolicy()
        assert policy.expiry_seconds == 300
        assert policy.max_attempts == 3
        assert policy.resend_interval_seconds == 60

    def test_expiry_boundary(self):
        policy = OtpPolicy()
        assert not policy.is_expired(T0, T0 + timedelta(seconds=300))
        assert policy.is_expired(T0, T0 + timedelta(seconds=300, microseconds=1))

    def test_naive_created_at_is_treated_as_utc(self):
        policy = OtpPolicy()
        naive = T0.replace(tzinfo=None)
        assert policy.remaining_seconds(naive, T0 + timedelta(seconds=10)) == 290

    def test_remaining_seconds_floors_at_zero(self):
        policy = OtpPolicy()
        assert policy.remaining_seconds(T0, T0) == 300
        assert policy.remaining_seconds(T0, T0 + timedelta(seconds=299.5)) == 0
        assert policy.remaining_seconds(T0, T0 + timedelta(hours=1)) == 0

    def test_resend_wait(self):
        policy = OtpPolicy()
        assert policy.resend_wait_seconds(T0, T0 + timedelta(seconds=15)) == 45
        assert policy.resend_wait_seconds(T0, T0 + timedelta(seconds=60)) == 0
        assert policy.resend_wait_seconds(T0, T0 + timedelta(seconds=600)) == 0

    def test_attempts_left(self):
        policy = OtpPolicy(max_attempts=3)
        assert policy.attempts_left(0) == 3
        assert policy.attempts_left(2) == 1
        assert policy.attempts_left(5) == 0

    def test_module_helpers_use_default_policy(self):
        assert not is_expired(T0, T0 + timedelta(seconds=60))
        assert is_expired(T0, T0 + timedelta(minutes=6))
        assert remaining_seconds(T0, T0 + timedelta(seconds=60)) == 240


class TestEmailHelpers:
    def test_normalize(self):
        assert normalize_email("  Admin@Example.COM ") == "admin@example.com"

    @pytest.mark.parametrize(
        ("email", "masked"),
        [
            ("admin@example.com", "a***n@example.com"),
            ("ab@example.com", "a***@example.com"),
            ("not-an-email", "***"),
        ],
    )
    def test_mask(self, email, masked):
        assert mask_email(email) == masked
