"""Unit tests for auth/mail.py -- Resend transport and code templates.

The requests.Session is replaced with a MagicMock; no network traffic.
Failure log lines carry a masked recipient, never the full address.
"""

import logging
from unittest.mock import MagicMock

import pytest
import requests

from auth.mail import (
    DeliveryReceipt,
    MailDeliveryError,
    ResendMailTransport,
    mask_address,
    password_reset_email,
    verification_email,
)
from core.config import Settings


@pytest.fixture
def mail_settings(settings: Settings) -> Settings:
    return Settings(
        token_secret=settings.token_secret,
        code_secret=settings.code_secret,
        resend_api_key="re_test_key",
        mail_from="CodeGate <no-reply@example.com>",
    )


def _session_returning(payload: dict) -> MagicMock:
    session = MagicMock()
    session.post.return_value.json.return_value = payload
    return session


class TestResendMailTransport:
    def test_accepted_delivery(self, mail_settings: Settings) -> None:
        session = _session_returning({"id": "msg_123"})
        receipt = ResendMailTransport(mail_settings, session=session).send("alice@example.com", "Hi", "<p>x</p>")
        assert receipt.confirms("alice@example.com")
        assert receipt.message_id == "msg_123"

        _, kwargs = session.post.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer re_test_key"
        assert kwargs["json"]["to"] == ["alice@example.com"]
        assert kwargs["json"]["from"] == "CodeGate <no-reply@example.com>"
        assert kwargs["timeout"] > 0

    def test_http_error_is_unconfirmed(self, mail_settings: Settings) -> None:
        session = MagicMock()
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("422")
        receipt = ResendMailTransport(mail_settings, session=session).send("alice@example.com", "Hi", "<p>x</p>")
        assert not receipt.confirms("alice@example.com")

    def test_network_error_is_unconfirmed(self, mail_settings: Settings) -> None:
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("unreachable")
        receipt = ResendMailTransport(mail_settings, session=session).send("alice@example.com", "Hi", "<p>x</p>")
        assert receipt == DeliveryReceipt()

    def test_missing_message_id_is_unconfirmed(self, mail_settings: Settings) -> None:
        session = _session_returning({})
        receipt = ResendMailTransport(mail_settings, session=session).send("alice@example.com", "Hi", "<p>x</p>")
        assert not receipt.confirms("alice@example.com")

    def test_failure_log_masks_recipient(self, mail_settings: Settings, caplog: pytest.LogCaptureFixture) -> None:
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("unreachable")
        with caplog.at_level(logging.WARNING, logger="codegate.mail"):
            ResendMailTransport(mail_settings, session=session).send("alice@example.com", "Hi", "<p>x</p>")
        assert "a***@example.com" in caplog.text
        assert "alice@example.com" not in caplog.text

    def test_missing_id_log_masks_recipient(self, mail_settings: Settings, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="codegate.mail"):
            ResendMailTransport(mail_settings, session=_session_returning({})).send("alice@example.com", "Hi", "x")
        assert "alice@example.com" not in caplog.text

    def test_missing_api_key_raises(self, settings: Settings) -> None:
        with pytest.raises(MailDeliveryError):
            ResendMailTransport(settings, session=MagicMock()).send("alice@example.com", "Hi", "<p>x</p>")


class TestReceipt:
    def test_other_address_does_not_confirm(self) -> None:
        assert not DeliveryReceipt(accepted=["bob@example.com"]).confirms("alice@example.com")


class TestTemplates:
    def test_verification_email(self) -> None:
        subject, body = verification_email("Alice", "123456", 10)
        assert subject == "Verification code"
        assert "<strong>123456</strong>" in body
        assert "10 minutes" in body

    def test_password_reset_email(self) -> None:
        subject, body = password_reset_email("Alice", "654321", 2)
        assert subject == "Forgot password verification code"
        assert "<strong>654321</strong>" in body
        assert "2 minutes" in body

    def test_name_is_escaped(self) -> None:
        _, body = verification_email("<script>", "123456", 10)
        assert "<script>" not in body
        assert "&lt;script&gt;" in body


class TestMaskAddress:
    def test_keeps_first_letter_and_domain(self) -> None:
        assert mask_address("alice@example.com") == "a***@example.com"

    def test_no_at_sign(self) -> None:
        assert mask_address("not-an-address") == "***"
