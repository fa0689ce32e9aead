"""
auth/mail.py -- Outbound mail for one-time codes.

The engine depends only on the MailTransport protocol: send(to, subject, html)
returns a DeliveryReceipt listing the addresses the provider accepted. The
engine treats a receipt that does not list the user's address as a failed
delivery and stores nothing.

ResendMailTransport posts to the Resend HTTP API. Network and HTTP errors are
logged and reported as an empty receipt; they never propagate into the engine.

Never log the message body -- it contains the plaintext code. Recipient
addresses are logged masked (mask_address).
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests

from core.config import Settings

logger = logging.getLogger("codegate.mail")

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10


@dataclass(frozen=True)
class DeliveryReceipt:
    accepted: list[str] = field(default_factory=list)
    message_id: str | None = None

    def confirms(self, address: str) -> bool:
        return bool(self.accepted) and self.accepted[0] == address


def mask_address(address: str) -> str:
    """Return "a***@example.com" for log lines; full addresses are never logged."""
    local, sep, domain = address.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


class MailDeliveryError(Exception):
    """Raised by transports that cannot even attempt delivery (misconfiguration)."""


class MailTransport(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> DeliveryReceipt: ...


class ResendMailTransport:
    """MailTransport backed by the Resend HTTP API.

    Usage:
        transport = ResendMailTransport(settings)
        receipt = transport.send("alice@example.com", "Verification code", body)
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self._api_key = settings.resend_api_key
        self._sender = settings.mail_from
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def send(self, to: str, subject: str, html_body: str) -> DeliveryReceipt:
        if not self._api_key:
            raise MailDeliveryError("RESEND_API_KEY is not configured.")
        try:
            resp = self._session.post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._sender, "to": [to], "subject": subject, "html": html_body},
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
            message_id = resp.json().get("id")
        except (requests.RequestException, ValueError) as e:
            logger.warning("Mail delivery to %s failed: %s", mask_address(to), e)
            return DeliveryReceipt()
        if not message_id:
            logger.warning("Mail provider returned no message id for %s", mask_address(to))
            return DeliveryReceipt()
        return DeliveryReceipt(accepted=[to], message_id=message_id)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_CODE_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="text-align: center;">{heading}</h2>
  <p>Dear {name},</p>
  <p>Your code is:</p>
  <p style="text-align: center; font-size: 24px; letter-spacing: 4px;"><strong>{code}</strong></p>
  <p>{purpose} The code will expire in {minutes} minutes.</p>
  <p>If you did not request this, please ignore this email.</p>
</div>
"""


def verification_email(name: str, code: str, minutes: int) -> tuple[str, str]:
    """Return (subject, html) for an email-verification code."""
    body = _CODE_TEMPLATE.format(
        heading="Verification Code",
        name=html.escape(name),
        code=code,
        purpose="Please use this code to verify your email address.",
        minutes=minutes,
    )
    return "Verification code", body


def password_reset_email(name: str, code: str, minutes: int) -> tuple[str, str]:
    """Return (subject, html) for a forgot-password code."""
    body = _CODE_TEMPLATE.format(
        heading="Password Reset Code",
        name=html.escape(name),
        code=code,
        purpose="Please use this code to set a new password.",
        minutes=minutes,
    )
    return "Forgot password verification code", body
