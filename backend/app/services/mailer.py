"""
Transactional email delivery through the Brevo HTTP API.

When no Brevo API key is configured, messages are not sent; the OTP is
written to the server log instead so local development keeps working.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

import httpx

from app.core.config import Settings, settings as default_settings
from app.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of a send attempt."""

    delivered: bool
    message_id: Optional[str] = None
    logged_only: bool = False


def otp_email_template(otp: str, ttl_minutes: int = 10, brand: str = "KnowledgeShare") -> str:
    year = datetime.utcnow().year
    return f"""
<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <title>Verify your email</title>
  </head>
  <body style="background-color:#f8fafc;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',sans-serif;color:#0f172a;">
    <div style="max-width:520px;margin:0 auto;padding:48px 24px 56px;">
      <div style="background:#ffffff;border-radius:20px;border:1px solid #e2e8f0;padding:48px 40px;text-align:center;">
        <h1 style="font-size:26px;font-weight:600;">Verify your email address</h1>
        <p style="color:#475569;font-size:15px;line-height:1.7;">
          Enter the one-time passcode below to continue signing in to {brand}.
          The code expires in {ttl_minutes} minutes for your security.
        </p>
        <div style="display:inline-block;padding:18px 26px;border-radius:16px;background:#f1f5f9;letter-spacing:8px;font-size:28px;font-weight:600;">{otp}</div>
        <p style="color:#475569;font-size:15px;">If you did not initiate this, ignore this email.</p>
      </div>
      <div style="margin-top:32px;text-align:center;font-size:12px;color:#94a3b8;">
        &copy; {year} {brand}. All rights reserved.
      </div>
    </div>
  </body>
</html>
"""


class Mailer:
    """Sends transactional email; see module docstring for the dev fallback."""

    def __init__(self, config: Optional[Settings] = None, client: Optional[httpx.Client] = None):
        self.config = config or default_settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.config.brevo_api_key)

    def send_otp(self, to_email: str, otp: str, subject: str) -> DeliveryResult:
        """
        Email a one-time code.

        Raises:
            EmailDeliveryError: provider misconfigured or the request failed
        """
        if not self.configured:
            logger.warning(f"[DEV] Email provider not configured; OTP for {to_email}: {otp}")
            return DeliveryResult(delivered=False, logged_only=True)

        if not self.config.brevo_sender_email:
            logger.error("BREVO_SENDER_EMAIL is required when BREVO_API_KEY is set")
            raise EmailDeliveryError()

        html = otp_email_template(otp, ttl_minutes=self.config.otp_ttl_minutes, brand=self.config.brevo_sender_name)
        return self._send(to_email, subject, html)

    def _send(self, to_email: str, subject: str, html: str) -> DeliveryResult:
        payload = {
            "sender": {"name": self.config.brevo_sender_name, "email": self.config.brevo_sender_email},
            "to": [{"email": to_email}],
            "subject": subject,
            "htmlContent": html,
        }
        headers = {
            "api-key": self.config.brevo_api_key,
            "accept": "application/json",
            "content-type": "application/json",
        }

        try:
            if self._client is not None:
                response = self._client.post(self.config.brevo_api_url, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=self.config.email_timeout_seconds) as client:
                    response = client.post(self.config.brevo_api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Failed to send email to {to_email}: {exc}", exc_info=True)
            raise EmailDeliveryError() from exc

        message_id = None
        try:
            message_id = response.json().get("messageId")
        except ValueError:
            pass

        logger.info(f"Sent email '{subject}' to {to_email} (message_id={message_id})")
        return DeliveryResult(delivered=True, message_id=message_id)


def get_mailer() -> Mailer:
    """FastAPI dependency; overridden in tests."""
    return Mailer()
