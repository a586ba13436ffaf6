"""
Resend email service and the verification code Notifier.

EmailService talks to Resend. Notifier wraps it with the disclosure
fallback used when no delivery channel is available outside production.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import resend
from resend.exceptions import ResendError

from app.core.config import Settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending emails via Resend.

    An empty api_key leaves the service unconfigured; send calls then
    return False without touching the network.
    """

    def __init__(self, api_key: str, from_email: str, from_name: str, ttl_minutes: int = 10):
        self.api_key = (api_key or "").strip()
        self.from_email = from_email
        self.from_name = from_name
        self.ttl_minutes = ttl_minutes

        if self.is_configured:
            resend.api_key = self.api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send_verification_email(self, to_email: str, verification_code: str) -> bool:
        """
        Send a verification code email.

        Args:
            to_email: Recipient email address
            verification_code: 6-digit verification code

        Returns:
            bool: True if Resend accepted the email, False otherwise
        """
        if not self.is_configured:
            return False

        params = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to_email],
            "subject": f"Your {self.from_name} verification code",
            "html": self._build_verification_html(verification_code),
            "text": self._build_verification_text(verification_code),
        }

        try:
            response = resend.Emails.send(params)
            message_id = response.get("id") if isinstance(response, dict) else None
            logger.info(f"Verification email sent to {to_email} (MessageId: {message_id})")
            return True

        except ResendError as e:
            logger.error(f"Resend error sending verification email to {to_email}: {e}")
            return False

        except Exception as e:
            logger.error(f"Unexpected error sending email to {to_email}: {str(e)}")
            return False

    def _build_verification_html(self, code: str) -> str:
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="color-scheme" content="light">
    <title>{self.from_name} verification code</title>
</head>
<body style="margin: 0; padding: 0; background-color: #ffffff;">
    <div style="font-family: system-ui, -apple-system, sans-serif; max-width: 360px; margin: 0 auto; padding: 24px;">
        <h1 style="color: #f97316; font-size: 28px; text-align: center; margin: 0 0 16px 0;">{self.from_name.upper()}</h1>
        <div style="background-color: #f97316; color: #ffffff; font-size: 36px; font-weight: bold; letter-spacing: 12px; padding: 20px; border-radius: 12px; text-align: center; margin-bottom: 16px;">
            {code}
        </div>
        <p style="font-size: 13px; color: #6b7280; text-align: center; margin: 0;">
            This code expires in {self.ttl_minutes} minutes.<br/>
            If you didn't request this, you can safely ignore this email.
        </p>
    </div>
</body>
</html>
"""

    def _build_verification_text(self, code: str) -> str:
        return f"""Your {self.from_name} verification code is:

{code}

This code expires in {self.ttl_minutes} minutes.

If you didn't request this, you can safely ignore this email.
"""


@dataclass
class DeliveryResult:
    """Outcome of a Notifier.send call. code is set only when disclosed."""
    delivered: bool
    disclosed: bool = False
    code: Optional[str] = None


class Notifier:
    """
    Delivers verification codes, falling back to disclosure.

    allow_disclosure must already fold in the production check; see
    from_settings().
    """

    def __init__(self, email_service: EmailService, allow_disclosure: bool = False):
        self.email_service = email_service
        self.allow_disclosure = allow_disclosure

    @classmethod
    def from_settings(cls, settings: Settings) -> "Notifier":
        email_service = EmailService(
            api_key=settings.RESEND_API_KEY,
            from_email=settings.RESEND_FROM_EMAIL,
            from_name=settings.RESEND_FROM_NAME,
            ttl_minutes=settings.VERIFICATION_CODE_TTL_MINUTES,
        )
        allow_disclosure = settings.ALLOW_CODE_DISCLOSURE and not settings.is_production
        if not email_service.is_configured:
            logger.warning("RESEND_API_KEY not set - verification emails cannot be delivered")
        return cls(email_service, allow_disclosure=allow_disclosure)

    def send(self, email: str, code: str) -> DeliveryResult:
        if self.email_service.send_verification_email(email, code):
            return DeliveryResult(delivered=True)

        if self.allow_disclosure:
            logger.warning(f"Email delivery unavailable for {email} - disclosing code to requester (dev mode)")
            return DeliveryResult(delivered=False, disclosed=True, code=code)

        logger.error(f"Email delivery failed for {email} and disclosure is disabled")
        return DeliveryResult(delivered=False)
