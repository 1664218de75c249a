"""
Sync notifications.

Sends a plain-text e-mail through SMTP when a mail host is configured and
falls back to the log otherwise. Delivery problems are logged and never
propagate: a failed notification must not fail the sync it reports on.
"""

import logging
from email.mime.text import MIMEText
from typing import List, Optional

import aiosmtplib

from core.config import Settings, settings as default_settings


class SyncNotifier:
    """Report sync outcomes by e-mail or, without SMTP, to the log."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config or default_settings
        self.logger = logger or logging.getLogger(__name__)

    @property
    def recipients(self) -> List[str]:
        raw = self.config.EMAIL_TO or ""
        return [address.strip() for address in raw.split(",") if address.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.config.SMTP_HOST and self.config.EMAIL_FROM and self.recipients)

    def build_message(self, subject: str, body: str) -> MIMEText:
        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self.config.EMAIL_FROM
        message["To"] = ", ".join(self.recipients)
        message["Subject"] = subject
        return message

    async def notify(self, subject: str, body: str) -> bool:
        """
        Deliver a notification.

        Returns:
            True if an e-mail was sent, False if it was only logged
        """
        if not self.email_enabled:
            self.logger.info(f"Notification (email not configured): {subject}\n{body}")
            return False

        try:
            await aiosmtplib.send(
                self.build_message(subject, body),
                hostname=self.config.SMTP_HOST,
                port=self.config.SMTP_PORT,
                username=self.config.SMTP_USER,
                password=self.config.SMTP_PASSWORD,
                start_tls=True if self.config.SMTP_USER else None
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error(f"Failed to send notification email: {e}")
            return False

        self.logger.info(f"Notification email sent to {len(self.recipients)} recipients: {subject}")
        return True
