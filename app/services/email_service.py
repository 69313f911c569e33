"""
Outgoing email over SMTP
"""

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """Sends HTML email; delivery failures are logged, never raised."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f'"{self.settings.app_name}" <{self.settings.email_sender}>'
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html_body, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_username:
                smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
            smtp.send_message(message)

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        """
        Send an HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html_body: HTML content

        Returns:
            bool: True if the SMTP server accepted the message
        """
        if not self.settings.smtp_configured:
            logger.warning(f"SMTP not configured, skipping email to {to}: {subject}")
            return False

        message = self._build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Sent email to {to}: {subject}")
        return True

    async def send_invitation_email(self, to: str, invite_url: str, inviter_name: str) -> bool:
        """Send the admin invitation with its registration link."""
        app_name = html.escape(self.settings.app_name)
        body = f"""
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>You're Invited to Join the {app_name} Admin Panel!</h2>
                <p>Hello,</p>
                <p>You've been invited to join the {app_name} Admin Panel by {html.escape(inviter_name)}.</p>
                <p>Click the button below to accept your invitation and create your account:</p>
                <p style="margin: 20px 0;">
                    <a href="{html.escape(invite_url)}" style="background-color: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; display: inline-block;">
                        Accept Invitation &amp; Register
                    </a>
                </p>
                <p><strong>Important:</strong> This invitation will expire in {self.settings.invite_expire_hours} hours.</p>
                <p>Best regards,<br>The {app_name} Team</p>
            </div>
        """
        return await self.send(to, f"You're Invited to Join {self.settings.app_name} Admin Panel", body)


# Global email service instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """
    Get email service instance (singleton pattern).

    Returns:
        EmailService: Email service instance
    """
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
