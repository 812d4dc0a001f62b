"""Email notification adapter."""

import asyncio
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog

from gatekeep.config import AccountTokenSettings, EmailSettings

logger = structlog.get_logger()

_FOOTER_HTML = """
            <hr style="border: none; border-top: 1px solid #ddd; margin: 30px 0;">
            <p style="color: #666; font-size: 12px;">
                This email was sent automatically. Please do not reply to this email.
            </p>"""

_FOOTER_TEXT = """
---
This email was sent automatically. Please do not reply to this email."""


def _hours(hours: int) -> str:
    return "1 hour" if hours == 1 else f"{hours} hours"


def _button(url: str, label: str) -> str:
    return f"""
            <p style="text-align: center; margin: 30px 0;">
                <a href="{url}" style="background: #007bff; color: white;
                padding: 12px 24px; text-decoration: none; border-radius: 5px; font-weight: bold;">
                    {label}
                </a>
            </p>"""


class EmailNotifier:
    """Delivers account emails via SMTP.

    Implements NotificationSender. The async methods run the blocking SMTP
    exchange in a worker thread.
    """

    def __init__(
        self, config: EmailSettings, token_lifetimes: AccountTokenSettings | None = None
    ):
        """Initialize the email notifier.

        Args:
            config: Email configuration settings.
            token_lifetimes: Link lifetimes quoted in the emails. Must match
                the lifetimes the auth service issues tokens with.
        """
        self.config = config
        self.token_lifetimes = token_lifetimes or AccountTokenSettings()

    def send(
        self,
        to_emails: list[str],
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> bool:
        """Send email notification.

        Returns True if the email was sent successfully.
        Note: This is synchronous - use send_async from async contexts.
        """
        try:
            # Create message
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.config.from_name} <{self.config.from_email}>"
            msg["To"] = ", ".join(to_emails)

            if body_text:
                msg.attach(MIMEText(body_text, "plain"))
            msg.attach(MIMEText(body_html, "html"))

            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port) as server:
                if self.config.use_tls:
                    server.starttls()

                if self.config.smtp_user and self.config.smtp_password:
                    server.login(self.config.smtp_user, self.config.smtp_password)

                server.sendmail(
                    self.config.from_email,
                    to_emails,
                    msg.as_string(),
                )

            logger.info("email_sent", to=to_emails, subject=subject)
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "email_error",
                to=to_emails,
                subject=subject,
                error=str(e),
            )
            return False

    async def send_async(
        self,
        to_emails: list[str],
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> bool:
        return await asyncio.to_thread(self.send, to_emails, subject, body_html, body_text)

    async def send_verification_email(self, email: str, token: str, verify_url: str) -> bool:
        """Send the email-verification link.

        The token is already embedded in verify_url; it is accepted for
        senders that render it separately.
        """
        subject = "Verify your email address"
        expires = _hours(self.token_lifetimes.email_verification_expire_hours)

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Verify your email address</h2>
            <p>Thanks for signing up. Please confirm your email address to activate
            your account. This link expires in {expires}.</p>
            {_button(verify_url, "Verify Email")}
            {_FOOTER_HTML}
        </body>
        </html>
        """

        body_text = f"""
Verify your email address

Thanks for signing up. Confirm your email address (link expires in {expires}):
{verify_url}
{_FOOTER_TEXT}
        """

        return await self.send_async([email], subject, body_html, body_text)

    async def send_welcome_email(self, email: str, first_name: str) -> bool:
        """Send the post-verification welcome email."""
        subject = "Welcome aboard"
        greeting = f"Hi {first_name}," if first_name else "Hi,"

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2 style="color: #36a64f;">Welcome!</h2>
            <p>{greeting}</p>
            <p>Your email address has been verified and your account is ready to use.</p>
            {_FOOTER_HTML}
        </body>
        </html>
        """

        body_text = f"""
Welcome!

{greeting}

Your email address has been verified and your account is ready to use.
{_FOOTER_TEXT}
        """

        return await self.send_async([email], subject, body_html, body_text)

    async def send_password_reset_email(self, email: str, token: str, reset_url: str) -> bool:
        """Send the password reset link."""
        subject = "Reset your password"
        expires = _hours(self.token_lifetimes.password_reset_expire_hours)

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Reset your password</h2>
            <p>We received a request to reset your password. This link expires in {expires}.</p>
            {_button(reset_url, "Reset Password")}
            <p>If you did not request a password reset, you can ignore this email.</p>
            {_FOOTER_HTML}
        </body>
        </html>
        """

        body_text = f"""
Reset your password

We received a request to reset your password (link expires in {expires}):
{reset_url}

If you did not request a password reset, you can ignore this email.
{_FOOTER_TEXT}
        """

        return await self.send_async([email], subject, body_html, body_text)

    async def send_account_locked_email(self, email: str, locked_until: datetime) -> bool:
        """Tell the owner their account was locked."""
        subject = "Your account has been temporarily locked"
        until = locked_until.strftime("%Y-%m-%d %H:%M %Z").strip()

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2 style="color: #dc3545;">Account temporarily locked</h2>
            <p>Your account was locked after several failed sign-in attempts.</p>
            <div style="background: #f8d7da; padding: 15px; border-radius: 5px; margin: 20px 0;">
                <p style="margin: 0;"><strong>Locked until:</strong> {until}</p>
            </div>
            <p>If this was not you, reset your password once the lock expires.</p>
            {_FOOTER_HTML}
        </body>
        </html>
        """

        body_text = f"""
Account temporarily locked

Your account was locked after several failed sign-in attempts.
Locked until: {until}

If this was not you, reset your password once the lock expires.
{_FOOTER_TEXT}
        """

        return await self.send_async([email], subject, body_html, body_text)
