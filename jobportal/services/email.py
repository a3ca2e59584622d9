"""Outgoing email for verification codes and password reset links."""
import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..config import settings
from ..config.settings import EmailSettings
from ..core.logging import get_logger

logger = get_logger("email")


class EmailService:
    """SMTP sender with a log-only development mode.

    When no SMTP host is configured, messages are logged instead of sent and
    delivery is reported as successful.
    """

    def __init__(self, email_settings: Optional[EmailSettings] = None):
        email_settings = email_settings or settings.email
        self.smtp_host = email_settings.smtp_host
        self.smtp_port = email_settings.smtp_port
        self.smtp_user = email_settings.smtp_user
        self.smtp_password = email_settings.smtp_password
        self.smtp_use_tls = email_settings.smtp_use_tls
        self.from_email = email_settings.from_email
        self.from_name = email_settings.from_name
        self.frontend_url = email_settings.frontend_url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    @staticmethod
    def _redact_email(email: str) -> str:
        if "@" not in email:
            return "redacted"
        local, domain = email.split("@", 1)
        return f"{local[:2]}***@{domain}"

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        """Deliver one message; returns False on any SMTP failure."""
        if not self.is_configured:
            logger.info(
                "email_dev_mode",
                to=self._redact_email(to_email),
                subject=subject,
                body=text_body or html_body,
            )
            return True
        return await asyncio.to_thread(self._send_smtp, to_email, subject, html_body, text_body)

    def _send_smtp(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str],
    ) -> bool:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=30
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "email_send_failed",
                to=self._redact_email(to_email),
                subject=subject,
                error=str(exc),
            )
            return False
        except Exception as exc:
            # e.g. UnicodeEncodeError for non-ASCII addresses on ASCII-only servers
            logger.error(
                "email_send_failed",
                to=self._redact_email(to_email),
                subject=subject,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return False

        logger.info("email_sent", to=self._redact_email(to_email), subject=subject)
        return True

    async def send_verification_code(
        self, to_email: str, code: str, user_name: str, expires_minutes: int = 10
    ) -> bool:
        subject = "Email Verification - Job Portal"
        text_body = (
            f"Hello {user_name},\n\n"
            f"Your Job Portal verification code is {code}.\n"
            f"It expires in {expires_minutes} minutes. If you didn't register, ignore this email."
        )
        html_body = (
            f"<h2>Hello {user_name},</h2>"
            "<p>Thank you for registering with Job Portal. Use the code below to verify your email:</p>"
            f"<h1 style=\"letter-spacing: 5px;\">{code}</h1>"
            f"<p>This code will expire in {expires_minutes} minutes. "
            "If you didn't request this verification, please ignore this email.</p>"
        )
        return await self.send(to_email, subject, html_body, text_body)

    async def send_password_reset(
        self, to_email: str, token: str, user_name: str, expires_minutes: int = 60
    ) -> bool:
        subject = "Password Reset - Job Portal"
        reset_url = f"{self.frontend_url}/reset-password?token={token}"
        text_body = (
            f"Hello {user_name},\n\n"
            f"Reset your password here: {reset_url}\n"
            f"The link expires in {expires_minutes} minutes. "
            "If you didn't request a reset, ignore this email."
        )
        html_body = (
            f"<h2>Hello {user_name},</h2>"
            "<p>We received a request to reset your password.</p>"
            f"<p><a href=\"{reset_url}\">Reset Password</a></p>"
            f"<p>This link will expire in {expires_minutes} minutes. "
            "If you didn't request a password reset, please ignore this email.</p>"
        )
        return await self.send(to_email, subject, html_body, text_body)
