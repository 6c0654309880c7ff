"""Outgoing email over SMTP."""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from .config import Settings, settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    sent: bool
    reason: str | None = None


def send_password_reset_email(
    to: str,
    reset_url: str,
    name: str | None = None,
    config: Settings = settings,
) -> EmailResult:
    """Email a password reset link.

    Without SMTP configuration the link is logged instead of sent.
    """
    if not config.smtp_host or not config.smtp_port or not config.email_from:
        logger.warning(f"Email not configured. Password reset link: {reset_url}")
        return EmailResult(sent=False, reason="missing_email_config")

    greeting = f"Hi {name}," if name else "Hello,"
    message = EmailMessage()
    message["Subject"] = "Reset your CommonPlace password"
    message["From"] = config.email_from
    message["To"] = to
    message.set_content(
        f"{greeting}\n\n"
        "We received a request to reset your CommonPlace password.\n\n"
        f"Reset your password: {reset_url}\n\n"
        "If you did not request this, you can safely ignore this email."
    )
    message.add_alternative(
        f"<p>{greeting}</p>\n"
        "<p>We received a request to reset your CommonPlace password.</p>\n"
        f'<p><a href="{reset_url}">Reset your password</a></p>\n'
        "<p>If you did not request this, you can safely ignore this email.</p>",
        subtype="html",
    )

    try:
        # Port 465 speaks TLS from the start; anything else upgrades if it can
        if config.smtp_port == 465:
            server = smtplib.SMTP_SSL(config.smtp_host, config.smtp_port, timeout=30)
        else:
            server = smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=30)

        with server:
            if config.smtp_port != 465:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
            if config.smtp_user and config.smtp_pass:
                server.login(config.smtp_user, config.smtp_pass)
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send password reset email: {e}")
        return EmailResult(sent=False, reason="send_failed")

    logger.info(f"Sent password reset email to {to}")
    return EmailResult(sent=True)
