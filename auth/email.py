"""
auth/email.py -- Outbound email for verification and password reset codes.

SMTP via the standard library. When SMTP is not configured (no host, user or
sender address) the sender runs in log-only mode and nothing goes on the
network. With debug on, the full message (code included) is logged for local
development; otherwise only the recipient and subject are, at WARNING.

send_email() never raises for delivery problems. It returns False and logs,
because a missing email must not fail the request that triggered it -- the
user can always ask for a new code.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("proconnect.auth.email")


class EmailSender(Protocol):
    def send_email(self, to_email: str, subject: str, body: str) -> bool: ...


class SmtpEmailSender:
    """Plain-text email over SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "ProConnect",
        timeout: float = 10.0,
        debug: bool = False,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.debug = debug
        self.enabled = bool(smtp_host and smtp_username and from_email)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpEmailSender":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
            debug=settings.debug,
        )

    def send_email(self, to_email: str, subject: str, body: str) -> bool:
        """Send one plain-text message. Returns True on success, False otherwise."""
        if not self.enabled:
            # Bodies carry one-time codes; only debug mode may write them to the log.
            if self.debug:
                logger.info("SMTP disabled; email to %s not sent. Subject: %s\n%s", to_email, subject, body)
            else:
                logger.warning("SMTP disabled; email to %s not sent (subject: %s)", to_email, subject)
            return True

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send email to %s: %s", to_email, exc)
            return False
        return True
