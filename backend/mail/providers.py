"""Email provider implementations used by the application."""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Dict, Optional

from .config import EmailConfig

logger = logging.getLogger(__name__)


class SendFailed(Exception):
    """Raised when the outbound transport rejects or cannot deliver a message."""

    def __init__(self, recipient: str, reason: str) -> None:
        super().__init__(f"Failed to send email to {recipient}: {reason}")
        self.recipient = recipient
        self.reason = reason


class EmailProvider:
    """Base provider for outbound email delivery."""

    name = "base"

    def __init__(self, *, from_email: str, from_name: str = "") -> None:
        self.from_email = from_email
        self.from_name = from_name

    @property
    def sender(self) -> str:
        if self.from_name:
            return formataddr((self.from_name, self.from_email))
        return self.from_email

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"email_provider": self.name, "email_sender": self.sender}


class DevPrintProvider(EmailProvider):
    """Development provider that logs messages instead of sending them."""

    name = "dev"

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        logger.info(
            "Would send email to %s with subject: %s",
            to,
            subject,
            extra={
                "email_recipient": to,
                "email_subject": subject,
                "email_sender": self.sender,
            },
        )


class SMTPProvider(EmailProvider):
    """SMTP-based provider for production use."""

    name = "smtp"

    def __init__(
        self,
        *,
        from_email: str,
        from_name: str = "",
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(from_email=from_email, from_name=from_name)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html_body: str, text_body: str) -> str:
        message = MIMEMultipart("alternative")
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(text_body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message.as_string()

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        payload = self._build_message(to, subject, html_body, text_body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                if self.use_tls:
                    client.starttls()
                if self.username and self.password:
                    client.login(self.username, self.password)
                client.sendmail(self.from_email, [to], payload)
        except (smtplib.SMTPException, OSError) as exc:
            raise SendFailed(to, f"{type(exc).__name__}: {exc}") from exc


def create_email_provider(config: EmailConfig) -> EmailProvider:
    provider = (config.provider_name or "dev").strip().lower()
    if provider == "smtp":
        return SMTPProvider(
            from_email=config.from_email,
            from_name=config.from_name,
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            timeout=config.smtp_timeout,
        )
    if provider != "dev":
        logger.warning("Unknown email provider %r, falling back to dev provider", provider)
    return DevPrintProvider(from_email=config.from_email, from_name=config.from_name)


__all__ = [
    "EmailProvider",
    "DevPrintProvider",
    "SMTPProvider",
    "SendFailed",
    "create_email_provider",
]
