"""
Email provider abstraction layer.

OutreachService receives a provider instance, so tests pass a fake and
production uses SMTPEmailProvider.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional

from fundflow.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """Email message structure."""
    to: str
    subject: str
    html_body: str
    text_body: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    reply_to: Optional[str] = None
    tracking_id: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class SendResult:
    """Result of sending an email."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    tracking_id: Optional[str] = None


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send an email message."""
        ...

    @abstractmethod
    async def verify_connection(self) -> bool:
        """Verify the email provider connection."""
        ...


class SMTPEmailProvider(EmailProvider):
    """
    Send emails over SMTP submission (587) with STARTTLS.

    smtplib is blocking, so each send runs in the default executor.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username if username is not None else settings.smtp_username
        self.password = password if password is not None else settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.from_email = from_email or settings.mail_from_email
        self.from_name = from_name or settings.mail_from_name

    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send an email via SMTP."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{message.from_name or self.from_name} <{message.from_email or self.from_email}>"
        msg["To"] = message.to
        msg["Message-ID"] = make_msgid(domain=(message.from_email or self.from_email).split("@")[-1])

        if message.reply_to:
            msg["Reply-To"] = message.reply_to

        if message.tracking_id:
            msg["X-FundFlow-Link-Token"] = message.tracking_id

        for key, value in message.headers.items():
            msg[key] = value

        if message.text_body:
            msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))

        try:
            loop = asyncio.get_running_loop()
            message_id = await loop.run_in_executor(None, self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP send to %s failed: %s", message.to, e)
            return SendResult(success=False, error=str(e), tracking_id=message.tracking_id)

        return SendResult(success=True, message_id=message_id, tracking_id=message.tracking_id)

    def _send_sync(self, msg: MIMEMultipart) -> str:
        """Synchronous SMTP send."""
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)
            return msg["Message-ID"]

    async def verify_connection(self) -> bool:
        """Verify SMTP connection."""
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._verify_sync)
        except (smtplib.SMTPException, OSError):
            return False

    def _verify_sync(self) -> bool:
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            return True


# Global provider instance (initialized on demand)
_email_provider: Optional[EmailProvider] = None


def get_email_provider() -> EmailProvider:
    """Get the configured email provider."""
    global _email_provider
    if _email_provider is None:
        _email_provider = SMTPEmailProvider()
    return _email_provider
