"""
Outbound mail transport.

The dispatch pipeline talks to an ``EmailProvider``: ``verify_connection``
is the pre-flight probe and ``send_email`` delivers one envelope. The SMTP
implementation wraps blocking ``smtplib`` calls in the default executor.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import socket
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

from tracker.core.config import settings
from tracker.core.exceptions import ConnectivityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportConfig:
    """Immutable snapshot of the SMTP configuration for one dispatch call."""
    host: str
    port: int
    username: str
    password: str
    secure: bool = False
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    connect_timeout: float = 5.0
    send_timeout: float = 30.0

    @property
    def sender(self) -> str:
        return self.from_email or self.username

    @classmethod
    def from_settings(cls) -> "TransportConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            secure=settings.smtp_secure,
            from_email=settings.mail_from_email or None,
            from_name=settings.mail_from_name or None,
            connect_timeout=settings.smtp_connect_timeout,
            send_timeout=settings.smtp_send_timeout,
        )


@dataclass
class EmailMessage:
    """Email envelope structure."""
    to: str
    subject: str
    html_body: str
    to_name: Optional[str] = None
    text_body: Optional[str] = None
    headers: Optional[dict[str, str]] = None


@dataclass
class SendResult:
    """Result of sending an email."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def classify_connection_error(exc: BaseException) -> str:
    """Map a transport exception to a ConnectivityError kind."""
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return ConnectivityError.CREDENTIALS
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, socket.timeout)):
        return ConnectivityError.TIMEOUT
    message = str(exc)
    if "Invalid login" in message or "BadCredentials" in message:
        return ConnectivityError.CREDENTIALS
    if "ETIMEDOUT" in message or "timed out" in message:
        return ConnectivityError.TIMEOUT
    return ConnectivityError.UNREACHABLE


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send an email message."""
        ...

    @abstractmethod
    async def verify_connection(self) -> None:
        """Verify the provider; raise ConnectivityError on failure."""
        ...


class SMTPProvider(EmailProvider):
    """
    Send emails over SMTP using a fixed configuration snapshot.

    ``secure`` selects implicit TLS (SMTP_SSL); otherwise STARTTLS is
    attempted when the server advertises it.
    """

    def __init__(self, config: TransportConfig):
        self.config = config

    def _connect(self, timeout: float) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.config.secure:
            server = smtplib.SMTP_SSL(
                self.config.host, self.config.port, context=context, timeout=timeout
            )
        else:
            server = smtplib.SMTP(self.config.host, self.config.port, timeout=timeout)
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
        if self.config.username and self.config.password:
            server.login(self.config.username, self.config.password)
        return server

    def _build_message(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = formataddr((self.config.from_name or "", self.config.sender))
        msg["To"] = formataddr((message.to_name or "", message.to))
        msg["Message-ID"] = make_msgid()

        if message.headers:
            for key, value in message.headers.items():
                msg[key] = value

        if message.text_body:
            msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg

    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send an email via SMTP."""
        msg = self._build_message(message)
        try:
            loop = asyncio.get_running_loop()
            message_id = await loop.run_in_executor(None, self._send_sync, msg, message.to)
        except (smtplib.SMTPException, OSError) as e:
            return SendResult(success=False, error=str(e))
        return SendResult(success=True, message_id=message_id)

    def _send_sync(self, msg: MIMEMultipart, to_addr: str) -> str:
        """Synchronous SMTP send."""
        server = self._connect(timeout=self.config.send_timeout)
        try:
            server.send_message(msg, from_addr=self.config.sender, to_addrs=[to_addr])
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()
        return msg["Message-ID"]

    async def verify_connection(self) -> None:
        """Verify SMTP connectivity and credentials."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._verify_sync)
        except (smtplib.SMTPException, OSError) as e:
            raise ConnectivityError(
                classify_connection_error(e),
                str(e) or type(e).__name__,
                host=self.config.host,
                port=self.config.port,
            ) from e

    def _verify_sync(self) -> None:
        """Synchronous connection verification."""
        server = self._connect(timeout=self.config.connect_timeout)
        server.quit()


def get_email_provider(config: TransportConfig) -> EmailProvider:
    """Build a provider bound to the given configuration snapshot."""
    return SMTPProvider(config)
