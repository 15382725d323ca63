"""
mailer.py — Outbound mail gateways.

Delivery mechanism (MAIL_PROVIDER):
    • simulation — log the message and keep it in an outbox (dev / tests)
    • smtp       — one SMTP transaction per message, STARTTLS + login when
                   credentials are configured

A gateway sends exactly the message it is given: one message, every
recipient in its To header. Failures raise MailDeliveryError and are not
retried here.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import List, Optional, Protocol

from brocast.app.broadcasts.models import OutboundMessage
from brocast.app.core.config import settings
from brocast.app.core.errors import MailDeliveryError

logger = logging.getLogger(__name__)


class MailGateway(Protocol):
    async def send(self, message: OutboundMessage) -> None: ...


def build_mime_message(message: OutboundMessage) -> EmailMessage:
    mime = EmailMessage()
    mime["From"] = message.sender
    mime["To"] = ", ".join(message.to)
    mime["Subject"] = message.subject
    mime["Date"] = formatdate(localtime=False)
    mime["Message-ID"] = make_msgid(domain="brocast")
    mime.set_content(message.body)
    return mime


class SimulatedMailGateway:
    """Logs each message and records it in ``outbox``."""

    def __init__(self) -> None:
        self.outbox: List[OutboundMessage] = []

    async def send(self, message: OutboundMessage) -> None:
        if not message.to:
            raise MailDeliveryError("message has no recipients")
        self.outbox.append(message)
        logger.info(
            "[EMAIL] %s → %s: Subject='%s'",
            message.sender, ", ".join(message.to), message.subject,
            extra={"recipient_count": len(message.to)},
        )


class SmtpMailGateway:
    """Sends through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout_seconds: float = 20.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds

    def _send_blocking(self, mime: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(mime)

    async def send(self, message: OutboundMessage) -> None:
        if not message.to:
            raise MailDeliveryError("message has no recipients")
        mime = build_mime_message(message)
        try:
            await asyncio.to_thread(self._send_blocking, mime)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"SMTP delivery via {self.host} failed: {exc}") from exc
        logger.info(
            "[EMAIL/SMTP] %s → %d recipient(s) via %s",
            message.subject, len(message.to), self.host,
            extra={"recipient_count": len(message.to)},
        )


_gateway: Optional[MailGateway] = None


def create_mail_gateway(provider: str) -> MailGateway:
    if provider == "simulation":
        return SimulatedMailGateway()
    if provider == "smtp":
        if not settings.SMTP_HOST:
            raise ValueError("MAIL_PROVIDER=smtp requires SMTP_HOST")
        return SmtpMailGateway(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            timeout_seconds=settings.SMTP_TIMEOUT,
        )
    raise ValueError(f"Unknown mail provider: {provider}")


def get_mail_gateway() -> MailGateway:
    """FastAPI dependency: the configured mail gateway."""
    global _gateway
    if _gateway is None:
        _gateway = create_mail_gateway(settings.MAIL_PROVIDER)
        logger.info("Mail gateway: %s", type(_gateway).__name__)
    return _gateway
