"""Email backends used for chair report delivery."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional, Protocol, Sequence


class EmailBackend(Protocol):
    """Minimal protocol for sending report emails."""

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        bcc: Sequence[str] | None = None,
        reply_to: str | None = None,
    ) -> None:
        ...


class SMTPEmailBackend:
    """SMTP-powered backend; the blocking client runs in a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender_email: str,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender_email = sender_email

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        bcc: Sequence[str] | None = None,
        reply_to: str | None = None,
    ) -> None:
        message = _build_message(recipients, subject, body_text, reply_to=reply_to)
        message["From"] = self._sender_email
        envelope = [*recipients, *(bcc or [])]
        await asyncio.to_thread(self._send, message, envelope)

    def _send(self, message: EmailMessage, envelope: list[str]) -> None:
        smtp = smtplib.SMTP(self._host, self._port, timeout=10)
        try:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message, to_addrs=envelope)
        finally:
            smtp.quit()


@dataclass
class InMemoryEmailBackend:
    """Test backend storing outbound messages and their BCC lists in memory."""

    sent_messages: List[EmailMessage]
    sent_bcc: List[list[str]]

    def __init__(self) -> None:
        self.sent_messages = []
        self.sent_bcc = []

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        bcc: Sequence[str] | None = None,
        reply_to: str | None = None,
    ) -> None:
        self.sent_messages.append(_build_message(recipients, subject, body_text, reply_to=reply_to))
        self.sent_bcc.append(list(bcc or []))


def _build_message(
    recipients: Sequence[str],
    subject: str,
    body_text: str,
    *,
    reply_to: str | None,
) -> EmailMessage:
    message = EmailMessage()
    message["To"] = ", ".join(recipients)
    message["Subject"] = subject
    if reply_to:
        message["Reply-To"] = reply_to
    message.set_content(body_text)
    return message
