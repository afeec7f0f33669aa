"""Report delivery collaborators."""

from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, Sequence

from loguru import logger

from regdesk_api.core.clock import from_epoch_ms, isoformat_utc
from regdesk_api.services.notifications.backend import EmailBackend
from regdesk_api.services.orders.repository import OrderRepository

from .catalog import ReportCatalog


@dataclass(slots=True, frozen=True)
class ReportDeliveryRequest:
    kind: str
    item_id: str
    label: str
    start_ms: int
    end_ms: int
    window_label: str = ""
    scope: str = "window"


@dataclass(slots=True)
class SendResult:
    ok: bool
    count: int = 0
    to: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    error: str | None = None
    retryable: bool = True


class ReportSender(Protocol):
    async def send(self, request: ReportDeliveryRequest) -> SendResult:
        ...


_PERMANENT_SMTP_ERRORS = (
    smtplib.SMTPRecipientsRefused,
    smtplib.SMTPSenderRefused,
    smtplib.SMTPNotSupportedError,
    smtplib.SMTPAuthenticationError,
)


class ChairReportSender:
    """Emails an item's chairs a summary of order lines inside the window."""

    def __init__(
        self,
        *,
        catalog: ReportCatalog,
        orders: OrderRepository,
        email_backend: EmailBackend,
        bcc: Sequence[str] = (),
        reply_to: str | None = None,
    ) -> None:
        self._catalog = catalog
        self._orders = orders
        self._email_backend = email_backend
        self._bcc = [address for address in bcc if address]
        self._reply_to = reply_to

    async def send(self, request: ReportDeliveryRequest) -> SendResult:
        config = await self._catalog.load_config(request.item_id)
        to = list(dict.fromkeys(config.chair_emails))
        bcc = [address for address in self._bcc if address not in to]
        if not to:
            return SendResult(ok=False, bcc=bcc, error="no-chair-emails", retryable=False)

        orders = await self._orders.list_all()
        count = count_item_lines_in_window(orders, request.item_id, request.start_ms, request.end_ms)
        subject = f"{request.label} report ({request.window_label or request.scope})"
        body = "\n".join(
            [
                f"Item: {request.label} ({request.kind}:{request.item_id})",
                f"Window: {isoformat_utc(from_epoch_ms(request.start_ms))} to {isoformat_utc(from_epoch_ms(request.end_ms))}",
                f"Registrations in window: {count}",
            ]
        )

        try:
            await self._email_backend.send_email(to, subject, body, bcc=bcc, reply_to=self._reply_to)
        except _PERMANENT_SMTP_ERRORS as exc:
            logger.warning("Chair report rejected by mail server", item_id=request.item_id, error=str(exc))
            return SendResult(ok=False, count=count, to=to, bcc=bcc, error=str(exc), retryable=False)
        except (smtplib.SMTPException, OSError) as exc:
            return SendResult(ok=False, count=count, to=to, bcc=bcc, error=str(exc) or type(exc).__name__)

        return SendResult(ok=True, count=count, to=to, bcc=bcc)


def count_item_lines_in_window(
    orders: Iterable[Mapping[str, Any]],
    item_id: str,
    start_ms: int,
    end_ms: int,
) -> int:
    target = item_id.strip().lower()
    count = 0
    for order in orders:
        if order.get("deleted") is True:
            continue
        created = order.get("created")
        if not isinstance(created, (int, float)) or not start_ms <= created < end_ms:
            continue
        for line in order.get("lines") or []:
            if not isinstance(line, Mapping):
                continue
            line_item = str(line.get("itemId") or line.get("item_id") or "").strip().lower()
            if line_item == target:
                count += 1
    return count


__all__ = [
    "ChairReportSender",
    "ReportDeliveryRequest",
    "ReportSender",
    "SendResult",
    "count_item_lines_in_window",
]
