import smtplib
from datetime import datetime, timezone

import pytest

from regdesk_api.services.notifications import InMemoryEmailBackend
from regdesk_api.services.orders import OrderRepository
from regdesk_api.services.reports import ChairReportSender, KeyValueReportCatalog, ReportDeliveryRequest
from regdesk_api.services.reports.sender import count_item_lines_in_window

FEB_1 = int(datetime(2025, 2, 1, tzinfo=timezone.utc).timestamp() * 1000)
MAR_1 = int(datetime(2025, 3, 1, tzinfo=timezone.utc).timestamp() * 1000)


class RaisingBackend:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def send_email(self, recipients, subject, body_text, *, bcc=None, reply_to=None) -> None:
        raise self.error


def _request() -> ReportDeliveryRequest:
    return ReportDeliveryRequest(
        kind="banquet",
        item_id="gala",
        label="Gala Dinner",
        start_ms=FEB_1,
        end_ms=MAR_1,
        window_label="Monthly (previous calendar month)",
    )


async def _seed(kv_store) -> None:
    kv_store.hashes["itemcfg:gala"] = {"chairEmails": "chair@example.org, office@example.org"}
    repository = OrderRepository(kv_store)
    await repository.create(
        {"id": "ord_in", "created": FEB_1 + 1000, "lines": [{"itemId": "gala"}, {"itemId": "GALA"}, {"itemId": "pin"}]}
    )
    await repository.create({"id": "ord_edge", "created": MAR_1, "lines": [{"itemId": "gala"}]})
    await repository.create({"id": "ord_deleted", "created": FEB_1, "deleted": True, "lines": [{"itemId": "gala"}]})


def _sender(kv_store, backend, **kwargs) -> ChairReportSender:
    return ChairReportSender(
        catalog=KeyValueReportCatalog(kv_store),
        orders=OrderRepository(kv_store),
        email_backend=backend,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_sender_emails_chairs_with_window_count(kv_store) -> None:
    await _seed(kv_store)
    backend = InMemoryEmailBackend()

    result = await _sender(kv_store, backend, bcc=["office@example.org", "audit@example.org"]).send(_request())

    assert result.ok is True
    assert result.count == 2
    assert result.to == ["chair@example.org", "office@example.org"]
    assert result.bcc == ["audit@example.org"]
    message = backend.sent_messages[0]
    assert message["To"] == "chair@example.org, office@example.org"
    assert "Gala Dinner" in message["Subject"]
    assert "Registrations in window: 2" in message.get_content()
    assert backend.sent_bcc == [["audit@example.org"]]


@pytest.mark.asyncio
async def test_sender_without_chairs_is_a_permanent_failure(kv_store) -> None:
    backend = InMemoryEmailBackend()

    result = await _sender(kv_store, backend).send(_request())

    assert result.ok is False
    assert result.error == "no-chair-emails"
    assert result.retryable is False
    assert backend.sent_messages == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "retryable"),
    [
        (smtplib.SMTPRecipientsRefused({"chair@example.org": (550, b"unknown user")}), False),
        (ConnectionRefusedError("connection refused"), True),
        (smtplib.SMTPServerDisconnected("lost"), True),
    ],
)
async def test_sender_classifies_smtp_failures(kv_store, error: Exception, retryable: bool) -> None:
    kv_store.hashes["itemcfg:gala"] = {"chairEmails": "chair@example.org"}

    result = await _sender(kv_store, RaisingBackend(error)).send(_request())

    assert result.ok is False
    assert result.retryable is retryable
    assert result.to == ["chair@example.org"]


def test_count_item_lines_uses_half_open_window() -> None:
    orders = [
        {"created": FEB_1, "lines": [{"itemId": "gala"}]},
        {"created": MAR_1 - 1, "lines": [{"item_id": "gala"}, "junk"]},
        {"created": MAR_1, "lines": [{"itemId": "gala"}]},
        {"created": "yesterday", "lines": [{"itemId": "gala"}]},
    ]

    assert count_item_lines_in_window(orders, "gala", FEB_1, MAR_1) == 2
