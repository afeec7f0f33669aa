import asyncio
import json
from datetime import datetime, timezone

import pytest

from regdesk_api.services.notifications import InMemoryEmailBackend
from regdesk_api.services.orders import OrderCache
from regdesk_api.services.reports import (
    DeliveryRetrier,
    ReportSchedulerConfigurationError,
    RunHeartbeat,
    build_scheduled_report_service,
)
from regdesk_api.workers import ReportSchedulerWorker

NOW = datetime(2025, 3, 10, tzinfo=timezone.utc)


async def _no_sleep(_: float) -> None:
    return None


class BrokenStore:
    async def set(self, key, value, *, ttl_seconds=None) -> None:
        raise ConnectionError("kv unavailable")


@pytest.mark.asyncio
async def test_failed_run_is_recorded_in_heartbeat_and_reraised(kv_store) -> None:
    service = build_scheduled_report_service(kv_store, email_backend=None)

    with pytest.raises(ReportSchedulerConfigurationError):
        await service.run(now=NOW)

    heartbeat = json.loads(kv_store.values["cron:reports:last-run"])
    assert heartbeat["ok"] is False
    assert heartbeat["reason"] == "exception"
    assert "sender" in heartbeat["message"]


@pytest.mark.asyncio
async def test_heartbeat_write_failure_does_not_raise() -> None:
    heartbeat = RunHeartbeat(BrokenStore(), key="cron:reports:last-run")

    await heartbeat.record(ok=True, now=NOW, sent=1)


@pytest.mark.asyncio
async def test_heartbeat_latest_round_trip(kv_store) -> None:
    heartbeat = RunHeartbeat(kv_store)
    assert await heartbeat.latest() is None

    await heartbeat.record(ok=True, now=NOW, sent=2, skipped=1, errors=0)

    assert await heartbeat.latest() == {"ok": True, "ts": "2025-03-10T00:00:00.000Z", "sent": 2, "skipped": 1, "errors": 0}


@pytest.mark.asyncio
async def test_worker_runs_a_pass_and_stops(kv_store, seed_catalog) -> None:
    seed_catalog(
        banquets=[{"id": "gala", "name": "Gala Dinner"}],
        configs={"gala": {"chairEmails": "chair@example.org"}},
    )
    backend = InMemoryEmailBackend()
    service = build_scheduled_report_service(
        kv_store,
        email_backend=backend,
        retrier=DeliveryRetrier((0.0,), sleep=_no_sleep),
    )
    worker = ReportSchedulerWorker(service, interval_seconds=3600)

    worker.start()
    assert worker.is_running
    for _ in range(50):
        if "cron:reports:last-run" in kv_store.values:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert worker.is_running is False
    assert len(backend.sent_messages) == 1
    assert json.loads(kv_store.values["cron:reports:last-run"])["sent"] == 1


@pytest.mark.asyncio
async def test_each_run_counts_orders_written_by_other_processes(kv_store, seed_catalog) -> None:
    seed_catalog(
        banquets=[{"id": "gala", "name": "Gala Dinner", "reportFrequency": "daily"}],
        configs={"gala": {"chairEmails": "chair@example.org"}},
    )
    order_cache = OrderCache()
    service = build_scheduled_report_service(
        kv_store,
        email_backend=InMemoryEmailBackend(),
        order_cache=order_cache,
        retrier=DeliveryRetrier((0.0,), sleep=_no_sleep),
    )

    first = await service.run(now=datetime(2025, 3, 10, tzinfo=timezone.utc))
    assert first.items_log[0].count == 0
    assert order_cache.is_warm

    # Checkout writes orders directly to the store, bypassing this process's repository.
    created_ms = int(datetime(2025, 3, 10, 12, tzinfo=timezone.utc).timestamp() * 1000)
    kv_store.values["order:o1"] = json.dumps({"id": "o1", "created": created_ms, "lines": [{"itemId": "gala"}]})
    kv_store.sets.setdefault("orders:index", set()).add("o1")

    second = await service.run(now=datetime(2025, 3, 11, tzinfo=timezone.utc))

    entry = second.items_log[0]
    assert entry.window_start_utc == "2025-03-10T00:00:00.000Z"
    assert entry.window_end_utc == "2025-03-11T00:00:00.000Z"
    assert entry.count == 1
