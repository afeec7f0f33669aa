import json
import sys
from pathlib import Path


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from regdesk_api.core.kv import InMemoryKeyValueStore  # noqa: E402
from regdesk_api.observability.reports import get_report_scheduler_store  # noqa: E402
from regdesk_api.services.notifications import InMemoryEmailBackend  # noqa: E402
from regdesk_api.services.orders import OrderAdminPatchService, OrderCache, OrderRepository  # noqa: E402
from regdesk_api.services.reports import DeliveryRetrier, build_scheduled_report_service  # noqa: E402


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture(autouse=True)
def reset_report_observability():
    store = get_report_scheduler_store()
    store.reset()
    yield
    store.reset()


@pytest.fixture
def seed_catalog(kv_store):
    """Write catalog lists and ``itemcfg:<id>`` hashes into the in-memory store."""

    def _seed(*, banquets=None, addons=None, products=None, configs=None) -> None:
        for key, entries in (("banquets", banquets), ("addons", addons), ("products", products)):
            if entries is not None:
                kv_store.values[key] = json.dumps(entries)
        for item_id, config in (configs or {}).items():
            kv_store.hashes[f"itemcfg:{item_id}"] = dict(config)

    return _seed


@pytest_asyncio.fixture
async def app_with_store(kv_store, monkeypatch):
    from regdesk_api.app import create_app
    from regdesk_api.core.settings import settings

    monkeypatch.setattr(settings, "admin_api_key", "admin-key")
    monkeypatch.setattr(settings, "report_token", "cron-token")

    app = create_app()
    email_backend = InMemoryEmailBackend()
    order_cache = OrderCache()
    order_repository = OrderRepository(kv_store, cache=order_cache)

    app.state.kv_store = kv_store
    app.state.order_cache = order_cache
    app.state.order_repository = order_repository
    app.state.order_patch_service = OrderAdminPatchService(kv_store, order_repository)
    app.state.report_service = build_scheduled_report_service(
        kv_store,
        email_backend=email_backend,
        order_cache=order_cache,
        retrier=DeliveryRetrier((0.0, 0.0, 0.0), sleep=_no_sleep),
    )

    yield app, email_backend
