import pytest
from httpx import ASGITransport, AsyncClient


@pytest.mark.asyncio
async def test_readyz_reports_component_statuses(app_with_store) -> None:
    app, _ = app_with_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        health = await client.get("/api/v1/healthz")
        response = await client.get("/api/v1/readyz")

    assert health.json() == {"status": "ok"}
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    components = payload["components"]
    assert components["kv_store"]["status"] == "ready"
    assert components["report_delivery"]["status"] == "ready"
    assert components["report_scheduler"]["status"] == "disabled"


@pytest.mark.asyncio
async def test_readyz_degrades_without_email_backend(app_with_store, kv_store) -> None:
    from regdesk_api.services.reports import build_scheduled_report_service

    app, _ = app_with_store
    app.state.report_service = build_scheduled_report_service(kv_store, email_backend=None)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["components"]["report_delivery"]["status"] == "degraded"
