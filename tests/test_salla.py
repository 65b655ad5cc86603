"""Tests for the Salla API client and the Salla plugin endpoints."""

import datetime
import hashlib
import hmac
import json

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backoffice.core.dependencies import get_app_settings
from backoffice.core.settings import AppSettings
from backoffice.plugins.salla import authorize_payload_tokens, create_salla_router
from backoffice.plugins.salla_api import SallaClient

CRON_SECRET = "cron-secret"


def _authorize_event(merchant=1696031053, **data) -> dict:
    payload = {
        "event": "app.store.authorize",
        "merchant": merchant,
        "data": {
            "access_token": "at-install",
            "refresh_token": "rt-install",
            "expires": 1209600,
            "scope": "orders.read_write offline_access",
        },
    }
    payload["data"].update(data)
    return payload


@pytest.fixture
def api_calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def salla_client(services, salla_settings, api_calls) -> SallaClient:
    def handler(request: httpx.Request) -> httpx.Response:
        api_calls.append(request)
        if request.url.path.endswith("/broken"):
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"data": [{"id": 1}]})

    return SallaClient(
        services.provider,
        salla_settings,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_client_attaches_bearer_token(services, salla_client, api_calls) -> None:
    services.store.save_authorization("M1", "at", "rt", 10 * 24 * 3600)

    body = salla_client.get("M1", "/orders", params={"page": 2})

    assert body == {"data": [{"id": 1}]}
    request = api_calls[0]
    assert str(request.url) == "https://api.example.test/admin/v2/orders?page=2"
    assert request.headers["Authorization"] == "Bearer at"


def test_client_skips_call_without_token(salla_client, api_calls, caplog) -> None:
    assert salla_client.get("nobody", "orders") is None
    assert api_calls == []
    assert "missing_token" in caplog.text


def test_client_returns_none_on_api_error(services, salla_client) -> None:
    services.store.save_authorization("M1", "at", "rt", 10 * 24 * 3600)

    assert salla_client.post("M1", "/broken", json={}) is None


def test_authorize_payload_accepts_unix_timestamp_expiry(clock) -> None:
    issued = clock.now.replace(tzinfo=datetime.UTC).timestamp()
    fields = authorize_payload_tokens(_authorize_event(expires=int(issued) + 3600), clock.now)

    assert fields["expires_in"] == 3600


def test_authorize_payload_requires_fields(clock) -> None:
    assert authorize_payload_tokens(_authorize_event(refresh_token=""), clock.now) is None
    assert authorize_payload_tokens(_authorize_event(merchant=None), clock.now) is None
    assert authorize_payload_tokens(_authorize_event(expires="soon"), clock.now) is None
    expired = int(clock.now.replace(tzinfo=datetime.UTC).timestamp()) - 60
    assert authorize_payload_tokens(_authorize_event(expires=expired), clock.now) is None


@pytest.fixture
def make_app(services, salla_settings):
    def _make(cron_secret: str = CRON_SECRET, webhook_secret: str = "") -> TestClient:
        settings = salla_settings.model_copy(update={"webhook_secret": webhook_secret})
        app = FastAPI()
        app.include_router(create_salla_router(services, settings), prefix="/salla")
        app.dependency_overrides[get_app_settings] = lambda: AppSettings(cron_secret=cron_secret)
        return TestClient(app)

    return _make


def test_webhook_stores_authorized_tokens(make_app, services, clock) -> None:
    response = make_app().post("/salla/webhook", json=_authorize_event())

    assert response.status_code == 200
    assert response.json()["merchant_id"] == "1696031053"
    record = services.store.get("1696031053")
    assert record.access_token == "at-install"
    assert record.refresh_token == "rt-install"
    assert record.expires_at == clock.now + datetime.timedelta(days=14)


def test_webhook_timestamp_expiry_uses_service_clock(make_app, services, clock) -> None:
    expires = int(clock.now.replace(tzinfo=datetime.UTC).timestamp()) + 14 * 24 * 3600

    response = make_app().post("/salla/webhook", json=_authorize_event(expires=expires))

    assert response.status_code == 200
    assert services.store.get("1696031053").expires_at == clock.now + datetime.timedelta(days=14)


def test_webhook_rejects_incomplete_authorize(make_app, services) -> None:
    response = make_app().post("/salla/webhook", json=_authorize_event(access_token=""))

    assert response.status_code == 400
    assert response.json()["detail"] == "missing_required_fields"
    assert services.store.all() == []


def test_webhook_ignores_other_events(make_app) -> None:
    response = make_app().post("/salla/webhook", json={"event": "order.created", "data": {}})

    assert response.json() == {"success": True, "ignored": "order.created"}


def test_webhook_signature_is_checked_when_configured(make_app, services) -> None:
    client = make_app(webhook_secret="hook-secret")
    raw = json.dumps(_authorize_event()).encode()
    signature = hmac.new(b"hook-secret", raw, hashlib.sha256).hexdigest()

    bad = client.post("/salla/webhook", content=raw, headers={"X-Salla-Signature": "nope"})
    good = client.post("/salla/webhook", content=raw, headers={"X-Salla-Signature": signature})

    assert bad.status_code == 401
    assert good.status_code == 200


def test_refresh_endpoint_requires_cron_secret(make_app, endpoint) -> None:
    client = make_app()

    assert client.get("/salla/refresh-tokens").status_code == 401
    response = client.get(
        "/salla/refresh-tokens", headers={"Authorization": "Bearer wrong-secret"}
    )
    assert response.status_code == 401
    assert endpoint.calls == 0


def test_refresh_endpoint_runs_sweep(make_app, services, endpoint) -> None:
    services.store.save_authorization("M1", "at", "rt", 60)
    headers = {"Authorization": f"Bearer {CRON_SECRET}"}

    response = make_app().post("/salla/refresh-tokens", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["refreshed"] == 1
    assert body["failed"] == 0
    assert endpoint.calls == 1


def test_refresh_endpoint_open_without_configured_secret(make_app) -> None:
    assert make_app(cron_secret="").get("/salla/refresh-tokens").status_code == 200


def test_status_endpoint_hides_token_material(make_app, services) -> None:
    services.store.save_authorization("M1", "secret-at", "secret-rt", 60)

    response = make_app().get(
        "/salla/tokens/status", headers={"Authorization": f"Bearer {CRON_SECRET}"}
    )

    assert response.status_code == 200
    [status] = response.json()
    assert status["merchant_id"] == "M1"
    assert status["needs_refresh"] is True
    assert status["reasons"] == ["expiry-window"]
    assert "secret-at" not in response.text
    assert "secret-rt" not in response.text
