"""Shared fixtures for the token lifecycle tests."""

import datetime
import json
import os
import threading
import time
from typing import Callable, Iterator

os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from sqlalchemy import create_engine, update
from sqlalchemy.orm import Session, sessionmaker

from backoffice.core.database import Base
from backoffice.core.models import SallaAuth
from backoffice.core.settings import SallaSettings
from backoffice.tokens.services import TokenServices, build_token_services

T0 = datetime.datetime(2025, 3, 1, 12, 0, 0)
FOURTEEN_DAYS = 14 * 24 * 60 * 60


class FakeClock:
    """Controllable naive UTC clock."""

    def __init__(self, now: datetime.datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


class FakeTokenEndpoint:
    """
    Stand-in for the Salla token endpoint, mounted with `httpx.MockTransport`.

    Every call is counted. Each request gets a new token pair unless
    `responses` holds a queued response or exception for it.
    """

    def __init__(self, delay: float = 0.0, expires_in: int = FOURTEEN_DAYS) -> None:
        self.delay = delay
        self.expires_in = expires_in
        self.responses: list[httpx.Response | Exception] = []
        self.requests: list[dict] = []
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            body = json.loads(request.content)
            self.requests.append(body)
            n = len(self.requests)
            queued = self.responses.pop(0) if self.responses else None
        if self.delay:
            time.sleep(self.delay)
        if isinstance(queued, Exception):
            raise queued
        if queued is not None:
            return queued
        return httpx.Response(
            200,
            json={
                "access_token": f"access-{n}",
                "refresh_token": f"refresh-{n}",
                "expires_in": self.expires_in,
                "token_type": "bearer",
                "scope": "orders.read_write offline_access",
            },
        )


@pytest.fixture
def session_factory(tmp_path) -> Iterator[sessionmaker[Session]]:
    """Sessions on a file SQLite database so threads share real rows."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tokens.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def salla_settings() -> SallaSettings:
    return SallaSettings(
        client_id="test_client_id",
        client_secret="test_client_secret",
        oauth_url="https://accounts.example.test/oauth2/token",
        api_base_url="https://api.example.test/admin/v2",
        webhook_secret="",
        max_retries=3,
        retry_backoff=1.0,
        alert_after_attempts=3,
    )


@pytest.fixture
def endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def make_services(
    session_factory: sessionmaker[Session],
    salla_settings: SallaSettings,
    clock: FakeClock,
    sleeps: list[float],
) -> Callable[..., TokenServices]:
    """Build token services against the test database and a fake token endpoint."""

    def _make(
        endpoint: FakeTokenEndpoint,
        settings: SallaSettings | None = None,
        real_time: bool = False,
    ) -> TokenServices:
        http_client = httpx.Client(transport=httpx.MockTransport(endpoint))
        if real_time:
            return build_token_services(
                session_factory, settings or salla_settings, http_client=http_client
            )
        return build_token_services(
            session_factory,
            settings or salla_settings,
            http_client=http_client,
            clock=clock,
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def services(make_services, endpoint: FakeTokenEndpoint) -> TokenServices:
    return make_services(endpoint)


@pytest.fixture
def set_row(session_factory: sessionmaker[Session]) -> Callable[..., None]:
    """Force columns of a stored record, bypassing the store."""

    def _set(merchant_id: str, **values) -> None:
        with session_factory() as db:
            db.execute(
                update(SallaAuth).where(SallaAuth.merchant_id == merchant_id).values(**values)
            )
            db.commit()

    return _set
