"""Wiring of the token lifecycle components."""

import datetime
import time
from dataclasses import dataclass
from typing import Callable

import httpx
from sqlalchemy.orm import Session, sessionmaker

from backoffice.core.models import utcnow
from backoffice.core.settings import SallaSettings
from backoffice.tokens.exchange import TokenExchangeClient
from backoffice.tokens.lock import LockManager
from backoffice.tokens.provider import AccessTokenProvider
from backoffice.tokens.refresh import RefreshCoordinator
from backoffice.tokens.store import TokenStore
from backoffice.tokens.sweeper import ExpirySweeper


@dataclass(frozen=True)
class TokenServices:
    store: TokenStore
    locks: LockManager
    coordinator: RefreshCoordinator
    provider: AccessTokenProvider
    sweeper: ExpirySweeper
    clock: Callable[[], datetime.datetime] = utcnow


def build_token_services(
    session_factory: sessionmaker[Session],
    settings: SallaSettings,
    http_client: httpx.Client | None = None,
    clock: Callable[[], datetime.datetime] = utcnow,
    sleep: Callable[[float], None] = time.sleep,
) -> TokenServices:
    """
    Build the token store, lock manager, coordinator, provider and sweeper.

    Args:
        session_factory (sessionmaker): Sessions on the database holding `salla_auth`.
        settings (SallaSettings): Credentials, timeouts and lifecycle durations.
        http_client (httpx.Client | None): Client for the token endpoint.
        clock: Source of naive UTC "now".
        sleep: Blocking wait used between retries.

    Returns:
        TokenServices: The wired components, sharing one store.
    """
    store = TokenStore(session_factory, clock=clock)
    locks = LockManager(
        store,
        lock_timeout=settings.lock_timeout,
        max_retries=settings.max_retries,
        backoff=settings.retry_backoff,
        clock=clock,
        sleep=sleep,
    )
    coordinator = RefreshCoordinator(
        store,
        locks,
        TokenExchangeClient(settings, http_client),
        max_retries=settings.max_retries,
        backoff=settings.retry_backoff,
        alert_after_attempts=settings.alert_after_attempts,
        clock=clock,
        sleep=sleep,
    )
    provider = AccessTokenProvider(
        store, coordinator, refresh_window=settings.refresh_window, clock=clock
    )
    sweeper = ExpirySweeper(
        store,
        coordinator,
        refresh_window=settings.refresh_window,
        forced_refresh_interval=settings.forced_refresh_interval,
        clock=clock,
    )
    return TokenServices(store, locks, coordinator, provider, sweeper, clock)
