"""
Refreshes a merchant's Salla tokens under the merchant's refresh lock.

A refresh token is consumed as soon as Salla receives it. Only failures
where the request never reached Salla (connection refused, connect timeout)
are retried; once a response, or possibly a lost response, is involved the
refresh ends and the failure is recorded on the row.
"""

import datetime
import logging
import time
from typing import Callable

import httpx
from sqlalchemy.exc import SQLAlchemyError

from backoffice.core.models import IssuedTokens, TokenRecord, utcnow
from backoffice.tokens.errors import FailureReason, RefreshResult
from backoffice.tokens.exchange import TokenExchangeClient
from backoffice.tokens.lock import LockManager, LockStatus
from backoffice.tokens.store import TokenStore

logger = logging.getLogger("tokens.refresh")

# the request was never delivered, so the refresh token is still unused
UNDELIVERED_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class RefreshCoordinator:
    """
    Performs the token exchange and reconciles the token store.

    Args:
        store (TokenStore): Merchant token records.
        locks (LockManager): Serializes refreshes per merchant.
        exchange (TokenExchangeClient): Talks to the Salla token endpoint.
        max_retries (int): Attempts for undelivered exchange requests.
        backoff (float): Seconds per attempt between retries.
        alert_after_attempts (int): Consecutive failures that page an operator.
    """

    def __init__(
        self,
        store: TokenStore,
        locks: LockManager,
        exchange: TokenExchangeClient,
        max_retries: int = 3,
        backoff: float = 1.0,
        alert_after_attempts: int = 3,
        clock: Callable[[], datetime.datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._locks = locks
        self._exchange = exchange
        self._max_retries = max_retries
        self._backoff = backoff
        self._alert_after_attempts = alert_after_attempts
        self._clock = clock
        self._sleep = sleep

    def refresh(self, merchant_id: str, stale_token: str | None = None) -> RefreshResult:
        """
        Refresh the merchant's tokens, or pick up a refresh another caller just made.

        Never raises: every failure comes back as a `RefreshResult` and the
        previous tokens stay in place.

        Args:
            merchant_id (str): Merchant to refresh.
            stale_token (str | None): The access token the caller found too old.
                Defaults to the token stored when the call starts.
        """
        merchant_id = str(merchant_id)
        try:
            return self._refresh(merchant_id, stale_token)
        except Exception as e:
            logger.exception("Error refreshing Salla token for merchant %s", merchant_id)
            return RefreshResult.failure(FailureReason.REFRESH_FAILED, str(e))

    def _refresh(self, merchant_id: str, stale_token: str | None) -> RefreshResult:
        current = self._store.get(merchant_id)
        if current is None:
            logger.error("No Salla auth found for merchant %s", merchant_id)
            return RefreshResult.failure(FailureReason.MISSING_TOKEN)
        stale_token = stale_token or current.access_token

        result = RefreshResult.failure(FailureReason.REFRESH_FAILED)
        for attempt in range(1, self._max_retries + 1):
            lock = self._locks.acquire(merchant_id, stale_token=stale_token)
            if lock.status is LockStatus.MISSING:
                return RefreshResult.failure(FailureReason.MISSING_TOKEN)
            if lock.status is LockStatus.SUPERSEDED and lock.record is not None:
                return RefreshResult.success(lock.record.access_token)
            if not lock.acquired or lock.record is None:
                return RefreshResult.failure(
                    FailureReason.LOCK_UNAVAILABLE, "refresh lock held by another process"
                )

            logger.info("Refresh lock acquired, calling Salla API for merchant %s", merchant_id)
            result, retryable = self._exchange_once(lock.record)
            if result.ok or not retryable:
                return result

            if attempt < self._max_retries:
                self._sleep(attempt * self._backoff)

        logger.error(
            "Giving up refreshing merchant %s after %s attempts: %s",
            merchant_id,
            self._max_retries,
            result.detail,
        )
        return result

    def _exchange_once(self, record: TokenRecord) -> tuple[RefreshResult, bool]:
        """Run one exchange while holding the lock. Returns the result and whether to retry."""
        merchant_id = record.merchant_id
        try:
            response = self._exchange.exchange(record.refresh_token)
        except UNDELIVERED_ERRORS as e:
            logger.warning("Salla token endpoint unreachable for merchant %s: %s", merchant_id, e)
            self._record_failure(merchant_id)
            return RefreshResult.failure(FailureReason.REFRESH_FAILED, str(e)), True
        except httpx.HTTPError as e:
            # the provider may have rotated the token and the answer was lost
            logger.error(
                "Salla token refresh for merchant %s ended without a response: %r", merchant_id, e
            )
            self._record_failure(merchant_id)
            return RefreshResult.failure(FailureReason.REFRESH_FAILED, repr(e)), False

        if not response.is_success:
            logger.error(
                "Salla token refresh failed for merchant %s: status=%s body=%s",
                merchant_id,
                response.status_code,
                response.text,
            )
            self._record_failure(merchant_id)
            return (
                RefreshResult.failure(
                    FailureReason.REFRESH_FAILED, f"HTTP {response.status_code}: {response.text}"
                ),
                False,
            )

        try:
            tokens = IssuedTokens.model_validate(response.json())
        except ValueError as e:
            logger.error(
                "Salla token endpoint returned an unusable body for merchant %s: %s",
                merchant_id,
                e,
            )
            self._record_failure(merchant_id)
            return RefreshResult.failure(FailureReason.INVALID_RESPONSE, str(e)), False

        try:
            updated = self._store.put(merchant_id, tokens)
        except SQLAlchemyError:
            # the old refresh token is already consumed; only re-authorization recovers
            logger.exception(
                "Failed to store refreshed Salla tokens for merchant %s "
                "(issued pair expires at %s)",
                merchant_id,
                tokens.expires_at(self._clock()),
            )
            self._record_failure(merchant_id)
            return (
                RefreshResult.failure(
                    FailureReason.REFRESH_FAILED, "refreshed tokens could not be stored"
                ),
                False,
            )

        logger.info(
            "Salla token refreshed for merchant %s, expires at %s",
            merchant_id,
            updated.expires_at if updated else tokens.expires_at(self._clock()),
        )
        return RefreshResult.success(tokens.access_token), False

    def _record_failure(self, merchant_id: str) -> None:
        try:
            record = self._store.release_lock(merchant_id, success=False)
        except SQLAlchemyError:
            logger.exception("Failed to release refresh lock for merchant %s", merchant_id)
            return

        if record is not None and record.refresh_attempts >= self._alert_after_attempts:
            logger.critical(
                "Salla token refresh for merchant %s has failed %s times in a row; "
                "the refresh token is probably revoked and the merchant must re-authorize",
                merchant_id,
                record.refresh_attempts,
            )
