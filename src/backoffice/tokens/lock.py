"""
Per-merchant refresh lock on top of the token store.

The lock is the `is_refreshing` flag of the merchant's row. A holder that
crashed mid-refresh is detected by age: once `last_refreshed_at` is older
than the lock timeout the next caller takes the lock over.
"""

import datetime
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from backoffice.core.models import TokenRecord, utcnow
from backoffice.tokens.store import TokenStore

logger = logging.getLogger("tokens.lock")


class LockStatus(Enum):
    ACQUIRED = "acquired"
    # another caller finished a refresh while we waited; use its token
    SUPERSEDED = "superseded"
    UNAVAILABLE = "unavailable"
    MISSING = "missing"


@dataclass(frozen=True)
class LockResult:
    status: LockStatus
    record: TokenRecord | None = None

    @property
    def acquired(self) -> bool:
        return self.status is LockStatus.ACQUIRED


class LockManager:
    """
    Grants one caller at a time the right to refresh a merchant's tokens.

    Args:
        store (TokenStore): Where the lock lives.
        lock_timeout (timedelta): Age after which a held lock counts as abandoned.
        max_retries (int): Attempts before giving up on a busy lock.
        backoff (float): Seconds per attempt to wait on a live lock.
        clock: Source of naive UTC "now".
        sleep: Blocking wait, in seconds.
    """

    def __init__(
        self,
        store: TokenStore,
        lock_timeout: datetime.timedelta = datetime.timedelta(seconds=30),
        max_retries: int = 3,
        backoff: float = 1.0,
        clock: Callable[[], datetime.datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._lock_timeout = lock_timeout
        self._max_retries = max_retries
        self._backoff = backoff
        self._clock = clock
        self._sleep = sleep

    def acquire(self, merchant_id: str, stale_token: str | None = None) -> LockResult:
        """
        Take the merchant's refresh lock.

        Args:
            merchant_id (str): Merchant whose lock to take.
            stale_token (str | None): Access token the caller wants replaced. If
                the stored token no longer matches once the lock is free, a
                competing refresh already happened and SUPERSEDED is returned
                instead of taking the lock.

        Returns:
            LockResult: The outcome and the record as read when it was decided.
        """
        for attempt in range(1, self._max_retries + 1):
            record = self._store.get(merchant_id)
            if record is None:
                return LockResult(LockStatus.MISSING)

            if not record.is_refreshing:
                if stale_token is not None and record.access_token != stale_token:
                    logger.info(
                        "Token for merchant %s was refreshed by another caller", merchant_id
                    )
                    return LockResult(LockStatus.SUPERSEDED, record)

                if self._store.try_acquire_lock(merchant_id):
                    return self._claimed(merchant_id, stale_token)

                logger.info(
                    "Failed to acquire refresh lock for merchant %s, retrying (attempt %s)",
                    merchant_id,
                    attempt,
                )
                self._wait(attempt, self._backoff / 2)
                continue

            lock_age = self._clock() - record.last_refreshed_at
            if lock_age < self._lock_timeout:
                logger.info(
                    "Another process is refreshing merchant %s, waiting (attempt %s)",
                    merchant_id,
                    attempt,
                )
                self._wait(attempt, self._backoff)
                continue

            logger.warning(
                "Refresh lock for merchant %s timed out after %s, forcing refresh",
                merchant_id,
                lock_age,
            )
            if self._store.force_acquire_lock(merchant_id, record.last_refreshed_at):
                return self._claimed(merchant_id, stale_token)
            self._wait(attempt, self._backoff / 2)

        # one last look: the holder may have finished during the final wait
        record = self._store.get(merchant_id)
        if (
            record is not None
            and not record.is_refreshing
            and stale_token is not None
            and record.access_token != stale_token
        ):
            return LockResult(LockStatus.SUPERSEDED, record)

        logger.error(
            "Could not acquire refresh lock for merchant %s after %s attempts",
            merchant_id,
            self._max_retries,
        )
        return LockResult(LockStatus.UNAVAILABLE, record)

    def release(self, merchant_id: str) -> None:
        """Give the lock back without recording a refresh outcome."""
        self._store.clear_lock(merchant_id)

    def _claimed(self, merchant_id: str, stale_token: str | None) -> LockResult:
        """Confirm a lock just taken still guards the token the caller wants replaced."""
        record = self._store.get(merchant_id)
        if record is not None and stale_token is not None and record.access_token != stale_token:
            # a whole refresh finished between our read and our lock write
            self._store.clear_lock(merchant_id)
            logger.info(
                "Token for merchant %s was refreshed by another caller, lock handed back",
                merchant_id,
            )
            return LockResult(
                LockStatus.SUPERSEDED, record.model_copy(update={"is_refreshing": False})
            )

        logger.info("Refresh lock acquired for merchant %s", merchant_id)
        return LockResult(LockStatus.ACQUIRED, record)

    def _wait(self, attempt: int, step: float) -> None:
        self._sleep(attempt * step)
