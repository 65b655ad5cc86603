"""
Durable storage of one Salla token record per merchant.

Every method opens its own session and commits before returning, so the
store is safe to share between threads and the database row stays the only
shared state between processes. Lock transitions are single conditional
UPDATE statements; the database decides which concurrent caller wins.
"""

import datetime
import logging
from typing import Callable

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from backoffice.core.models import IssuedTokens, SallaAuth, TokenRecord, utcnow

logger = logging.getLogger("tokens.store")


class TokenStore:
    """Point reads, full writes and conditional lock writes on `salla_auth`."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def get(self, merchant_id: str) -> TokenRecord | None:
        """Return the merchant's record, or None if the app was never authorized."""
        with self._session_factory() as db:
            auth = db.get(SallaAuth, str(merchant_id))
            return TokenRecord.model_validate(auth) if auth else None

    def all(self) -> list[TokenRecord]:
        with self._session_factory() as db:
            rows = db.scalars(select(SallaAuth).order_by(SallaAuth.merchant_id)).all()
            return [TokenRecord.model_validate(row) for row in rows]

    def save_authorization(
        self,
        merchant_id: str,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        scope: str | None = None,
    ) -> TokenRecord:
        """
        Create or replace a merchant's tokens as delivered at app install time.

        Args:
            merchant_id (str): Salla merchant id.
            access_token (str): Access token from the authorize event.
            refresh_token (str): Refresh token from the authorize event.
            expires_in (int): Token lifetime in seconds.
            scope (str | None): Granted scopes.

        Returns:
            TokenRecord: The stored record, unlocked and with a clean attempt counter.
        """
        now = self._clock()
        merchant_id = str(merchant_id)
        with self._session_factory() as db:
            auth = db.get(SallaAuth, merchant_id)
            if auth is None:
                auth = SallaAuth(merchant_id=merchant_id)
                db.add(auth)
            auth.access_token = access_token
            auth.refresh_token = refresh_token
            auth.expires_at = now + datetime.timedelta(seconds=expires_in)
            auth.scope = scope
            auth.token_type = "bearer"
            auth.last_refreshed_at = now
            auth.refresh_attempts = 0
            auth.is_refreshing = False
            db.commit()
            db.refresh(auth)
            logger.info(
                "Salla tokens stored for merchant %s, expires at %s", merchant_id, auth.expires_at
            )
            return TokenRecord.model_validate(auth)

    def put(self, merchant_id: str, tokens: IssuedTokens) -> TokenRecord | None:
        """
        Replace the token material after a successful refresh.

        Access token, refresh token and expiry are written in one statement
        together with clearing the lock and resetting the attempt counter.
        """
        return self.release_lock(merchant_id, success=True, tokens=tokens)

    def try_acquire_lock(self, merchant_id: str) -> bool:
        """Take the refresh lock if nobody holds it. Exactly one concurrent caller wins."""
        stmt = (
            update(SallaAuth)
            .where(SallaAuth.merchant_id == str(merchant_id), SallaAuth.is_refreshing.is_(False))
            .values(is_refreshing=True, last_refreshed_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        return self._execute_conditional(stmt)

    def force_acquire_lock(self, merchant_id: str, observed_locked_at: datetime.datetime) -> bool:
        """
        Take over an abandoned lock.

        Only succeeds if the lock is still the one observed at
        `observed_locked_at`; a second caller overriding the same stale lock
        sees the new timestamp and loses.
        """
        stmt = (
            update(SallaAuth)
            .where(
                SallaAuth.merchant_id == str(merchant_id),
                SallaAuth.is_refreshing.is_(True),
                SallaAuth.last_refreshed_at == observed_locked_at,
            )
            .values(is_refreshing=True, last_refreshed_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        return self._execute_conditional(stmt)

    def release_lock(
        self,
        merchant_id: str,
        success: bool,
        tokens: IssuedTokens | None = None,
    ) -> TokenRecord | None:
        """
        Clear the refresh lock and record the outcome.

        On failure the attempt counter is incremented in SQL and the token
        material is left untouched. On success the counter is reset and, when
        `tokens` is given, the new pair and expiry are written in the same
        statement.

        Returns:
            TokenRecord | None: The record after the write, or None if it vanished.
        """
        merchant_id = str(merchant_id)
        now = self._clock()
        values: dict = {"is_refreshing": False, "updated_at": now}
        if success:
            values["refresh_attempts"] = 0
            if tokens is not None:
                values.update(
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    expires_at=tokens.expires_at(now),
                    scope=tokens.scope,
                    token_type=tokens.token_type or "bearer",
                    last_refreshed_at=now,
                )
        else:
            values["refresh_attempts"] = SallaAuth.refresh_attempts + 1

        with self._session_factory() as db:
            db.execute(
                update(SallaAuth)
                .where(SallaAuth.merchant_id == merchant_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            auth = db.get(SallaAuth, merchant_id)
            return TokenRecord.model_validate(auth) if auth else None

    def clear_lock(self, merchant_id: str) -> None:
        """Drop the lock without recording an outcome."""
        with self._session_factory() as db:
            db.execute(
                update(SallaAuth)
                .where(SallaAuth.merchant_id == str(merchant_id))
                .values(is_refreshing=False)
                .execution_options(synchronize_session=False)
            )
            db.commit()

    def find_due(
        self,
        expiry_threshold: datetime.datetime,
        forced_threshold: datetime.datetime,
    ) -> list[TokenRecord]:
        """Unlocked records expiring by `expiry_threshold` or stale since `forced_threshold`."""
        stmt = (
            select(SallaAuth)
            .where(
                and_(
                    or_(
                        SallaAuth.expires_at <= expiry_threshold,
                        SallaAuth.last_refreshed_at <= forced_threshold,
                    ),
                    SallaAuth.is_refreshing.is_(False),
                )
            )
            .order_by(SallaAuth.expires_at)
        )
        with self._session_factory() as db:
            return [TokenRecord.model_validate(row) for row in db.scalars(stmt).all()]

    def _execute_conditional(self, stmt) -> bool:
        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return result.rowcount == 1
