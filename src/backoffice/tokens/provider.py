"""Entry point every outbound Salla call uses to obtain an access token."""

import datetime
import logging
from typing import Callable

from backoffice.core.models import utcnow
from backoffice.tokens.errors import FailureReason, RefreshResult
from backoffice.tokens.refresh import RefreshCoordinator
from backoffice.tokens.store import TokenStore

logger = logging.getLogger("tokens.provider")


class AccessTokenProvider:
    """
    Hands out usable access tokens, refreshing them inside the refresh window.

    The window is wide compared to the 14 day token lifetime, so under normal
    traffic the first request to notice an approaching expiry refreshes it;
    the expiry sweeper covers merchants without traffic.
    """

    def __init__(
        self,
        store: TokenStore,
        coordinator: RefreshCoordinator,
        refresh_window: datetime.timedelta = datetime.timedelta(days=2),
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._refresh_window = refresh_window
        self._clock = clock

    def get_token(self, merchant_id: str) -> str | None:
        """Return a usable access token, or None when there is none to give."""
        return self.resolve(merchant_id).access_token

    def resolve(self, merchant_id: str) -> RefreshResult:
        """Like `get_token`, but tells the caller why no token is available."""
        merchant_id = str(merchant_id)
        try:
            record = self._store.get(merchant_id)
        except Exception as e:
            logger.exception("Could not read Salla auth for merchant %s", merchant_id)
            return RefreshResult.failure(FailureReason.REFRESH_FAILED, str(e))

        if record is None:
            logger.warning("No Salla auth found for merchant %s", merchant_id)
            return RefreshResult.failure(FailureReason.MISSING_TOKEN)

        time_to_expiry = record.expires_at - self._clock()
        if time_to_expiry >= self._refresh_window:
            return RefreshResult.success(record.access_token)

        logger.info(
            "Token for merchant %s expiring soon (expires at %s, in %s), refreshing",
            merchant_id,
            record.expires_at,
            time_to_expiry,
        )
        return self._coordinator.refresh(merchant_id, stale_token=record.access_token)
