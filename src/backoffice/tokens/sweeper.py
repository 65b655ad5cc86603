"""
Scheduled refresh of tokens close to expiry or not refreshed for too long.

Merchants without live traffic never pass through the access token
provider, so without the sweep their tokens would silently expire.
"""

import datetime
import logging
from dataclasses import dataclass, field
from typing import Callable

from backoffice.core.models import TokenRecord, utcnow
from backoffice.tokens.errors import FailureReason
from backoffice.tokens.refresh import RefreshCoordinator
from backoffice.tokens.store import TokenStore

logger = logging.getLogger("tokens.sweeper")

REASON_EXPIRY_WINDOW = "expiry-window"
REASON_FORCED_INTERVAL = "forced-interval"


@dataclass(frozen=True)
class SweepOutcome:
    merchant_id: str
    reason: str
    refreshed: bool
    failure: FailureReason | None = None
    detail: str = ""


@dataclass
class SweepReport:
    started_at: datetime.datetime
    outcomes: list[SweepOutcome] = field(default_factory=list)

    @property
    def refreshed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.refreshed)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.refreshed


class ExpirySweeper:
    """
    Refreshes every due merchant, one at a time.

    Merchants are refreshed sequentially to keep load on the Salla token
    endpoint flat, and one merchant's failure never stops the sweep.
    """

    def __init__(
        self,
        store: TokenStore,
        coordinator: RefreshCoordinator,
        refresh_window: datetime.timedelta = datetime.timedelta(days=2),
        forced_refresh_interval: datetime.timedelta = datetime.timedelta(days=7),
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._refresh_window = refresh_window
        self._forced_refresh_interval = forced_refresh_interval
        self._clock = clock

    def due(self) -> list[tuple[TokenRecord, str]]:
        """Records the next sweep would refresh, with the reason for each."""
        now = self._clock()
        expiry_threshold = now + self._refresh_window
        forced_threshold = now - self._forced_refresh_interval
        records = self._store.find_due(expiry_threshold, forced_threshold)
        logger.info(
            "Tokens selected for refresh: count=%s expiry_threshold=%s forced_threshold=%s",
            len(records),
            expiry_threshold,
            forced_threshold,
        )
        return [
            (
                record,
                REASON_EXPIRY_WINDOW
                if record.expires_at <= expiry_threshold
                else REASON_FORCED_INTERVAL,
            )
            for record in records
        ]

    def sweep(self) -> SweepReport:
        """Refresh every due merchant and report what happened."""
        report = SweepReport(started_at=self._clock())
        logger.info("Starting scheduled token refresh check")

        for record, reason in self.due():
            logger.info(
                "Refreshing token for merchant %s: reason=%s expires_at=%s last_refreshed_at=%s "
                "days_since_last=%s",
                record.merchant_id,
                reason,
                record.expires_at,
                record.last_refreshed_at,
                (report.started_at - record.last_refreshed_at).days,
            )
            try:
                result = self._coordinator.refresh(
                    record.merchant_id, stale_token=record.access_token
                )
            except Exception as e:
                logger.exception("Failed to refresh token for merchant %s", record.merchant_id)
                report.outcomes.append(
                    SweepOutcome(
                        record.merchant_id, reason, False, FailureReason.REFRESH_FAILED, str(e)
                    )
                )
                continue

            if result.ok:
                logger.info("Token refreshed for merchant %s", record.merchant_id)
            else:
                logger.error(
                    "Token refresh failed for merchant %s: %s %s",
                    record.merchant_id,
                    result.reason.value if result.reason else "",
                    result.detail,
                )
            report.outcomes.append(
                SweepOutcome(record.merchant_id, reason, result.ok, result.reason, result.detail)
            )

        logger.info(
            "Scheduled token refresh check completed: refreshed=%s failed=%s",
            report.refreshed,
            report.failed,
        )
        return report
