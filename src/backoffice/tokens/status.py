"""Read-only health report of every merchant's tokens."""

import datetime
from typing import List

from pydantic import BaseModel, Field

from backoffice.core.models import TokenRecord

SECONDS_PER_DAY = 24 * 60 * 60


class TokenStatus(BaseModel):
    """Token health of one merchant. Never includes the token material itself."""

    merchant_id: str
    expires_at: datetime.datetime
    days_until_expiry: int
    last_refreshed_at: datetime.datetime
    days_since_refresh: int
    refresh_attempts: int
    is_refreshing: bool
    needs_refresh: bool
    reasons: List[str] = Field(default_factory=list)


def token_status(
    record: TokenRecord,
    now: datetime.datetime,
    refresh_window: datetime.timedelta,
    forced_refresh_interval: datetime.timedelta,
) -> TokenStatus:
    """
    Describe one record as of `now`.

    Reasons are "expiry-window" when the token expires within `refresh_window`
    and "forced-interval" when it was last refreshed at least
    `forced_refresh_interval` ago.
    """
    time_until_expiry = record.expires_at - now
    time_since_refresh = now - record.last_refreshed_at

    reasons = []
    if time_until_expiry <= refresh_window:
        reasons.append("expiry-window")
    if time_since_refresh >= forced_refresh_interval:
        reasons.append("forced-interval")

    return TokenStatus(
        merchant_id=record.merchant_id,
        expires_at=record.expires_at,
        days_until_expiry=int(time_until_expiry.total_seconds() // SECONDS_PER_DAY),
        last_refreshed_at=record.last_refreshed_at,
        days_since_refresh=int(time_since_refresh.total_seconds() // SECONDS_PER_DAY),
        refresh_attempts=record.refresh_attempts,
        is_refreshing=record.is_refreshing,
        needs_refresh=bool(reasons),
        reasons=reasons,
    )
