"""Typed outcomes of the token lifecycle."""

from dataclasses import dataclass
from enum import Enum


class FailureReason(str, Enum):
    """
    Why no usable access token could be produced.

    Only repeated REFRESH_FAILED needs an operator: it usually means the
    refresh token is dead and the merchant has to re-authorize the app.
    """

    MISSING_TOKEN = "missing_token"
    LOCK_UNAVAILABLE = "lock_unavailable"
    REFRESH_FAILED = "refresh_failed"
    INVALID_RESPONSE = "invalid_response"


@dataclass(frozen=True)
class RefreshResult:
    """Either a usable access token or the reason there is none."""

    access_token: str | None = None
    reason: FailureReason | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.access_token is not None

    @classmethod
    def success(cls, access_token: str) -> "RefreshResult":
        return cls(access_token=access_token)

    @classmethod
    def failure(cls, reason: FailureReason, detail: str = "") -> "RefreshResult":
        return cls(reason=reason, detail=detail)
