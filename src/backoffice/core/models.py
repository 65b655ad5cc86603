"""
Database models used for Salla OAuth token storage.
"""

import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.database import Base


def utcnow() -> datetime.datetime:
    """Current time as a naive UTC datetime, the form stored in `salla_auth`."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


class SallaAuth(Base):
    """
    Represents the Salla OAuth credentials of one merchant.

    The row doubles as the merchant's refresh lock: `is_refreshing` is the lock
    flag and `last_refreshed_at` the time it was taken.

    Attributes:
        merchant_id (str): Unique identifier for the merchant.
        access_token (str): Salla access token for authenticating API requests.
        refresh_token (str): Single-use token exchanged for a new token pair.
        expires_at (datetime): UTC time after which the access token is invalid.
        scope (str): Scopes granted at install time, informational only.
        token_type (str): Token type reported by Salla.
        last_refreshed_at (datetime): Last refresh attempt, or lock acquisition time.
        is_refreshing (bool): Whether a refresh is in progress.
        refresh_attempts (int): Consecutive failed refreshes since the last success.
    """

    __tablename__ = "salla_auth"

    merchant_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    access_token: Mapped[str] = mapped_column(String, nullable=False)
    refresh_token: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime, index=True, nullable=False)
    scope: Mapped[str | None] = mapped_column(String, nullable=True)
    token_type: Mapped[str] = mapped_column(String, default="bearer", nullable=False)
    last_refreshed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    is_refreshing: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    refresh_attempts: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class TokenRecord(BaseModel):
    """
    Detached snapshot of a `SallaAuth` row.

    The token store only ever hands these out, so callers never hold a
    session-bound ORM object across a lock boundary.
    """

    merchant_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime.datetime
    scope: Optional[str] = None
    token_type: str = "bearer"
    last_refreshed_at: datetime.datetime
    is_refreshing: bool = False
    refresh_attempts: int = 0

    model_config = ConfigDict(from_attributes=True, frozen=True)


class IssuedTokens(BaseModel):
    """Token pair returned by a successful exchange with the Salla token endpoint."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., gt=0, description="Lifetime in seconds")
    token_type: str = "bearer"
    scope: Optional[str] = None

    def expires_at(self, issued_at: datetime.datetime) -> datetime.datetime:
        """Absolute expiry computed from the lifetime reported at issuance."""
        return issued_at + datetime.timedelta(seconds=self.expires_in)
