"""Salla plugin module.

This module provides the API endpoints of the Salla integration: the app
webhook that receives OAuth tokens when a merchant authorizes the app, the
scheduled token refresh triggered by an external cron, and a token health
report for operators.

Token material never leaves the service through these endpoints.
"""

import hashlib
import hmac
import json
import logging
from datetime import UTC, datetime
from typing import Any

import anyio
from fastapi import APIRouter, Depends, HTTPException, Request

from backoffice.core.auth import verify_cron_secret
from backoffice.core.settings import SallaSettings
from backoffice.tokens.services import TokenServices
from backoffice.tokens.status import TokenStatus, token_status

# Setup module-level logger
logger = logging.getLogger("salla")

AUTHORIZE_EVENT = "app.store.authorize"
# `expires` above this is a unix timestamp rather than a lifetime in seconds
EPOCH_CUTOFF = 10**9


def verify_signature(raw: bytes, signature: str | None, secret: str) -> bool:
    """Check the hex HMAC-SHA256 Salla sends in `X-Salla-Signature`."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def authorize_payload_tokens(payload: dict[str, Any], now: datetime) -> dict[str, Any] | None:
    """
    Extract the token fields of an `app.store.authorize` event.

    Args:
        payload (dict[str, Any]): The decoded webhook body.
        now (datetime): Naive UTC receipt time, used to turn a timestamp `expires`
            into a lifetime.

    Returns:
        dict[str, Any] | None: Keyword arguments for `TokenStore.save_authorization`,
        or None if a required field is missing.
    """
    merchant_id = str(payload.get("merchant") or "")
    data = payload.get("data") or {}
    access_token = data.get("access_token") or ""
    refresh_token = data.get("refresh_token") or ""
    scope = data.get("scope") or None
    try:
        expires = int(data.get("expires") or 0)
    except (TypeError, ValueError):
        expires = 0

    if expires > EPOCH_CUTOFF:
        expires = expires - int(now.replace(tzinfo=UTC).timestamp())

    if not merchant_id or not access_token or not refresh_token or expires <= 0:
        return None

    return {
        "merchant_id": merchant_id,
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": expires,
        "scope": scope,
    }


def create_salla_router(services: TokenServices, settings: SallaSettings) -> APIRouter:
    """Create a router for the Salla integration."""

    router = APIRouter()

    @router.post("/webhook")
    async def webhook(request: Request) -> dict:
        """
        Handle a Salla app webhook.

        Only `app.store.authorize` is acted on: it carries the merchant's
        first token pair, which is stored as the merchant's token record.
        Other events are acknowledged and ignored.
        """
        raw = await request.body()
        if settings.webhook_secret:
            signature = request.headers.get("x-salla-signature") or request.headers.get(
                "x-signature"
            )
            if not verify_signature(raw, signature, settings.webhook_secret):
                logger.warning("Invalid webhook signature: %s", signature)
                raise HTTPException(status_code=401, detail="invalid signature")

        try:
            payload = json.loads(raw)
        except ValueError as e:
            logger.error("Invalid webhook JSON: %s", e)
            raise HTTPException(status_code=400, detail="invalid json") from e
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="invalid json")

        event = payload.get("event") or "unknown"
        if event != AUTHORIZE_EVENT:
            logger.info("Ignoring Salla webhook event %s", event)
            return {"success": True, "ignored": event}

        fields = authorize_payload_tokens(payload, services.clock())
        if fields is None:
            logger.error(
                "Invalid app.store.authorize payload for merchant %s", payload.get("merchant")
            )
            raise HTTPException(status_code=400, detail="missing_required_fields")

        try:
            await anyio.to_thread.run_sync(lambda: services.store.save_authorization(**fields))
        except Exception as e:
            logger.error(
                "Failed to store Salla tokens for merchant %s: %s", fields["merchant_id"], e
            )
            raise HTTPException(status_code=500, detail="failed_to_store_tokens") from e

        logger.info("Salla app authorized for merchant %s", fields["merchant_id"])
        return {"success": True, "message": "tokens_stored", "merchant_id": fields["merchant_id"]}

    @router.api_route(
        "/refresh-tokens", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)]
    )
    async def refresh_tokens() -> dict:
        """Run the scheduled token refresh. Called by an external cron."""
        logger.info("Starting scheduled token refresh")
        try:
            report = await anyio.to_thread.run_sync(services.sweeper.sweep)
        except Exception as e:
            logger.error("Error in scheduled token refresh: %s", e)
            raise HTTPException(status_code=500, detail="token refresh failed") from e

        return {
            "success": True,
            "message": "Token refresh completed",
            "timestamp": datetime.now(UTC).isoformat(),
            "refreshed": report.refreshed,
            "failed": report.failed,
        }

    @router.get(
        "/tokens/status",
        response_model=list[TokenStatus],
        dependencies=[Depends(verify_cron_secret)],
    )
    async def tokens_status() -> list[TokenStatus]:
        """Report token health for every merchant."""
        records = await anyio.to_thread.run_sync(services.store.all)
        now = services.clock()
        return [
            token_status(record, now, settings.refresh_window, settings.forced_refresh_interval)
            for record in records
        ]

    return router
