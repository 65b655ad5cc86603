"""Authenticated calls to the Salla Admin API."""

import logging
from typing import Any

import httpx

from backoffice.core.settings import SallaSettings
from backoffice.tokens.provider import AccessTokenProvider

logger = logging.getLogger("salla")


class SallaClient:
    """
    Thin wrapper that attaches a valid merchant token to every request.

    A call without a token is never sent: it is logged as `missing_token` and
    None is returned, so callers skip the operation and retry later.
    """

    def __init__(
        self,
        tokens: AccessTokenProvider,
        settings: SallaSettings,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._tokens = tokens
        self._base_url = settings.api_base_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=settings.http_timeout)

    def request(
        self, merchant_id: str, method: str, endpoint: str, **kwargs: Any
    ) -> dict[str, Any] | None:
        """
        Make an authenticated request to the Salla API.

        Args:
            merchant_id (str): Merchant whose token to use.
            method (str): HTTP method.
            endpoint (str): Path below the Admin API base URL, e.g. "/orders".
            **kwargs: Passed to `httpx.Client.request` (json, params, headers...).

        Returns:
            dict[str, Any] | None: Decoded JSON body, or None if the call was
            skipped or failed.
        """
        result = self._tokens.resolve(merchant_id)
        if not result.ok:
            logger.error(
                "No valid access token available: reason=missing_token merchant_id=%s "
                "endpoint=%s cause=%s",
                merchant_id,
                endpoint,
                result.reason.value if result.reason else "",
            )
            return None

        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {result.access_token}",
            "Content-Type": "application/json",
            **kwargs.pop("headers", {}),
        }
        try:
            response = self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "Error making Salla API request for merchant %s to %s: %s", merchant_id, endpoint, e
            )
            return None

        if not response.is_success:
            logger.error(
                "Salla API request failed for merchant %s to %s: status=%s body=%s",
                merchant_id,
                endpoint,
                response.status_code,
                response.text,
            )
            return None

        try:
            return response.json()
        except ValueError:
            logger.error("Salla API returned non-JSON body for %s", endpoint)
            return None

    def get(self, merchant_id: str, endpoint: str, **kwargs: Any) -> dict[str, Any] | None:
        return self.request(merchant_id, "GET", endpoint, **kwargs)

    def post(self, merchant_id: str, endpoint: str, **kwargs: Any) -> dict[str, Any] | None:
        return self.request(merchant_id, "POST", endpoint, **kwargs)

    def put(self, merchant_id: str, endpoint: str, **kwargs: Any) -> dict[str, Any] | None:
        return self.request(merchant_id, "PUT", endpoint, **kwargs)
