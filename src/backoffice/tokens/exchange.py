"""Client for the Salla OAuth token endpoint."""

import logging

import httpx

from backoffice.core.settings import SallaSettings

logger = logging.getLogger("tokens.exchange")


class TokenExchangeClient:
    """
    Exchanges a refresh token for a new token pair.

    Salla rotates the refresh token on receipt, so a request that reached the
    provider must be treated as consumed whatever happens to the response.
    """

    def __init__(self, settings: SallaSettings, http_client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._http = http_client or httpx.Client(timeout=settings.http_timeout)

    def exchange(self, refresh_token: str) -> httpx.Response:
        """
        POST a `refresh_token` grant.

        Args:
            refresh_token (str): The merchant's current refresh token.

        Returns:
            httpx.Response: The raw provider response, whatever its status.

        Raises:
            httpx.TransportError: If no response was received.
        """
        return self._http.post(
            self._settings.oauth_url,
            json={
                "grant_type": "refresh_token",
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "refresh_token": refresh_token,
            },
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._http.close()
