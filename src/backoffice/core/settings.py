"""
Settings for the back office application.
"""

from datetime import timedelta

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

SALLA_OAUTH_URL = "https://accounts.salla.sa/oauth2/token"
SALLA_API_BASE_URL = "https://api.salla.dev/admin/v2"

load_dotenv()


class SallaSettings(BaseSettings):
    """
    Settings for the Salla API and the token lifecycle.

    Salla access tokens live for 14 days. Tokens are refreshed once they are
    inside `refresh_window` of expiry, and at least every
    `forced_refresh_interval` regardless of the reported expiry.
    """

    client_id: str = ""
    client_secret: str = ""
    webhook_secret: str = ""
    oauth_url: str = SALLA_OAUTH_URL
    api_base_url: str = SALLA_API_BASE_URL
    http_timeout: float = 20.0

    refresh_window: timedelta = timedelta(days=2)
    forced_refresh_interval: timedelta = timedelta(days=7)
    lock_timeout: timedelta = timedelta(seconds=30)
    max_retries: int = 3
    retry_backoff: float = 1.0
    alert_after_attempts: int = 3

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SALLA_",
        extra="ignore",
    )


class AppSettings(BaseSettings):
    """
    Settings for the HTTP application.
    """

    cron_secret: str = ""
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
