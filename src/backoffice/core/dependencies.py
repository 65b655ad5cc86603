"""
FastAPI dependencies for the back office application.
"""

import logging
from functools import lru_cache

from backoffice.core.database import SessionLocal
from backoffice.core.settings import AppSettings, SallaSettings
from backoffice.tokens.services import TokenServices, build_token_services
from backoffice.tokens.sweeper import ExpirySweeper

# Setup logger
logger = logging.getLogger("dependencies")


@lru_cache()
def get_salla_settings() -> SallaSettings:
    """
    Get the Salla settings. Reads SALLA_* vars from .env.
    """
    settings = SallaSettings()
    if not settings.client_id or not settings.client_secret:
        logger.warning("SALLA_CLIENT_ID or SALLA_CLIENT_SECRET is not set; refreshes will fail")
    return settings


@lru_cache()
def get_app_settings() -> AppSettings:
    """
    Get the application settings.
    """
    return AppSettings()


@lru_cache()
def get_token_services() -> TokenServices:
    """
    Injection method to get the token lifecycle components.
    """
    settings = get_salla_settings()
    logger.info(
        "Creating token services: refresh_window=%s forced_refresh_interval=%s lock_timeout=%s",
        settings.refresh_window,
        settings.forced_refresh_interval,
        settings.lock_timeout,
    )
    return build_token_services(SessionLocal, settings)


def get_expiry_sweeper() -> ExpirySweeper:
    return get_token_services().sweeper
