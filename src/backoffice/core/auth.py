"""Authentication for scheduler-facing endpoints."""

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backoffice.core.dependencies import get_app_settings
from backoffice.core.settings import AppSettings

logger = logging.getLogger("auth")

security = HTTPBearer(auto_error=False)


def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: AppSettings = Depends(get_app_settings),
) -> None:
    """
    Require `Authorization: Bearer <CRON_SECRET>` when a cron secret is configured.

    Without a configured secret the endpoints are open, which is only meant for
    local development.
    """
    if not settings.cron_secret:
        return

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        logger.warning("Unauthorized token refresh attempt: missing bearer credentials")
        raise credentials_exception
    if not secrets.compare_digest(credentials.credentials, settings.cron_secret):
        logger.warning("Unauthorized token refresh attempt: bad cron secret")
        raise credentials_exception
