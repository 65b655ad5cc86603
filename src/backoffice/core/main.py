"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

from fastapi import FastAPI, Request
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from backoffice.core.database import Base, engine
from backoffice.core.dependencies import get_app_settings, get_salla_settings, get_token_services
from backoffice.plugins.salla import create_salla_router

# Setup logging
logging.basicConfig(
    level=get_app_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("api")


# Request tracing middleware
class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Request tracing middleware."""

    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        logger.info("Request: %s %s", request.method, request.url.path)
        response = await call_next(request)
        logger.info("Response status: %s", response.status_code)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan for the FastAPI application."""
    logger.info("Initializing database...")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        raise
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized successfully")
    yield


app = FastAPI(
    title="Back Office API",
    description="Salla merchant back office integrations",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request tracing middleware
app.add_middleware(RequestTracingMiddleware)

app.include_router(
    create_salla_router(get_token_services(), get_salla_settings()),
    prefix="/salla",
    tags=["salla"],
)


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {"message": "Welcome to the Back Office API"}
