# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .database import init_db
from .errors import register_error_handlers
from .routes import prometheus, stripe_webhooks
from .routes.v1 import (
    availability as availability_v1,
    health as health_v1,
    private_sessions as private_sessions_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if not settings.is_testing:
        init_db()
    if settings.email_provider == "console":
        logger.info("Email provider is console; notifications are logged, not sent")
    yield
    logger.info(f"{BRAND_NAME} API shutting down...")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.strip("/").replace("/", "_").replace("{", "").replace("}", "")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)
# Register unified error envelope handlers
register_error_handlers(app)

# API v1 routes
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(private_sessions_v1.router, prefix="/private-sessions")
api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(health_v1.router, prefix="/health")
app.include_router(api_v1)

# Infrastructure routes (unversioned)
app.include_router(stripe_webhooks.router)
app.include_router(prometheus.router)

# Alias used by ASGI servers and tests
fastapi_app = app
