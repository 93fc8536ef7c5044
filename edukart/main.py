"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from edukart.api.middleware.error_handler import error_handler_middleware
from edukart.api.middleware.latency_logging import latency_logging_middleware
from edukart.api.routes import coupons, health, webhooks
from edukart.api.routes.checkout import orders_router, router as checkout_router
from edukart.core.config import get_settings
from edukart.core.stripe import configure_stripe
from edukart.services.price_cache import init_price_cache, shutdown_price_cache

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    configure_stripe()
    logger.info("Stripe SDK configured")

    await init_price_cache()
    logger.info("Catalog price cache initialized")

    yield

    await shutdown_price_cache()
    logger.info("Catalog price cache shutdown")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="EduKart Commerce API",
        description="Cart pricing, checkout and payment settlement for the EduKart learning platform",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (outermost - catches all errors)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Add latency logging middleware (tracks request timing)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    # Mount health routes at root level (no prefix)
    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")

    # Checkout and orders routes
    api_v1_router.include_router(checkout_router)
    api_v1_router.include_router(orders_router)
    api_v1_router.include_router(coupons.router)

    # Webhook routes
    api_v1_router.include_router(webhooks.router)

    app.include_router(api_v1_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "edukart.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
