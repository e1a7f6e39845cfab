"""FastAPI application factory"""

import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from risk_gateway.api.dependencies import get_provider_client, require_api_key
from risk_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from risk_gateway.api.v1 import history, reports, rules, transactions
from risk_gateway.config import settings
from risk_gateway.infrastructure.clients.provider import ProviderClient
from risk_gateway.infrastructure.database.session import init_db
from risk_gateway.infrastructure.observability.logging import setup_logging

VERSION = "0.1.0"

# Setup structured logging
setup_logging(settings.log_level, settings.environment)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Risk Decision Gateway",
        description="Allow/review/block decisions combining local rules, limits and an external risk provider",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    async def health_check(provider_client: ProviderClient = Depends(get_provider_client)):
        provider_up = await provider_client.ping()
        return {
            "status": "HEALTHY" if provider_up else "DEGRADED",
            "provider_connection": "CONNECTED" if provider_up else "DISCONNECTED",
            "service": settings.service_name,
            "uptime_seconds": int(time.monotonic() - _started_at),
            "version": VERSION,
            "environment": settings.environment,
        }

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    protected = [Depends(require_api_key)]
    app.include_router(transactions.router, prefix="/v1", tags=["pre-transaction"], dependencies=protected)
    app.include_router(reports.router, prefix="/v1", tags=["post-transaction"], dependencies=protected)
    app.include_router(history.router, prefix="/v1", tags=["history"], dependencies=protected)
    app.include_router(rules.router, prefix="/v1", tags=["rules"], dependencies=protected)

    return app


app = create_app()
