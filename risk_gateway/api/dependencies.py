"""Dependency injection for FastAPI endpoints"""

import logging
import secrets
from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from risk_gateway.config import settings
from risk_gateway.domain.engine import RiskEngine
from risk_gateway.domain.limits import LimitsStore, LimitsTracker
from risk_gateway.domain.models import EngineConfig
from risk_gateway.infrastructure.clients.provider import ProviderClient
from risk_gateway.infrastructure.database.repositories import SqlLimitsStore
from risk_gateway.infrastructure.database.session import SessionLocal
from risk_gateway.infrastructure.observability.metrics import (
    record_limits_store_failure,
    record_provider_failure,
)
from risk_gateway.infrastructure.stores.memory import InMemoryLimitsStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def require_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """Reject requests without the service bearer token (disabled when no key is configured)"""
    if not settings.service_api_key:
        return
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    if not secrets.compare_digest(credentials.credentials, settings.service_api_key):
        logging.warning(
            "Invalid API key attempt",
            extra={"api_key": credentials.credentials[:12] + "...", "path": request.url.path},
        )
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_provider_client() -> ProviderClient:
    """Provide risk provider client instance"""
    return ProviderClient()


def build_limits_store() -> LimitsStore:
    if settings.limits_backend == "database":
        return SqlLimitsStore(SessionLocal)
    return InMemoryLimitsStore()


@lru_cache
def get_risk_engine() -> RiskEngine:
    """Process-wide engine; the limits tracker state must be shared across requests"""
    config = EngineConfig.from_settings(settings)
    tracker = LimitsTracker(
        build_limits_store(),
        config,
        on_store_failure=record_limits_store_failure,
    )
    return RiskEngine(
        config,
        get_provider_client(),
        tracker,
        on_provider_failure=record_provider_failure,
    )
