"""Pytest fixtures for testing"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from risk_gateway.api.dependencies import get_provider_client, get_risk_engine
from risk_gateway.api.main import create_app
from risk_gateway.domain.engine import RiskEngine
from risk_gateway.domain.limits import LimitsTracker
from risk_gateway.domain.models import (
    Direction,
    EngineConfig,
    PaymentMethod,
    Provider,
    TransactionRequest,
)
from risk_gateway.infrastructure.database.models import Base
from risk_gateway.infrastructure.database.session import get_db
from risk_gateway.infrastructure.stores.memory import InMemoryLimitsStore

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(high_scrutiny_currencies=frozenset({"NGN"}))


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def limits_store() -> InMemoryLimitsStore:
    return InMemoryLimitsStore()


@pytest.fixture
def tracker(limits_store: InMemoryLimitsStore, config: EngineConfig, clock) -> LimitsTracker:
    return LimitsTracker(limits_store, config, clock=clock)


@pytest.fixture
def provider() -> AsyncMock:
    """Provider collaborator answering ALLOW unless a test says otherwise"""
    mock = AsyncMock()
    mock.check_transaction.return_value = {
        "id": "orca_check_1",
        "recommendedAction": "ALLOW",
        "triggered": [],
        "timestamp": 1710513000000,
    }
    mock.report_transaction.return_value = {"status": "SUCCESS", "report_id": "report_1"}
    mock.get_rules.return_value = {"rules": [], "total": 0, "page": 1, "limit": 20}
    mock.ping.return_value = True
    return mock


@pytest.fixture
def risk_engine(config: EngineConfig, provider: AsyncMock, tracker: LimitsTracker) -> RiskEngine:
    return RiskEngine(config, provider, tracker)


@pytest.fixture
def make_request() -> Callable[..., TransactionRequest]:
    """Factory for transaction requests with sensible defaults"""

    def _make(**overrides) -> TransactionRequest:
        fields = {
            "transaction_id": "txn_1",
            "user_id": "user_1",
            "amount": Decimal("1000"),
            "currency_code": "KES",
            "direction": Direction.PAYIN,
            "provider": Provider.KOTANIPAY,
            "payment_method": PaymentMethod.WALLET,
        }
        fields.update(overrides)
        return TransactionRequest(**fields)

    return _make


@pytest.fixture
def client(db: Session, risk_engine: RiskEngine, provider: AsyncMock) -> TestClient:
    """Create FastAPI test client with test database and in-memory collaborators"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_risk_engine] = lambda: risk_engine
    app.dependency_overrides[get_provider_client] = lambda: provider
    return TestClient(app)
