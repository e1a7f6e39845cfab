"""Configuration management using Pydantic Settings"""

from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Risk provider
    provider_api_url: str = "https://sandbox.api-orca.com"
    provider_api_key: str = ""
    provider_account_id: str = ""
    provider_timeout_seconds: float = 3.0

    # Inbound auth (empty disables the check)
    service_api_key: str = ""

    # Transaction limits
    single_transaction_limit: float = 50_000
    daily_transaction_limit: float = 100_000
    hourly_transaction_count: int = 10

    # Local rule ceilings
    voucher_review_limit: float = 10_000
    high_scrutiny_currencies: List[str] = []
    high_scrutiny_currency_limit: float = 10_000

    # Provider score thresholds
    block_threshold: int = 90
    review_threshold: int = 70

    # Engine policy
    short_circuit_on_block: bool = True
    audit_short_circuited: bool = True
    # Hold non-blocked volume at check time instead of waiting for the completion report
    reserve_limits: bool = False

    # Persistence
    limits_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite:///./risk_gateway.db"

    # Service
    service_name: str = "risk-gateway"
    environment: str = "development"
    log_level: str = "INFO"


settings = Settings()
