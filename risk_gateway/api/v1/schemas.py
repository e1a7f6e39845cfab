"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from risk_gateway.domain.models import (
    Decision,
    Direction,
    FinalDecision,
    LimitsResult,
    PaymentMethod,
    Provider,
    RiskLevel,
    TimeWindow,
    TransactionRequest,
)


class TransactionCheckRequest(BaseModel):
    """Request body for POST /v1/transaction/check"""

    transaction_id: str = Field(..., min_length=1, description="Transaction identifier")
    user_id: str = Field(..., min_length=1, description="User identifier")
    amount: Decimal = Field(..., gt=0, description="Transaction amount in currency units")
    currency_code: str = Field(..., min_length=3, max_length=3, description="ISO 4217 currency code")
    direction: Direction
    provider: Provider
    payment_method: PaymentMethod
    action_type: Optional[Literal["topup", "withdrawal", "purchase"]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> TransactionRequest:
        return TransactionRequest(
            transaction_id=self.transaction_id,
            user_id=self.user_id,
            amount=self.amount,
            currency_code=self.currency_code.upper(),
            direction=self.direction,
            provider=self.provider,
            payment_method=self.payment_method,
            action_type=self.action_type,
            metadata=self.metadata,
        )


class LimitsSchema(BaseModel):
    """Used/remaining figures from a limits check"""

    within_limits: bool
    decision: Decision
    window: TimeWindow
    amount_limit: Decimal
    amount_used: Decimal
    amount_remaining: Decimal
    transaction_limit: Decimal
    transaction_count: int
    transaction_count_limit: int
    reasons: List[str]
    degraded: bool

    @classmethod
    def from_domain(cls, result: LimitsResult) -> "LimitsSchema":
        return cls(
            within_limits=result.within_limits,
            decision=result.decision,
            window=result.window,
            amount_limit=result.amount_limit,
            amount_used=result.amount_used,
            amount_remaining=result.amount_remaining,
            transaction_limit=result.transaction_limit,
            transaction_count=result.transaction_count,
            transaction_count_limit=result.transaction_count_limit,
            reasons=list(result.reasons),
            degraded=result.degraded,
        )


class TransactionCheckResponse(BaseModel):
    """Response for POST /v1/transaction/check"""

    decision: Decision
    risk_score: int
    risk_level: RiskLevel
    reasons: List[str]
    check_id: Optional[str]
    internal_check_id: str
    short_circuited: bool
    limits: Optional[LimitsSchema] = None
    timestamp: datetime

    @classmethod
    def from_domain(cls, final: FinalDecision) -> "TransactionCheckResponse":
        return cls(
            decision=final.decision,
            risk_score=final.risk_score,
            risk_level=final.risk_level,
            reasons=list(final.reasons),
            check_id=final.provider_check_id,
            internal_check_id=final.local_check_id,
            short_circuited=final.short_circuited,
            limits=LimitsSchema.from_domain(final.limits) if final.limits else None,
            timestamp=final.timestamp,
        )


class LimitsCheckRequest(BaseModel):
    """Request body for POST /v1/limits/check"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    amount: Decimal = Field(..., gt=0)
    currency_code: Optional[str] = None
    time_window: TimeWindow = TimeWindow.DAILY


class ProviderResponseSchema(BaseModel):
    """Outcome reported by the payment provider"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str
    reference_id: Optional[str] = None
    external_id: Optional[str] = None
    error_code: Optional[str] = None
    transaction_hash: Optional[str] = None


class TransactionReportRequest(BaseModel):
    """Request body for POST /v1/transaction/report"""

    # Forwarded to the provider in its camelCase wire format
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    transaction_id: str = Field(..., min_length=1)
    check_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    final_status: Literal["COMPLETED", "FAILED", "CANCELLED"]
    actual_amount: Optional[Decimal] = Field(None, gt=0)
    processing_time_ms: Optional[int] = Field(None, ge=0)
    provider: Optional[Provider] = None
    transaction_type: Optional[Literal["onramp", "offramp", "voucher_purchase"]] = None
    provider_response: Optional[ProviderResponseSchema] = None
    completed_at: Optional[datetime] = None


class TransactionReportResponse(BaseModel):
    """Response for POST /v1/transaction/report"""

    status: str
    report_id: str
    limits_recorded: bool


class FeedbackRequest(BaseModel):
    """Request body for POST /v1/transaction/feedback"""

    transaction_id: str = Field(..., min_length=1)
    check_id: str = Field(..., min_length=1)
    actual_fraud: bool
    reviewer_notes: Optional[str] = None
    review_timestamp: Optional[datetime] = None


class FeedbackResponse(BaseModel):
    """Response for POST /v1/transaction/feedback"""

    feedback_id: str
    received_at: datetime


class RulesResponse(BaseModel):
    """Response for GET /v1/rules"""

    rules: List[Dict[str, Any]]
    total: int
    page: int
    limit: int


class HistoryItem(BaseModel):
    """Single decision in history"""

    transaction_id: str
    decision: Decision
    risk_score: int
    risk_level: RiskLevel
    reasons: List[str]
    internal_check_id: str
    check_id: Optional[str]
    short_circuited: bool
    created_at: str


class HistoryResponse(BaseModel):
    """Response for GET /v1/decision/history"""

    user_id: str
    decisions: List[HistoryItem]
