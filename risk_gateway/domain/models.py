"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from risk_gateway.domain.exceptions import InvalidTransactionError, InvariantViolationError


class Decision(str, Enum):
    """Canonical decision, ordered by restrictiveness: ALLOW < REVIEW < BLOCK"""

    ALLOW = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"

    @property
    def rank(self) -> int:
        return _DECISION_RANK[self]


_DECISION_RANK = {Decision.ALLOW: 0, Decision.REVIEW: 1, Decision.BLOCK: 2}


def most_restrictive(*decisions: Decision) -> Decision:
    """Maximum of the given decisions under ALLOW < REVIEW < BLOCK"""
    return max(decisions, key=lambda d: d.rank)


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


def risk_level_for(score: int) -> RiskLevel:
    """Single source of truth for the score -> level mapping"""
    if score >= 80:
        return RiskLevel.HIGH
    if score >= 50:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class Direction(str, Enum):
    PAYIN = "payin"
    PAYOUT = "payout"


class Provider(str, Enum):
    """Payment channel the transaction is routed through"""

    KOTANIPAY = "kotanipay"
    HIFI = "hifi"
    VOUCHER = "voucher"  # cash-equivalent channel


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    CRYPTO = "crypto"
    BANK = "bank"
    VAS = "vas"


class TimeWindow(str, Enum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransactionRequest:
    """Proposed transaction submitted for a risk decision"""

    transaction_id: str
    user_id: str
    amount: Decimal
    currency_code: str
    direction: Direction
    provider: Provider
    payment_method: PaymentMethod
    action_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise InvalidTransactionError("transaction_id must be non-empty")
        if not self.user_id:
            raise InvalidTransactionError("user_id must be non-empty")
        if self.amount <= 0:
            raise InvalidTransactionError(f"amount must be positive, got {self.amount}")


@dataclass(frozen=True)
class RiskVerdict:
    """One evaluator's opinion before combination"""

    decision: Decision
    risk_score: int
    reasons: Tuple[str, ...]
    source_check_id: str
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not isinstance(self.decision, Decision):
            raise InvariantViolationError(f"decision outside enumerated set: {self.decision!r}")
        if not 0 <= self.risk_score <= 100:
            raise InvariantViolationError(f"risk_score out of range: {self.risk_score}")
        if not self.source_check_id:
            raise InvariantViolationError("verdict is missing its source_check_id")

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for(self.risk_score)

    def to_payload(self) -> Dict[str, Any]:
        """Render in the canonical provider-like wire shape"""
        return {
            "checkId": self.source_check_id,
            "action": self.decision.value,
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level.value,
            "reasons": list(self.reasons),
            "timestamp": int(self.timestamp.timestamp() * 1000),
        }


@dataclass(frozen=True)
class WindowUsage:
    """Aggregate volume for one user inside a window"""

    total: Decimal
    count: int


@dataclass(frozen=True)
class LimitsResult:
    """Outcome of a limits check; decision is ALLOW or BLOCK, never REVIEW"""

    within_limits: bool
    decision: Decision
    window: TimeWindow
    amount_limit: Decimal
    amount_used: Decimal
    amount_remaining: Decimal
    transaction_limit: Decimal
    transaction_count: int
    transaction_count_limit: int
    reasons: Tuple[str, ...] = ()
    degraded: bool = False
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class FinalDecision:
    """Combined decision returned to callers of the engine"""

    decision: Decision
    risk_score: int
    reasons: Tuple[str, ...]
    local_check_id: str
    provider_check_id: Optional[str]
    short_circuited: bool = False
    limits: Optional[LimitsResult] = None
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for(self.risk_score)


@dataclass(frozen=True)
class EngineConfig:
    """Static configuration captured once at engine construction"""

    single_transaction_limit: Decimal = Decimal("50000")
    daily_transaction_limit: Decimal = Decimal("100000")
    hourly_transaction_count: int = 10
    voucher_review_limit: Decimal = Decimal("10000")
    high_scrutiny_currencies: FrozenSet[str] = frozenset()
    high_scrutiny_currency_limit: Decimal = Decimal("10000")
    block_threshold: int = 90
    review_threshold: int = 70
    provider_timeout_seconds: float = 3.0
    short_circuit_on_block: bool = True
    audit_short_circuited: bool = True
    reserve_limits: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> "EngineConfig":
        return cls(
            single_transaction_limit=Decimal(str(settings.single_transaction_limit)),
            daily_transaction_limit=Decimal(str(settings.daily_transaction_limit)),
            hourly_transaction_count=settings.hourly_transaction_count,
            voucher_review_limit=Decimal(str(settings.voucher_review_limit)),
            high_scrutiny_currencies=frozenset(c.upper() for c in settings.high_scrutiny_currencies),
            high_scrutiny_currency_limit=Decimal(str(settings.high_scrutiny_currency_limit)),
            block_threshold=settings.block_threshold,
            review_threshold=settings.review_threshold,
            provider_timeout_seconds=settings.provider_timeout_seconds,
            short_circuit_on_block=settings.short_circuit_on_block,
            audit_short_circuited=settings.audit_short_circuited,
            reserve_limits=settings.reserve_limits,
        )

