"""Local rule evaluator - deterministic threshold checks, no I/O

Rules run in a fixed order. Each rule either returns None (no opinion) or an
Escalation naming the minimum decision it requires. The running decision is a
fold of those escalations under ALLOW < REVIEW < BLOCK, so a later rule can
raise the outcome but never lower it.

Scores are categorical (BLOCK=100, REVIEW=75, ALLOW=25) rather than derived
from the amount.
"""

import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from risk_gateway.domain.models import (
    Decision,
    EngineConfig,
    Provider,
    RiskVerdict,
    TransactionRequest,
    most_restrictive,
)

LOCAL_SCORES = {
    Decision.ALLOW: 25,
    Decision.REVIEW: 75,
    Decision.BLOCK: 100,
}


@dataclass(frozen=True)
class Escalation:
    """A rule's demand that the decision be at least `decision`"""

    decision: Decision
    reason: str


Rule = Callable[[TransactionRequest, EngineConfig], Optional[Escalation]]


def single_transaction_ceiling(request: TransactionRequest, config: EngineConfig) -> Optional[Escalation]:
    if request.amount > config.single_transaction_limit:
        return Escalation(Decision.BLOCK, "amount exceeds single transaction limit")
    return None


def voucher_ceiling(request: TransactionRequest, config: EngineConfig) -> Optional[Escalation]:
    if request.provider == Provider.VOUCHER and request.amount > config.voucher_review_limit:
        return Escalation(Decision.REVIEW, "high-value voucher purchase requires review")
    return None


def high_scrutiny_currency_ceiling(request: TransactionRequest, config: EngineConfig) -> Optional[Escalation]:
    currency = request.currency_code.upper()
    if currency in config.high_scrutiny_currencies and request.amount > config.high_scrutiny_currency_limit:
        return Escalation(
            Decision.REVIEW,
            f"{currency} amount above high-scrutiny currency limit requires review",
        )
    return None


DEFAULT_RULES: Sequence[Rule] = (
    single_transaction_ceiling,
    voucher_ceiling,
    high_scrutiny_currency_ceiling,
)


def fold_escalations(escalations: Iterable[Optional[Escalation]]) -> tuple[Decision, List[str]]:
    """Reduce escalations to (most restrictive decision, reasons in rule order)"""
    decision = Decision.ALLOW
    reasons: List[str] = []
    for escalation in escalations:
        if escalation is None:
            continue
        decision = most_restrictive(decision, escalation.decision)
        reasons.append(escalation.reason)
    return decision, reasons


def new_check_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def evaluate(
    request: TransactionRequest,
    config: EngineConfig,
    rules: Sequence[Rule] = DEFAULT_RULES,
    extra: Sequence[Escalation] = (),
) -> RiskVerdict:
    """
    Run the ordered rule set against a transaction.

    `extra` carries escalations decided elsewhere (e.g. a failed limits check)
    and is folded after the rules, so its reasons follow the rule reasons.
    """
    escalations = [rule(request, config) for rule in rules]
    escalations.extend(extra)
    decision, reasons = fold_escalations(escalations)

    return RiskVerdict(
        decision=decision,
        risk_score=LOCAL_SCORES[decision],
        reasons=tuple(reasons),
        source_check_id=new_check_id("internal"),
    )
