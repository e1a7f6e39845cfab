"""Decision combiner - merges the local and provider verdicts"""

from typing import Optional

from risk_gateway.domain.models import FinalDecision, LimitsResult, RiskVerdict, most_restrictive


def combine(
    local: RiskVerdict,
    provider: Optional[RiskVerdict],
    limits: Optional[LimitsResult] = None,
) -> FinalDecision:
    """
    Merge two verdicts under a strict precedence.

    - decision: most restrictive of the two (ALLOW < REVIEW < BLOCK)
    - risk_score: max of the two; risk_level is re-derived from it
    - reasons: local reasons first, then provider reasons, no deduplication

    `provider` is None only when the provider call was short-circuited after
    a local BLOCK; the result is then the local verdict alone, which is what
    full combination would have returned since BLOCK/100 is already maximal.
    Inputs are trusted to be well-formed verdicts.
    """
    if provider is None:
        return FinalDecision(
            decision=local.decision,
            risk_score=local.risk_score,
            reasons=local.reasons,
            local_check_id=local.source_check_id,
            provider_check_id=None,
            short_circuited=True,
            limits=limits,
        )

    return FinalDecision(
        decision=most_restrictive(local.decision, provider.decision),
        risk_score=max(local.risk_score, provider.risk_score),
        reasons=local.reasons + provider.reasons,
        local_check_id=local.source_check_id,
        provider_check_id=provider.source_check_id,
        limits=limits,
    )
