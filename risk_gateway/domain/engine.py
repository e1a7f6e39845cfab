"""Risk decision engine - orchestrates one evaluation end to end

RECEIVED -> LOCAL_EVALUATED (rules + limits) -> [BLOCK: short-circuit]
         -> PROVIDER_QUERIED -> COMBINED

The provider call is the only network I/O and is bounded by
`provider_timeout_seconds`. Any provider failure becomes the fail-open
verdict; callers always get a FinalDecision back.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Protocol

from risk_gateway.domain.combiner import combine
from risk_gateway.domain.exceptions import LimitsStoreUnavailableError, ProviderAPIError
from risk_gateway.domain.limits import LimitsTracker, limits_escalations
from risk_gateway.domain.models import (
    Decision,
    EngineConfig,
    FinalDecision,
    RiskVerdict,
    TimeWindow,
    TransactionRequest,
)
from risk_gateway.domain.normalizer import fallback_verdict, normalize
from risk_gateway.domain.rules import evaluate

logger = logging.getLogger(__name__)


class ProviderGateway(Protocol):
    async def check_transaction(self, request: TransactionRequest) -> Any:
        """Raw provider response; raises ProviderAPIError on failure"""
        ...


class RiskEngine:
    """Produces one canonical decision per transaction"""

    def __init__(
        self,
        config: EngineConfig,
        provider: ProviderGateway,
        limits: LimitsTracker,
        on_provider_failure: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self.provider = provider
        self.limits = limits
        self.on_provider_failure = on_provider_failure

    async def evaluate_transaction(self, request: TransactionRequest) -> FinalDecision:
        limits_result = self.limits.check_and_preview(request.user_id, request.amount, TimeWindow.DAILY)
        local = evaluate(request, self.config, extra=limits_escalations(limits_result))

        if local.decision == Decision.BLOCK and self.config.short_circuit_on_block:
            logger.info(
                "Local BLOCK, skipping provider call",
                extra={"transaction_id": request.transaction_id, "step": "short_circuit"},
            )
            return combine(local, None, limits=limits_result)

        provider_verdict = await self._query_provider(request)
        final = combine(local, provider_verdict, limits=limits_result)

        if self.config.reserve_limits and final.decision != Decision.BLOCK:
            final = self._reserve(request, provider_verdict, final)
        return final

    def _reserve(self, request: TransactionRequest, provider_verdict: RiskVerdict, final: FinalDecision) -> FinalDecision:
        """Re-check and record the amount under the user's lock.

        The preview above ran before the provider await, so a concurrent
        evaluation may have taken the remaining headroom since. When the
        atomic re-check fails the decision is rebuilt with the limit breach.
        """
        admitted = self.limits.admit(
            request.user_id,
            request.amount,
            TimeWindow.DAILY,
            transaction_id=request.transaction_id,
        )
        if admitted.within_limits:
            return replace(final, limits=admitted)

        logger.info(
            "Limits exhausted by a concurrent transaction",
            extra={"transaction_id": request.transaction_id, "step": "limits_reserve"},
        )
        local = evaluate(request, self.config, extra=limits_escalations(admitted))
        return combine(local, provider_verdict, limits=admitted)

    async def _query_provider(self, request: TransactionRequest) -> RiskVerdict:
        timeout = self.config.provider_timeout_seconds
        try:
            raw = await asyncio.wait_for(self.provider.check_transaction(request), timeout=timeout)
        except asyncio.TimeoutError:
            return self._provider_unavailable(request, "timeout", f"no response within {timeout}s")
        except ProviderAPIError as e:
            return self._provider_unavailable(request, "error", str(e))

        return normalize(raw, self.config)

    def _provider_unavailable(self, request: TransactionRequest, kind: str, detail: str) -> RiskVerdict:
        logger.warning(
            f"Risk provider unavailable ({kind}): {detail}",
            extra={"transaction_id": request.transaction_id, "step": "provider_check", "fail_open": True},
        )
        if self.on_provider_failure is not None:
            self.on_provider_failure(kind)
        return fallback_verdict()

    def record_completed(
        self,
        transaction_id: str,
        user_id: str,
        amount: Decimal,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Consume limits for a confirmed transaction. Returns False if the store is down.

        Recording is keyed by transaction id, so a duplicate report or a
        reservation made at check time is replaced rather than counted twice.
        """
        try:
            self.limits.record(user_id, amount, timestamp, transaction_id=transaction_id)
        except LimitsStoreUnavailableError as e:
            logger.warning(
                f"Could not record completed transaction: {e}",
                extra={"transaction_id": transaction_id, "step": "record_completed", "fail_open": True},
            )
            return False
        return True

    def release_transaction(self, transaction_id: str, user_id: str) -> bool:
        """Return reserved volume for a transaction that failed or was cancelled.

        Only meaningful with `reserve_limits`; otherwise nothing was recorded
        at check time and this is a no-op.
        """
        if not self.config.reserve_limits:
            return False
        try:
            return self.limits.release(user_id, transaction_id)
        except LimitsStoreUnavailableError as e:
            logger.warning(
                f"Could not release reserved limits: {e}",
                extra={"transaction_id": transaction_id, "step": "release_reservation", "fail_open": True},
            )
            return False

    def should_audit(self, final: FinalDecision) -> bool:
        return not final.short_circuited or self.config.audit_short_circuited
