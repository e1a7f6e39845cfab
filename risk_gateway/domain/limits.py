"""Limits tracker - per-user rolling volume checks

The tracker is the only component that reads or writes per-user limit state,
and it does so through an injected LimitsStore. Every read/update for a user
runs under that user's lock so two concurrent transactions cannot both pass
on a stale "used today" figure. Locks are per key; unrelated users never
contend.

Store failures fail open: the check reports within_limits=True with
degraded=True instead of blocking traffic.
"""

import logging
import threading
import weakref
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Protocol

from risk_gateway.domain.exceptions import LimitsStoreUnavailableError
from risk_gateway.domain.models import (
    Decision,
    EngineConfig,
    LimitsResult,
    TimeWindow,
    WindowUsage,
    utc_now,
)
from risk_gateway.domain.rules import Escalation
from risk_gateway.utils.date_utils import as_utc, window_start

logger = logging.getLogger(__name__)


class LimitsStore(Protocol):
    """Persistence for completed transaction volume"""

    def read_window(self, user_id: str, since: datetime) -> WindowUsage:
        """Sum and count of entries for `user_id` with timestamp >= since.

        Raises LimitsStoreUnavailableError when the backend cannot be read.
        """
        ...

    def record(
        self,
        user_id: str,
        amount: Decimal,
        timestamp: datetime,
        transaction_id: Optional[str] = None,
    ) -> None:
        """Add an entry; an entry with the same transaction_id is replaced."""
        ...

    def release(self, user_id: str, transaction_id: str) -> bool:
        """Remove the entry for `transaction_id`; False if there was none."""
        ...


class LimitsTracker:
    """Answers "would this transaction exceed the configured limits?"."""

    def __init__(
        self,
        store: LimitsStore,
        config: EngineConfig,
        clock: Callable[[], datetime] = utc_now,
        on_store_failure: Optional[Callable[[Exception], None]] = None,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.on_store_failure = on_store_failure
        # Entries disappear once no caller holds the lock, so idle users cost nothing
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        # Guard only covers lock creation, never the check itself
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def check_and_preview(
        self,
        user_id: str,
        amount: Decimal,
        window: TimeWindow = TimeWindow.DAILY,
    ) -> LimitsResult:
        """Compare the proposed amount against configured ceilings.

        Does not record anything; see `record` and `admit`.
        """
        with self._lock_for(user_id):
            return self._evaluate(user_id, amount, window, self.clock())

    def record(
        self,
        user_id: str,
        amount: Decimal,
        timestamp: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
    ) -> None:
        """Consume limit volume for a transaction confirmed as completed."""
        with self._lock_for(user_id):
            self.store.record(user_id, amount, as_utc(timestamp or self.clock()), transaction_id)

    def release(self, user_id: str, transaction_id: str) -> bool:
        """Give back volume recorded for a transaction that did not complete."""
        with self._lock_for(user_id):
            return self.store.release(user_id, transaction_id)

    def admit(
        self,
        user_id: str,
        amount: Decimal,
        window: TimeWindow = TimeWindow.DAILY,
        transaction_id: Optional[str] = None,
    ) -> LimitsResult:
        """Atomically check and, when within limits, record the amount.

        The per-user lock is held across both steps, so a concurrent caller
        always observes this transaction's volume.
        """
        with self._lock_for(user_id):
            now = self.clock()
            result = self._evaluate(user_id, amount, window, now)
            if result.within_limits and not result.degraded:
                try:
                    self.store.record(user_id, amount, now, transaction_id)
                except LimitsStoreUnavailableError as e:
                    self._report_failure(e)
            return result

    def _evaluate(self, user_id: str, amount: Decimal, window: TimeWindow, now: datetime) -> LimitsResult:
        config = self.config
        try:
            usage = self.store.read_window(user_id, window_start(window, now))
        except LimitsStoreUnavailableError as e:
            self._report_failure(e)
            return LimitsResult(
                within_limits=True,
                decision=Decision.ALLOW,
                window=window,
                amount_limit=config.daily_transaction_limit,
                amount_used=Decimal("0"),
                amount_remaining=config.daily_transaction_limit,
                transaction_limit=config.single_transaction_limit,
                transaction_count=0,
                transaction_count_limit=config.hourly_transaction_count,
                reasons=("limits store unavailable - limits not enforced",),
                degraded=True,
                timestamp=now,
            )

        reasons: List[str] = []
        if usage.total + amount > config.daily_transaction_limit:
            reasons.append(f"{window.value.lower()} transaction limit exceeded")
        if usage.count >= config.hourly_transaction_count:
            reasons.append("transaction count limit exceeded")
        if amount > config.single_transaction_limit:
            reasons.append("amount exceeds single transaction limit")

        within_limits = not reasons
        return LimitsResult(
            within_limits=within_limits,
            decision=Decision.ALLOW if within_limits else Decision.BLOCK,
            window=window,
            amount_limit=config.daily_transaction_limit,
            amount_used=usage.total,
            amount_remaining=config.daily_transaction_limit - usage.total,
            transaction_limit=config.single_transaction_limit,
            transaction_count=usage.count,
            transaction_count_limit=config.hourly_transaction_count,
            reasons=tuple(reasons),
            timestamp=now,
        )

    def _report_failure(self, error: LimitsStoreUnavailableError) -> None:
        logger.warning(
            f"Limits store unavailable, failing open: {error}",
            extra={"step": "limits_check", "fail_open": True},
        )
        if self.on_store_failure is not None:
            self.on_store_failure(error)


def limits_escalations(result: LimitsResult) -> List[Escalation]:
    """Translate a failed limits check into local-rule escalations"""
    if result.within_limits:
        return []
    return [Escalation(Decision.BLOCK, f"limits check failed: {reason}") for reason in result.reasons]
