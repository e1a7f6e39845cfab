"""In-memory limits store

Entries are kept per user in insertion order. Expired entries are only
filtered out on read; `purge_expired` is the optional cleanup policy that
physically drops them. All data is lost on restart.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from risk_gateway.domain.models import WindowUsage
from risk_gateway.utils.date_utils import as_utc


@dataclass(frozen=True)
class LedgerEntry:
    amount: Decimal
    timestamp: datetime
    transaction_id: Optional[str] = None


class InMemoryLimitsStore:
    """Dict-backed store keyed by user id. Timestamps are held as aware UTC."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[LedgerEntry]] = {}
        # Protects the dict itself; per-user consistency is the tracker's job
        self._guard = threading.Lock()

    def read_window(self, user_id: str, since: datetime) -> WindowUsage:
        since = as_utc(since)
        with self._guard:
            entries = [e for e in self._entries.get(user_id, []) if e.timestamp >= since]
        return WindowUsage(total=sum((e.amount for e in entries), Decimal("0")), count=len(entries))

    def record(
        self,
        user_id: str,
        amount: Decimal,
        timestamp: datetime,
        transaction_id: Optional[str] = None,
    ) -> None:
        """Add an entry; an existing entry for the same transaction is replaced"""
        entry = LedgerEntry(amount, as_utc(timestamp), transaction_id)
        with self._guard:
            entries = self._entries.setdefault(user_id, [])
            if transaction_id is not None:
                entries[:] = [e for e in entries if e.transaction_id != transaction_id]
            entries.append(entry)

    def release(self, user_id: str, transaction_id: str) -> bool:
        with self._guard:
            entries = self._entries.get(user_id, [])
            kept = [e for e in entries if e.transaction_id != transaction_id]
            if len(kept) == len(entries):
                return False
            self._entries[user_id] = kept
            return True

    def purge_expired(self, before: datetime) -> int:
        """Drop entries older than `before`; returns how many were removed"""
        before = as_utc(before)
        removed = 0
        with self._guard:
            for user_id in list(self._entries):
                entries = self._entries[user_id]
                kept = [e for e in entries if e.timestamp >= before]
                removed += len(entries) - len(kept)
                if kept:
                    self._entries[user_id] = kept
                else:
                    del self._entries[user_id]
        return removed
