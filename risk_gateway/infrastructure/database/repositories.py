"""Data access layer for limits ledger and decision audit entities"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from risk_gateway.domain.exceptions import LimitsStoreUnavailableError
from risk_gateway.domain.models import FinalDecision, TransactionRequest, WindowUsage
from risk_gateway.infrastructure.database.models import LimitsLedgerEntry, RiskDecisionRecord
from risk_gateway.utils.date_utils import as_utc


class SqlLimitsStore:
    """LimitsStore backed by the limits_ledger table

    Each call opens its own short session so the store can be shared by a
    long-lived tracker. Any database error surfaces as
    LimitsStoreUnavailableError, which the tracker fails open on.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def read_window(self, user_id: str, since: datetime) -> WindowUsage:
        query = select(
            func.coalesce(func.sum(LimitsLedgerEntry.amount), 0),
            func.count(LimitsLedgerEntry.id),
        ).where(
            LimitsLedgerEntry.user_id == user_id,
            LimitsLedgerEntry.recorded_at >= as_utc(since),
        )
        try:
            with self.session_factory() as db:
                total, count = db.execute(query).one()
        except SQLAlchemyError as e:
            raise LimitsStoreUnavailableError(f"Failed to read limits window: {e}") from e
        return WindowUsage(total=Decimal(str(total)), count=int(count))

    def record(
        self,
        user_id: str,
        amount: Decimal,
        timestamp: datetime,
        transaction_id: Optional[str] = None,
    ) -> None:
        """Add an entry; an existing entry for the same transaction is replaced"""
        try:
            with self.session_factory() as db:
                if transaction_id is not None:
                    db.execute(self._delete_entries(user_id, transaction_id))
                db.add(
                    LimitsLedgerEntry(
                        user_id=user_id,
                        transaction_id=transaction_id,
                        amount=amount,
                        recorded_at=as_utc(timestamp),
                    )
                )
                db.commit()
        except SQLAlchemyError as e:
            raise LimitsStoreUnavailableError(f"Failed to record limits entry: {e}") from e

    def release(self, user_id: str, transaction_id: str) -> bool:
        try:
            with self.session_factory() as db:
                removed = db.execute(self._delete_entries(user_id, transaction_id)).rowcount
                db.commit()
        except SQLAlchemyError as e:
            raise LimitsStoreUnavailableError(f"Failed to release limits entry: {e}") from e
        return bool(removed)

    @staticmethod
    def _delete_entries(user_id: str, transaction_id: str):
        return delete(LimitsLedgerEntry).where(
            LimitsLedgerEntry.user_id == user_id,
            LimitsLedgerEntry.transaction_id == transaction_id,
        )


class DecisionRepository:
    """Repository for risk decision audit rows"""

    def __init__(self, db: Session):
        self.db = db

    def create_decision(self, request: TransactionRequest, final: FinalDecision) -> RiskDecisionRecord:
        """Persist a final decision with both contributing check ids"""
        record = RiskDecisionRecord(
            transaction_id=request.transaction_id,
            user_id=request.user_id,
            amount=request.amount,
            currency_code=request.currency_code,
            decision=final.decision.value,
            risk_score=final.risk_score,
            risk_level=final.risk_level.value,
            reasons=list(final.reasons),
            local_check_id=final.local_check_id,
            provider_check_id=final.provider_check_id,
            short_circuited=final.short_circuited,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_decisions_by_user(self, user_id: str, limit: int = 10) -> List[RiskDecisionRecord]:
        """Fetch recent decisions for a user"""
        return (
            self.db.query(RiskDecisionRecord)
            .filter(RiskDecisionRecord.user_id == user_id)
            .order_by(RiskDecisionRecord.created_at.desc())
            .limit(limit)
            .all()
        )
