"""SQLAlchemy ORM models for the limits ledger and decision audit trail"""

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class LimitsLedgerEntry(Base):
    """Completed transaction volume consumed against a user's limits"""

    __tablename__ = "limits_ledger"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    transaction_id = Column(Text, nullable=True)
    amount = Column(Numeric(18, 2), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False, index=True)


class RiskDecisionRecord(Base):
    """Audit row for one evaluated transaction"""

    __tablename__ = "risk_decision"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id = Column(Text, nullable=False, index=True)
    user_id = Column(Text, nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    currency_code = Column(Text, nullable=False)
    decision = Column(Text, nullable=False)
    risk_score = Column(Integer, nullable=False)
    risk_level = Column(Text, nullable=False)
    reasons = Column(JSON, nullable=False)
    local_check_id = Column(Text, nullable=False)
    provider_check_id = Column(Text, nullable=True)
    short_circuited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
