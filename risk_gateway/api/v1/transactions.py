"""POST /v1/transaction/check and /v1/limits/check - pre-transaction risk checks"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from risk_gateway.api.dependencies import get_request_id, get_risk_engine
from risk_gateway.api.v1.schemas import (
    LimitsCheckRequest,
    LimitsSchema,
    TransactionCheckRequest,
    TransactionCheckResponse,
)
from risk_gateway.domain.engine import RiskEngine
from risk_gateway.domain.exceptions import InvariantViolationError
from risk_gateway.infrastructure.database.repositories import DecisionRepository
from risk_gateway.infrastructure.database.session import get_db
from risk_gateway.infrastructure.observability.logging import log_decision
from risk_gateway.infrastructure.observability.metrics import record_decision

router = APIRouter()


@router.post("/transaction/check", response_model=TransactionCheckResponse)
async def check_transaction(
    request_body: TransactionCheckRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: RiskEngine = Depends(get_risk_engine),
):
    """
    Produce an ALLOW/REVIEW/BLOCK decision for a proposed transaction.

    Flow:
    1. Local rules and daily limits
    2. Risk provider check (skipped on a local BLOCK)
    3. Combine verdicts, persist the audit row, return the decision

    Provider and limits-store outages degrade to ALLOW with a reason; they
    never fail the request.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    transaction = request_body.to_domain()

    try:
        final = await engine.evaluate_transaction(transaction)
    except InvariantViolationError as e:
        logging.error(f"Invariant violation: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if engine.should_audit(final):
        try:
            DecisionRepository(db).create_decision(transaction, final)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logging.error(f"Failed to persist decision audit: {e}", extra={"request_id": request_id})

    duration_ms = (time.time() - start_time) * 1000
    record_decision(final)
    log_decision(request_id, transaction.transaction_id, transaction.user_id, final, duration_ms)

    return TransactionCheckResponse.from_domain(final)


@router.post("/limits/check", response_model=LimitsSchema)
def check_limits(
    request_body: LimitsCheckRequest,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Preview whether an amount fits the user's limits without consuming them"""
    result = engine.limits.check_and_preview(
        request_body.user_id,
        request_body.amount,
        request_body.time_window,
    )
    return LimitsSchema.from_domain(result)
