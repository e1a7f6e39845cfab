"""POST /v1/transaction/report and /v1/transaction/feedback - post-transaction bookkeeping"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from risk_gateway.api.dependencies import get_provider_client, get_request_id, get_risk_engine
from risk_gateway.api.v1.schemas import (
    FeedbackRequest,
    FeedbackResponse,
    TransactionReportRequest,
    TransactionReportResponse,
)
from risk_gateway.domain.engine import RiskEngine
from risk_gateway.domain.exceptions import ProviderAPIError
from risk_gateway.infrastructure.clients.provider import ProviderClient

router = APIRouter()


@router.post("/transaction/report", response_model=TransactionReportResponse)
async def report_transaction(
    request_body: TransactionReportRequest,
    request: Request,
    engine: RiskEngine = Depends(get_risk_engine),
    provider_client: ProviderClient = Depends(get_provider_client),
):
    """
    Report the final outcome of a checked transaction.

    Only COMPLETED transactions consume limits, so a transaction that is
    checked but never settles does not count against the user. When limits
    are reserved at check time, FAILED and CANCELLED reports release them. Local
    bookkeeping runs before the provider is notified; a provider failure
    is returned as 502 without undoing it.
    """
    request_id = get_request_id(request)

    limits_recorded = False
    if request_body.final_status == "COMPLETED":
        if request_body.actual_amount is None:
            logging.warning(
                "Completed report without actual_amount, limits not updated",
                extra={"request_id": request_id, "transaction_id": request_body.transaction_id},
            )
        else:
            limits_recorded = engine.record_completed(
                request_body.transaction_id,
                request_body.user_id,
                request_body.actual_amount,
                request_body.completed_at,
            )
    elif engine.release_transaction(request_body.transaction_id, request_body.user_id):
        logging.info(
            "Released reserved limits",
            extra={"request_id": request_id, "transaction_id": request_body.transaction_id},
        )

    report = request_body.model_dump(mode="json", by_alias=True, exclude_none=True)
    try:
        result = await provider_client.report_transaction(report)
    except ProviderAPIError as e:
        logging.error(f"Transaction report failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=502, detail="Risk provider unavailable")

    return TransactionReportResponse(
        status=result["status"],
        report_id=result["report_id"],
        limits_recorded=limits_recorded,
    )


@router.post("/transaction/feedback", response_model=FeedbackResponse)
def submit_feedback(request_body: FeedbackRequest, request: Request):
    """Record analyst feedback on whether a reviewed transaction was fraud"""
    logging.info(
        "Fraud feedback received",
        extra={
            "request_id": get_request_id(request),
            "transaction_id": request_body.transaction_id,
            "check_id": request_body.check_id,
            "actual_fraud": request_body.actual_fraud,
            "reviewer_notes": request_body.reviewer_notes,
        },
    )
    return FeedbackResponse(
        feedback_id=f"feedback_{uuid.uuid4().hex}",
        received_at=datetime.now(timezone.utc),
    )
