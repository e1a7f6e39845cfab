"""GET /v1/decision/history - Fetch user's decision history"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from risk_gateway.api.v1.schemas import HistoryItem, HistoryResponse
from risk_gateway.infrastructure.database.repositories import DecisionRepository
from risk_gateway.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/decision/history", response_model=HistoryResponse)
def get_decision_history(
    user_id: str = Query(..., min_length=1, description="User identifier"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Retrieve recent risk decisions for a user.

    Returns:
        Audited decisions, newest first, with both contributing check ids
    """
    decision_repo = DecisionRepository(db)
    decisions = decision_repo.get_decisions_by_user(user_id, limit=limit)

    history_items = [
        HistoryItem(
            transaction_id=d.transaction_id,
            decision=d.decision,
            risk_score=d.risk_score,
            risk_level=d.risk_level,
            reasons=d.reasons,
            internal_check_id=d.local_check_id,
            check_id=d.provider_check_id,
            short_circuited=d.short_circuited,
            created_at=d.created_at.isoformat(),
        )
        for d in decisions
    ]

    return HistoryResponse(user_id=user_id, decisions=history_items)
