"""GET /v1/rules - Proxy the risk provider's rule listing"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from risk_gateway.api.dependencies import get_provider_client
from risk_gateway.api.v1.schemas import RulesResponse
from risk_gateway.infrastructure.clients.provider import ProviderClient

router = APIRouter()


@router.get("/rules", response_model=RulesResponse)
async def list_rules(
    status: Optional[str] = Query(None, description="Filter by rule status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    provider_client: ProviderClient = Depends(get_provider_client),
):
    """List provider rules; empty when the provider is unreachable"""
    return await provider_client.get_rules(status=status, page=page, limit=limit)
