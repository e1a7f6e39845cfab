"""Risk provider HTTP client for transaction checks, reports and rules"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from risk_gateway.config import settings
from risk_gateway.domain.exceptions import ProviderAPIError
from risk_gateway.domain.models import TransactionRequest, utc_now
from risk_gateway.infrastructure.observability.metrics import provider_latency_histogram
from risk_gateway.utils.date_utils import to_epoch_millis

logger = logging.getLogger(__name__)


def to_provider_payload(request: TransactionRequest) -> Dict[str, Any]:
    """Map an internal transaction to the provider's wire format"""
    payload: Dict[str, Any] = {
        "id": request.transaction_id,
        "userId": request.user_id,
        "status": "PENDING",
        "amount": float(request.amount),
        "currencyCode": request.currency_code,
        "timestamp": to_epoch_millis(utc_now()),
        "direction": request.direction.value,
        "provider": request.provider.value,
        "paymentMethod": request.payment_method.value,
    }
    if request.action_type:
        payload["actionType"] = request.action_type
    if request.metadata:
        payload["metadata"] = request.metadata
    return payload


class ProviderClient:
    """Client for the external risk-scoring API"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        account_id: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.provider_api_url
        self.api_key = api_key if api_key is not None else settings.provider_api_key
        self.account_id = account_id if account_id is not None else settings.provider_account_id
        self.timeout = timeout or settings.provider_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.account_id:
            headers["X-Account-ID"] = self.account_id
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Issue one request and return the decoded JSON body.

        Raises:
            ProviderAPIError: On timeout, transport failure, HTTP errors, or a non-JSON body
        """
        start = time.perf_counter()
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise ProviderAPIError(f"Provider API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ProviderAPIError(f"Provider API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ProviderAPIError(f"Provider API unreachable: {e}") from e
            except ValueError as e:
                raise ProviderAPIError(f"Unparseable provider response: {e}") from e
            finally:
                provider_latency_histogram.labels(path=path).observe(time.perf_counter() - start)

    async def check_transaction(self, request: TransactionRequest) -> Any:
        """Submit a pending transaction for scoring; returns the raw response body"""
        return await self._send("POST", "/v1/transaction", json=to_provider_payload(request))

    async def report_transaction(self, report: Dict[str, Any]) -> Dict[str, Any]:
        """Forward a final transaction outcome to the provider"""
        data = await self._send("POST", "/v1/transaction", json={**report, "type": "final_report"})
        report_id = data.get("reportId") if isinstance(data, dict) else None
        return {
            "status": "SUCCESS",
            "report_id": report_id or f"report_{to_epoch_millis(utc_now())}",
        }

    async def get_rules(
        self,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """List provider rules; an empty listing is returned when the provider fails"""
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        try:
            data = await self._send("GET", "/v1/rules", params=params)
        except ProviderAPIError as e:
            logger.error(f"Failed to get rules from provider: {e}", extra={"step": "get_rules"})
            data = {}
        if not isinstance(data, dict):
            data = {}

        rules = data.get("rules")
        total = data.get("total")
        return {
            "rules": rules if isinstance(rules, list) else [],
            "total": total if isinstance(total, int) else 0,
            "page": page,
            "limit": limit,
        }

    async def ping(self) -> bool:
        """True when the provider answers the rules endpoint"""
        try:
            await self._send("GET", "/v1/rules", params={"limit": 1})
        except ProviderAPIError:
            return False
        return True
