"""Mock risk provider for local runs and end-to-end tests

Scoring is keyed off the submitted amount and user id so tests can pick
the response shape they need:
- user id starting with "down_"      -> HTTP 503
- user id starting with "garbage_"   -> non-JSON body
- user id starting with "drift_"     -> unknown action tag
- amount >= 40000                    -> BLOCK
- amount >= 20000                    -> REVIEW
- otherwise                          -> ALLOW
"""

import time
import uuid
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

app = FastAPI(title="Mock Risk Provider", version="1.0.0")

RULES = [
    {"id": "rule_velocity", "name": "Velocity", "description": "Too many transactions in a short window", "status": "ACTIVE"},
    {"id": "rule_amount", "name": "LargeAmount", "description": "Unusually large transaction amount", "status": "ACTIVE"},
    {"id": "rule_geo", "name": "GeoMismatch", "status": "INACTIVE"},
]

reports: Dict[str, Dict[str, Any]] = {}


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/v1/transaction")
async def transaction(request: Request):
    body = await request.json()

    if body.get("type") == "final_report":
        report_id = f"report_{uuid.uuid4().hex[:12]}"
        reports[report_id] = body
        return {"reportId": report_id}

    user_id = str(body.get("userId", ""))
    if user_id.startswith("down_"):
        raise HTTPException(status_code=503, detail="provider maintenance")
    if user_id.startswith("garbage_"):
        return PlainTextResponse("<html>gateway error</html>")

    amount = float(body.get("amount", 0))
    triggered: list = []
    if user_id.startswith("drift_"):
        action = "ESCALATE"
    elif amount >= 40000:
        action = "BLOCK"
        triggered = [RULES[1], "Amount far above user baseline"]
    elif amount >= 20000:
        action = "REVIEW"
        triggered = [{"name": "Velocity"}]
    else:
        action = "ALLOW"

    return {
        "id": f"orca_{uuid.uuid4().hex[:12]}",
        "recommendedAction": action,
        "riskLevel": {"ALLOW": "LOW", "REVIEW": "MEDIUM", "BLOCK": "HIGH"}.get(action, "LOW"),
        "riskScore": 42,  # ignored by the gateway
        "triggered": triggered,
        "timestamp": int(time.time() * 1000),
    }


@app.get("/v1/rules")
def rules(status: str | None = None, page: int = 1, limit: int = 20):
    selected = [r for r in RULES if status is None or r["status"] == status]
    start = (page - 1) * limit
    return {"rules": selected[start:start + limit], "total": len(selected)}
