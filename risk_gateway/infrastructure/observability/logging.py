"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter

from risk_gateway.domain.models import FinalDecision

SERVICE_NAME = "risk-gateway"

# Per-request access lines from the HTTP client drown out decision logs
NOISY_LOGGERS = ("httpx", "httpcore")


class RiskJsonFormatter(JsonFormatter):
    """JSON formatter stamping every record with service and environment"""

    def __init__(self, *args: Any, environment: str = "development", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME
        log_record["environment"] = self.environment


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """Route the root logger to stdout as one JSON object per line"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        RiskJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", environment=environment)
    )
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_decision(
    request_id: str,
    transaction_id: str,
    user_id: str,
    final: FinalDecision,
    duration_ms: float,
) -> None:
    """One line per decision: outcome, provenance and latency"""
    logging.info(
        "Decision completed",
        extra={
            "request_id": request_id,
            "transaction_id": transaction_id,
            "user_id": user_id,
            "step": "decision_complete",
            "decision": final.decision.value,
            "risk_score": final.risk_score,
            "risk_level": final.risk_level.value,
            "reason_count": len(final.reasons),
            "local_check_id": final.local_check_id,
            "provider_check_id": final.provider_check_id,
            "short_circuited": final.short_circuited,
            "limits_degraded": bool(final.limits and final.limits.degraded),
            "duration_ms": round(duration_ms, 2),
        },
    )
