"""Provider response normalizer - maps an untrusted payload to a RiskVerdict

The provider's schema is not under our control, so `normalize` is total: it
classifies the raw payload into one of a few shapes and every shape, including
"unrecognised", has an explicit arm. Nothing here raises on bad input.

Scores are categorical by mapped decision. Provider-native scores are ignored
whenever an action is present because the provider's scale is not stable.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Union

from risk_gateway.domain.models import Decision, EngineConfig, RiskVerdict, utc_now
from risk_gateway.domain.rules import new_check_id
from risk_gateway.utils.date_utils import from_epoch_millis

logger = logging.getLogger(__name__)

# Action fields in lookup order: provider-native first, then canonical
ACTION_FIELDS = ("recommendedAction", "action", "decision")
REASON_FIELDS = ("triggered", "reasons")
CHECK_ID_FIELDS = ("id", "checkId")

ACTION_MAP = {
    "ALLOW": Decision.ALLOW,
    "REVIEW": Decision.REVIEW,
    "BLOCK": Decision.BLOCK,
}

PROVIDER_SCORES = {
    Decision.ALLOW: 0,
    Decision.REVIEW: 75,
    Decision.BLOCK: 100,
}

UNAVAILABLE_REASON = "risk provider unavailable - defaulting to allow"
GENERIC_RULE_REASON = "Risk rule triggered"


@dataclass(frozen=True)
class ActionPayload:
    """Payload carrying a recognised action"""

    decision: Decision
    reasons: List[str]
    check_id: Optional[str]
    timestamp: Optional[datetime]


@dataclass(frozen=True)
class UnknownActionPayload:
    """Mapping payload whose action is missing or not one of the known tags"""

    raw_action: Any
    reasons: List[str]
    check_id: Optional[str]
    timestamp: Optional[datetime]


@dataclass(frozen=True)
class ScoreOnlyPayload:
    """Mapping payload with a numeric score but no action field at all"""

    score: float
    reasons: List[str]
    check_id: Optional[str]
    timestamp: Optional[datetime]


@dataclass(frozen=True)
class MalformedPayload:
    """Anything that is not a mapping"""

    detail: str


ProviderPayload = Union[ActionPayload, UnknownActionPayload, ScoreOnlyPayload, MalformedPayload]


def extract_reason(entry: Any) -> str:
    """Human-readable reason for one triggered-rule entry"""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        for key in ("description", "name"):
            value = entry.get(key)
            if isinstance(value, str) and value:
                return value
    return GENERIC_RULE_REASON


def _first_present(raw: dict, keys: tuple) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _extract_reasons(raw: dict) -> List[str]:
    entries = _first_present(raw, REASON_FIELDS)
    if not isinstance(entries, list):
        return []
    return [extract_reason(entry) for entry in entries]


def _extract_check_id(raw: dict) -> Optional[str]:
    value = _first_present(raw, CHECK_ID_FIELDS)
    if isinstance(value, str) and value:
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return str(value)
        except ValueError:  # exceeds the int-to-str digit limit
            return None
    return None


def _extract_timestamp(raw: dict) -> Optional[datetime]:
    value = raw.get("timestamp")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return from_epoch_millis(value)
    except (OverflowError, OSError, ValueError):
        return None


def _extract_score(raw: dict) -> Optional[float]:
    value = raw.get("riskScore")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        score = float(value)
    except OverflowError:
        return None
    if not math.isfinite(score):
        return None
    return score


def classify(raw: Any) -> ProviderPayload:
    """Sort a raw payload into exactly one ProviderPayload variant"""
    if not isinstance(raw, dict):
        return MalformedPayload(detail=f"expected an object, got {type(raw).__name__}")

    reasons = _extract_reasons(raw)
    check_id = _extract_check_id(raw)
    timestamp = _extract_timestamp(raw)
    raw_action = _first_present(raw, ACTION_FIELDS)

    if isinstance(raw_action, str) and raw_action in ACTION_MAP:
        return ActionPayload(ACTION_MAP[raw_action], reasons, check_id, timestamp)

    score = _extract_score(raw)
    if raw_action is None and score is not None:
        return ScoreOnlyPayload(score, reasons, check_id, timestamp)

    return UnknownActionPayload(raw_action, reasons, check_id, timestamp)


def decision_for_score(score: float, config: EngineConfig) -> Decision:
    """Threshold mapping for payloads that carry only a provider score"""
    if score >= config.block_threshold:
        return Decision.BLOCK
    if score >= config.review_threshold:
        return Decision.REVIEW
    return Decision.ALLOW


def fallback_verdict(reason: str = UNAVAILABLE_REASON) -> RiskVerdict:
    """Safe default when the provider gave no usable signal"""
    return RiskVerdict(
        decision=Decision.ALLOW,
        risk_score=0,
        reasons=(reason,),
        source_check_id=new_check_id("fallback"),
    )


def normalize(raw: Any, config: Optional[EngineConfig] = None) -> RiskVerdict:
    """Map a provider payload to the canonical verdict. Never raises."""
    payload = classify(raw)

    if isinstance(payload, MalformedPayload):
        logger.warning(
            f"Malformed provider payload: {payload.detail}",
            extra={"step": "provider_normalize", "fail_open": True},
        )
        return fallback_verdict()

    check_id = payload.check_id or new_check_id("check")
    timestamp = payload.timestamp or utc_now()

    if isinstance(payload, ActionPayload):
        decision = payload.decision
        reasons = payload.reasons
        score = PROVIDER_SCORES[decision]
    elif isinstance(payload, ScoreOnlyPayload):
        decision = decision_for_score(payload.score, config or EngineConfig())
        reasons = payload.reasons
        score = PROVIDER_SCORES[decision]
    else:
        if payload.raw_action is None:
            note = "provider response missing action - provider verdict unavailable, defaulting to allow"
        else:
            note = (
                f"unrecognized provider action {payload.raw_action!r} - "
                "provider verdict unavailable, defaulting to allow"
            )
        logger.warning(note, extra={"step": "provider_normalize", "fail_open": True})
        decision = Decision.ALLOW
        reasons = payload.reasons + [note]
        score = 0

    return RiskVerdict(
        decision=decision,
        risk_score=score,
        reasons=tuple(reasons),
        source_check_id=check_id,
        timestamp=timestamp,
    )
