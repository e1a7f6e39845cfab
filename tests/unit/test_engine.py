"""Unit tests for the risk engine orchestration"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from risk_gateway.domain.engine import RiskEngine
from risk_gateway.domain.exceptions import LimitsStoreUnavailableError, ProviderAPIError
from risk_gateway.domain.limits import LimitsTracker
from risk_gateway.domain.models import Decision, EngineConfig, Provider


async def test_clean_transaction_is_allowed(risk_engine, provider, make_request):
    final = await risk_engine.evaluate_transaction(make_request())

    assert final.decision == Decision.ALLOW
    assert final.risk_score == 25
    assert final.provider_check_id == "orca_check_1"
    assert final.local_check_id.startswith("internal_")
    provider.check_transaction.assert_awaited_once()


async def test_provider_review_escalates(risk_engine, provider, make_request):
    provider.check_transaction.return_value = {
        "id": "orca_2",
        "recommendedAction": "REVIEW",
        "triggered": [{"description": "new device"}],
    }

    final = await risk_engine.evaluate_transaction(make_request(provider=Provider.VOUCHER, amount=Decimal("15000")))

    assert final.decision == Decision.REVIEW
    assert final.risk_score == 75
    assert final.reasons == ("high-value voucher purchase requires review", "new device")


async def test_local_block_short_circuits_provider(risk_engine, provider, make_request):
    final = await risk_engine.evaluate_transaction(make_request(amount=Decimal("60000")))

    assert final.decision == Decision.BLOCK
    assert final.risk_score == 100
    assert final.short_circuited is True
    provider.check_transaction.assert_not_awaited()


async def test_short_circuit_can_be_disabled(tracker, provider, make_request):
    engine = RiskEngine(EngineConfig(short_circuit_on_block=False), provider, tracker)
    provider.check_transaction.return_value = {"id": "orca_3", "recommendedAction": "ALLOW", "triggered": ["ok"]}

    final = await engine.evaluate_transaction(make_request(amount=Decimal("60000")))

    assert (final.decision, final.risk_score) == (Decision.BLOCK, 100)
    assert final.short_circuited is False
    assert final.provider_check_id == "orca_3"
    provider.check_transaction.assert_awaited_once()


async def test_provider_error_fails_open(risk_engine, provider, make_request):
    provider.check_transaction.side_effect = ProviderAPIError("Provider API error: 503")
    failures = []
    risk_engine.on_provider_failure = failures.append

    final = await risk_engine.evaluate_transaction(make_request())

    assert final.decision == Decision.ALLOW
    assert any("unavailable" in r for r in final.reasons)
    assert final.provider_check_id.startswith("fallback_")
    assert failures == ["error"]


async def test_provider_timeout_fails_open(tracker, provider, make_request):
    async def hang(_request):
        await asyncio.sleep(5)

    provider.check_transaction.side_effect = hang
    engine = RiskEngine(EngineConfig(provider_timeout_seconds=0.05), provider, tracker)

    final = await engine.evaluate_transaction(make_request())

    assert final.decision == Decision.ALLOW
    assert any("unavailable" in r for r in final.reasons)


async def test_malformed_provider_payload_fails_open(risk_engine, provider, make_request):
    provider.check_transaction.return_value = "<html>bad gateway</html>"

    final = await risk_engine.evaluate_transaction(make_request())

    assert final.decision == Decision.ALLOW
    assert any("unavailable" in r for r in final.reasons)


async def test_fail_open_keeps_local_review(risk_engine, provider, make_request):
    provider.check_transaction.side_effect = ProviderAPIError("down")

    final = await risk_engine.evaluate_transaction(make_request(provider=Provider.VOUCHER, amount=Decimal("20000")))

    assert final.decision == Decision.REVIEW
    assert final.reasons[0] == "high-value voucher purchase requires review"


async def test_exhausted_daily_limit_blocks_without_provider(risk_engine, tracker, provider, make_request):
    tracker.record("user_1", Decimal("95000"))

    final = await risk_engine.evaluate_transaction(make_request(amount=Decimal("10000")))

    assert final.decision == Decision.BLOCK
    assert "limits check failed: daily transaction limit exceeded" in final.reasons
    assert final.limits.within_limits is False
    provider.check_transaction.assert_not_awaited()


async def test_record_completed_consumes_limits(risk_engine, tracker):
    assert risk_engine.record_completed("txn_9", "user_1", Decimal("70000")) is True
    assert tracker.check_and_preview("user_1", Decimal("40000")).within_limits is False


async def test_only_completed_transactions_consume_limits(risk_engine, make_request):
    """Checking a transaction never records it"""
    for i in range(5):
        await risk_engine.evaluate_transaction(make_request(transaction_id=f"txn_{i}", amount=Decimal("40000")))

    final = await risk_engine.evaluate_transaction(make_request(amount=Decimal("40000")))
    assert final.limits.amount_used == Decimal("0")


def test_record_completed_fails_open(risk_engine, limits_store, monkeypatch):
    def broken(*args, **kwargs):
        raise LimitsStoreUnavailableError("disk full")

    monkeypatch.setattr(limits_store, "record", broken)

    assert risk_engine.record_completed("txn_1", "user_1", Decimal("5")) is False


@pytest.mark.parametrize(
    "audit_short_circuited, short_circuited, expected",
    [(True, True, True), (False, True, False), (False, False, True)],
)
async def test_should_audit(tracker, provider, make_request, audit_short_circuited, short_circuited, expected):
    engine = RiskEngine(EngineConfig(audit_short_circuited=audit_short_circuited), provider, tracker)
    amount = Decimal("60000") if short_circuited else Decimal("10")

    final = await engine.evaluate_transaction(make_request(amount=amount))

    assert final.short_circuited is short_circuited
    assert engine.should_audit(final) is expected


async def test_limits_state_is_per_day(risk_engine, tracker, clock, make_request):
    tracker.record("user_1", Decimal("95000"), clock() - timedelta(days=1))

    final = await risk_engine.evaluate_transaction(make_request(amount=Decimal("10000")))

    assert final.decision == Decision.ALLOW


async def test_unrepresentable_provider_score_fails_open(risk_engine, provider, make_request):
    provider.check_transaction.return_value = {"id": "orca_4", "riskScore": 10**400}

    final = await risk_engine.evaluate_transaction(make_request())

    assert final.decision == Decision.ALLOW
    assert any("unavailable" in r for r in final.reasons)


@pytest.fixture
def reserving_engine(limits_store, clock, provider) -> RiskEngine:
    config = EngineConfig(
        single_transaction_limit=Decimal("75000"),
        daily_transaction_limit=Decimal("100000"),
        reserve_limits=True,
    )

    async def slow_allow(request):
        # Both evaluations preview their limits before either gets past the provider
        await asyncio.sleep(0.01)
        return {"id": f"orca_{request.transaction_id}", "recommendedAction": "ALLOW"}

    provider.check_transaction.side_effect = slow_allow
    return RiskEngine(config, provider, LimitsTracker(limits_store, config, clock=clock))


async def test_concurrent_evaluations_cannot_both_take_the_headroom(reserving_engine, make_request):
    """Two concurrent 60000 transactions against a 100000 daily ceiling: only one is allowed"""
    first, second = await asyncio.gather(
        reserving_engine.evaluate_transaction(make_request(transaction_id="txn_a", amount=Decimal("60000"))),
        reserving_engine.evaluate_transaction(make_request(transaction_id="txn_b", amount=Decimal("60000"))),
    )

    decisions = sorted([first.decision, second.decision], key=lambda d: d.rank)
    assert decisions == [Decision.ALLOW, Decision.BLOCK]
    blocked = first if first.decision == Decision.BLOCK else second
    assert "limits check failed: daily transaction limit exceeded" in blocked.reasons
    assert blocked.limits.amount_used == Decimal("60000")
    assert reserving_engine.limits.check_and_preview("user_1", Decimal("1")).amount_used == Decimal("60000")


async def test_completion_replaces_reservation(reserving_engine, make_request):
    final = await reserving_engine.evaluate_transaction(make_request(transaction_id="txn_a", amount=Decimal("60000")))
    assert final.decision == Decision.ALLOW

    assert reserving_engine.record_completed("txn_a", "user_1", Decimal("58000")) is True

    usage = reserving_engine.limits.check_and_preview("user_1", Decimal("1"))
    assert usage.amount_used == Decimal("58000")
    assert usage.transaction_count == 1


async def test_release_returns_reserved_volume(reserving_engine, make_request):
    await reserving_engine.evaluate_transaction(make_request(transaction_id="txn_a", amount=Decimal("60000")))

    assert reserving_engine.release_transaction("txn_a", "user_1") is True
    assert reserving_engine.limits.check_and_preview("user_1", Decimal("1")).amount_used == Decimal("0")


async def test_blocked_decisions_reserve_nothing(reserving_engine, provider, make_request):
    provider.check_transaction.side_effect = None
    provider.check_transaction.return_value = {"id": "orca_5", "recommendedAction": "BLOCK"}

    final = await reserving_engine.evaluate_transaction(make_request(amount=Decimal("60000")))

    assert final.decision == Decision.BLOCK
    assert reserving_engine.limits.check_and_preview("user_1", Decimal("1")).amount_used == Decimal("0")


def test_release_is_noop_without_reservations(risk_engine, tracker):
    tracker.record("user_1", Decimal("500"), transaction_id="txn_1")

    assert risk_engine.release_transaction("txn_1", "user_1") is False
    assert tracker.check_and_preview("user_1", Decimal("1")).amount_used == Decimal("500")
