from datetime import date

import pytest

from scriptroom.budget import BudgetLedger, cost_model_from_config, per_second_cost, zero_cost


class _Clock:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


def test_can_afford_within_caps():
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=50.0)
    decision = ledger.can_afford(4.99)
    assert decision.ok is True
    assert decision.reason is None


def test_daily_cap_reason():
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=50.0)
    ledger.record(4.0)
    decision = ledger.can_afford(1.5)
    assert decision.ok is False
    assert decision.reason == "Daily budget limit reached ($5.00). Used: $4.00"


def test_monthly_cap_reason():
    clock = _Clock(date(2024, 3, 1))
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=6.0, today=clock)
    ledger.record(4.0)
    clock.day = date(2024, 3, 2)
    decision = ledger.can_afford(3.0)
    assert decision.ok is False
    assert decision.reason.startswith("Monthly budget limit reached ($6.00)")


def test_check_then_record_never_exceeds_caps():
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=50.0)
    for _ in range(20):
        if ledger.can_afford(1.25).ok:
            ledger.record(1.25)
    assert ledger.daily_used <= ledger.daily_cap
    assert ledger.monthly_used <= ledger.monthly_cap
    assert ledger.daily_used == pytest.approx(5.0)


def test_day_rollover_resets_daily_only():
    clock = _Clock(date(2024, 3, 1))
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=50.0, today=clock)
    ledger.record(3.0)
    clock.day = date(2024, 3, 2)
    status = ledger.status()
    assert status["daily"]["used"] == 0.0
    assert status["monthly"]["used"] == 3.0
    assert ledger.last_reset_date == date(2024, 3, 2)


def test_status_is_idempotent_between_records():
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=50.0)
    ledger.record(1.0)
    assert ledger.status() == ledger.status()
    assert ledger.status()["daily"] == {"used": 1.0, "limit": 5.0, "remaining": 4.0, "percentage": 20.0}


def test_reset_monthly():
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=50.0)
    ledger.record(2.0)
    ledger.reset_monthly()
    assert ledger.monthly_used == 0.0
    assert ledger.daily_used == 2.0


def test_zero_cost_always_affordable_even_when_exhausted():
    ledger = BudgetLedger(daily_cap=1.0, monthly_cap=1.0)
    ledger.record(1.0)
    assert ledger.remaining_daily() == 0.0
    assert ledger.can_afford(zero_cost(10)).ok is True


def test_rejects_non_positive_caps():
    with pytest.raises(ValueError):
        BudgetLedger(daily_cap=0, monthly_cap=50.0)


def test_cost_models():
    assert zero_cost(5) == 0.0
    assert per_second_cost(0.25)(10) == pytest.approx(2.5)
    assert cost_model_from_config(0.0) is zero_cost
    assert cost_model_from_config(0.1)(5) == pytest.approx(0.5)
    with pytest.raises(ValueError):
        per_second_cost(-1)
