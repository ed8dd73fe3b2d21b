from conftest import FIXED_NOW, make_definition, utc

from app.schemas.benefit import BenefitUserState, PeriodUserState
from app.schemas.transaction import StoredTransaction
from app.services.benefit_stats import calculate_stats
from app.services.benefit_usage import build_benefit_usage_snapshot


def _tx(when, amount):
    return StoredTransaction(date=when, description="STATEMENT CREDIT", amount=amount)


def _snapshots(year=2025, now=FIXED_NOW, with_usage=True):
    quarterly = make_definition("quarterly", credit_amount=400)
    annual = make_definition("annual", reset_frequency="annual", credit_amount=200)
    used = make_definition("used", reset_frequency="annual", credit_amount=209)
    states = {
        "quarterly": BenefitUserState(periods={"q1": PeriodUserState(transactions=[_tx(utc(2025, 2, 1), 100)])}),
        "used": BenefitUserState(transactions=[_tx(utc(2025, 3, 1), 209)]),
    } if with_usage else {}
    return [
        build_benefit_usage_snapshot(definition, states.get(definition.id), year, now=now)
        for definition in (quarterly, annual, used)
    ]


def test_started_periods_land_in_exactly_one_bucket():
    stats = calculate_stats(_snapshots(), 2025, now=FIXED_NOW)

    assert stats.ytd_total_periods == 4
    assert stats.ytd_completed_periods == 2
    assert stats.pending_count == 2
    assert stats.missed_count == 0
    assert stats.ytd_total_periods == stats.ytd_completed_periods + stats.pending_count + stats.missed_count


def test_current_period_completions():
    stats = calculate_stats(_snapshots(), 2025, now=FIXED_NOW)

    assert stats.current_period_completed_count == 1


def test_totals_are_straight_sums():
    stats = calculate_stats(_snapshots(), 2025, now=FIXED_NOW)

    assert stats.total_benefits == 3
    assert stats.total_value == 809
    assert stats.used_value == 309


def test_past_year_unused_periods_are_missed():
    stats = calculate_stats(_snapshots(year=2024, with_usage=False), 2024, now=FIXED_NOW)

    assert stats.ytd_total_periods == 6
    assert stats.missed_count == 6
    assert stats.pending_count == 0


def test_benefits_not_yet_started_are_not_counted():
    now = utc(2024, 12, 1)
    definition = make_definition("annual", reset_frequency="annual", credit_amount=200)
    snapshot = build_benefit_usage_snapshot(definition, None, now=now)

    stats = calculate_stats([snapshot], now=now)

    assert stats.total_benefits == 1
    assert stats.ytd_total_periods == 0
    assert stats.pending_count == 0


def test_empty_input():
    stats = calculate_stats([], now=FIXED_NOW)

    assert stats.total_benefits == 0
    assert stats.total_value == 0


def test_usage_from_another_year_completes_a_past_year():
    stats = calculate_stats(_snapshots(year=2024), 2024, now=FIXED_NOW)

    assert stats.ytd_completed_periods == 5
    assert stats.missed_count == 1
