import os
import sys
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(Path(__file__).resolve().parent, "..")))

from aggregation import AggregationEngine
from currency import RateTable
from recurrence import RecurrencePeriod
from schedule_cache import MonthlyTotalCache
from subscriptions import UNCATEGORIZED, Subscription, Tag

VIDEO = Tag(name="Video", id="video")
MUSIC = Tag(name="Music", id="music")


def _sub(sub_id, price, period=RecurrencePeriod.MONTHLY, currency="USD", tags=(), active=True,
         anchor=date(2024, 1, 15)):
    return Subscription(
        id=sub_id,
        name=sub_id.title(),
        price=Decimal(price),
        currency_code=currency,
        rule=period,
        anchor_date=anchor,
        active=active,
        tags=tags,
    )


def test_quarterly_monthly_equivalent():
    engine = AggregationEngine(currency="USD")
    sub = _sub("insurance", "300", RecurrencePeriod.QUARTERLY)
    assert engine.monthly_equivalent(sub) == Decimal("100")


def test_monthly_equivalent_divisors():
    engine = AggregationEngine()
    assert engine.monthly_equivalent(_sub("a", "60", RecurrencePeriod.SEMIANNUALLY)) == Decimal("10")
    assert engine.monthly_equivalent(_sub("b", "120", RecurrencePeriod.ANNUALLY)) == Decimal("10")
    for period in (
        RecurrencePeriod.SEMIMONTHLY,
        RecurrencePeriod.BIMONTHLY,
        RecurrencePeriod.BIENNIALLY,
        RecurrencePeriod.CUSTOM,
    ):
        assert engine.monthly_equivalent(_sub("c", "48", period)) == Decimal("48")


def test_yearly_equivalent():
    engine = AggregationEngine()
    assert engine.yearly_equivalent(_sub("a", "5", RecurrencePeriod.SEMIMONTHLY)) == Decimal("120")
    assert engine.yearly_equivalent(_sub("b", "200", RecurrencePeriod.BIENNIALLY)) == Decimal("100")
    assert engine.yearly_equivalent(_sub("c", "9.99")) == Decimal("119.88")


def test_annual_figure_stays_exact():
    engine = AggregationEngine()
    monthly = engine.monthly_equivalent(_sub("a", "100", RecurrencePeriod.ANNUALLY))
    assert isinstance(monthly, Decimal)
    assert (monthly * 12).quantize(Decimal("0.01")) == Decimal("100.00")


def test_conversion_and_fallback():
    rates = RateTable({"EUR": "0.5", "TWD": "30"})
    engine = AggregationEngine(rates, currency="USD")
    assert engine.converted_price(_sub("eu", "10", currency="EUR")) == Decimal("20")
    # No GBP rate: the original amount is used unchanged.
    assert engine.converted_price(_sub("uk", "7", currency="GBP")) == Decimal("7")
    # A zero display-currency rate falls back the same way.
    zero_target = AggregationEngine(RateTable({"EUR": "0"}), currency="EUR")
    assert zero_target.converted_price(_sub("us", "10")) == Decimal("10")


def test_tag_breakdown_percentages():
    engine = AggregationEngine()
    subs = [
        _sub("video", "12", tags=(VIDEO,)),
        _sub("music", "6", tags=(MUSIC,)),
        _sub("misc", "2"),
    ]
    breakdown = engine.tag_breakdown(subs)
    assert [item.tag for item in breakdown] == [VIDEO, MUSIC, UNCATEGORIZED]
    assert [item.percentage for item in breakdown] == [Decimal("60"), Decimal("30"), Decimal("10")]
    assert sum(item.total_monthly_cost for item in breakdown) == Decimal("20")


def test_multi_tag_subscription_counts_fully_in_each_tag():
    engine = AggregationEngine()
    bundle = _sub("bundle", "10", tags=(VIDEO, MUSIC))
    other = _sub("other", "5", tags=(VIDEO,))
    breakdown = {item.tag: item for item in engine.tag_breakdown([bundle, other])}
    assert breakdown[VIDEO].total_monthly_cost == Decimal("15")
    assert breakdown[MUSIC].total_monthly_cost == Decimal("10")
    total = sum(item.percentage for item in breakdown.values())
    assert abs(total - Decimal("100")) < Decimal("0.000001")


def test_tag_breakdown_empty_when_nothing_active():
    engine = AggregationEngine()
    assert engine.tag_breakdown([_sub("off", "9", active=False)]) == []
    zero = engine.tag_breakdown([_sub("free", "0")])
    assert [item.percentage for item in zero] == [Decimal("0")]


def test_total_for_month_counts_monthly_only():
    engine = AggregationEngine()
    subs = [
        _sub("a", "10"),
        _sub("b", "5.50"),
        _sub("c", "300", RecurrencePeriod.QUARTERLY),
        _sub("d", "99", active=False),
        _sub("later", "7", anchor=date(2024, 6, 1)),
    ]
    assert engine.total_for_month(subs, 2024, 3) == Decimal("15.50")
    assert engine.total_for_month(subs, 2024, 6) == Decimal("22.50")


def test_total_for_month_uses_cache():
    clock = [datetime(2024, 3, 1)]
    calls = []

    def convert(amount, from_code, to_code):
        calls.append(amount)
        return amount

    engine = AggregationEngine(convert, totals_cache=MonthlyTotalCache(now=lambda: clock[0]))
    assert engine.total_for_month([_sub("a", "10")], 2024, 3) == Decimal("10")
    assert engine.total_for_month([_sub("a", "10")], 2024, 3) == Decimal("10")
    assert len(calls) == 1

    clock[0] += timedelta(hours=2)
    assert engine.total_for_month([_sub("a", "10")], 2024, 3) == Decimal("10")
    assert len(calls) == 2


def test_cached_total_follows_changed_inputs():
    cache = MonthlyTotalCache(now=lambda: datetime(2024, 3, 1))
    engine = AggregationEngine(totals_cache=cache)
    assert engine.total_for_month([_sub("a", "10")], 2024, 3) == Decimal("10")
    assert engine.total_for_month([_sub("a", "10"), _sub("b", "90")], 2024, 3) == Decimal("100")
    assert engine.total_for_month([_sub("a", "12")], 2024, 3) == Decimal("12")
    assert engine.total_for_month([_sub("a", "10", active=False)], 2024, 3) == Decimal("0")

    rates = RateTable({"EUR": "0.5"})
    converting = AggregationEngine(rates, totals_cache=cache)
    assert converting.total_for_month([_sub("e", "10", currency="EUR")], 2024, 3) == Decimal("20")
    assert engine.total_for_month([_sub("e", "10", currency="EUR")], 2024, 3) == Decimal("10")


def test_average_monthly_cost_uses_all_active_periods():
    engine = AggregationEngine()
    subs = [
        _sub("a", "10"),
        _sub("b", "300", RecurrencePeriod.QUARTERLY),
        _sub("c", "50", active=False),
    ]
    assert engine.average_monthly_cost(subs) == Decimal("55")
    assert engine.average_monthly_cost([]) == Decimal("0")


def test_billed_in_month_counts_each_billing():
    engine = AggregationEngine()
    subs = [
        _sub("gym", "20", RecurrencePeriod.SEMIMONTHLY, anchor=date(2024, 1, 1)),
        _sub("box", "30", RecurrencePeriod.QUARTERLY, anchor=date(2024, 1, 10)),
    ]
    # Semimonthly from Jan 1 bills Jan 1, 16 and 31.
    assert engine.billed_in_month(subs, 2024, 1) == Decimal("90")
    assert engine.billed_in_month(subs, 2024, 2) == Decimal("20")


def test_dashboard_metrics():
    engine = AggregationEngine(RateTable({"EUR": "0.5"}))
    subs = [
        _sub("a", "10"),
        _sub("b", "8"),
        _sub("c", "120", RecurrencePeriod.ANNUALLY, currency="EUR", anchor=date(2023, 3, 20)),
        _sub("d", "1", active=False),
    ]
    metrics = engine.dashboard_metrics(subs, date(2024, 3, 10))
    assert metrics.monthly_total == Decimal("18")
    assert metrics.yearly_projection == Decimal("216")
    assert metrics.active_subscription_count == 3
    assert metrics.billings_this_month == 3
    assert metrics.most_expensive_subscription.id == "c"
    assert metrics.most_common_period is RecurrencePeriod.MONTHLY
    assert metrics.average_monthly_cost == Decimal("38") / 3


def test_dashboard_metrics_without_subscriptions():
    metrics = AggregationEngine().dashboard_metrics([], date(2024, 3, 10))
    assert metrics.monthly_total == Decimal("0")
    assert metrics.most_expensive_subscription is None
    assert metrics.most_common_period is RecurrencePeriod.MONTHLY
