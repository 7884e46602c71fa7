"""Monthly and yearly cost figures across currencies and billing periods.

Prices are converted with an injected ``convert(amount, from, to)`` callable;
when it has no rate (returns ``None``) the unconverted price is used.  Only
periods that divide a year into whole months are normalized to a monthly
figure: semimonthly, bimonthly, biennially and custom prices are taken as
they are.
"""

from __future__ import annotations

import logging
from calendar import monthrange
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from currency import same_currency_only
from occurrences import occurrences_between
from recurrence import RecurrencePeriod, cycles_per_year
from schedule_cache import MonthlyTotalCache
from subscriptions import UNCATEGORIZED, Subscription, Tag

logger = logging.getLogger(__name__)

Converter = Callable[[Decimal, str, str], Optional[Decimal]]

ZERO = Decimal("0")
HUNDRED = Decimal("100")

MONTHLY_DIVISORS: Dict[RecurrencePeriod, Decimal] = {
    RecurrencePeriod.MONTHLY: Decimal("1"),
    RecurrencePeriod.QUARTERLY: Decimal("3"),
    RecurrencePeriod.SEMIANNUALLY: Decimal("6"),
    RecurrencePeriod.ANNUALLY: Decimal("12"),
}


@dataclass(frozen=True)
class TagBreakdownItem:
    tag: Tag
    total_monthly_cost: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class DashboardMetrics:
    monthly_total: Decimal
    yearly_projection: Decimal
    average_monthly_cost: Decimal
    active_subscription_count: int
    billings_this_month: int
    most_expensive_subscription: Optional[Subscription]
    most_common_period: RecurrencePeriod


def _active(subscriptions: Iterable[Subscription]) -> List[Subscription]:
    return [s for s in subscriptions if s.active]


def _fingerprint(subscriptions: Iterable[Subscription]) -> Tuple:
    return tuple(
        (
            s.id,
            s.price,
            s.currency_code,
            s.period,
            repr(s.rule.interval),
            s.anchor_date,
            s.active,
        )
        for s in subscriptions
    )


class AggregationEngine:
    """Cost figures in ``currency`` for a set of subscriptions."""

    def __init__(
        self,
        convert: Converter = same_currency_only,
        currency: str = "USD",
        totals_cache: Optional[MonthlyTotalCache] = None,
    ):
        self.convert = convert
        self.currency = currency.upper()
        self.totals_cache = totals_cache

    # ------------------------------------------------------------------
    # Single subscription

    def converted_price(self, subscription: Subscription) -> Decimal:
        """Price in the display currency, or the original price without a rate."""
        converted = self.convert(subscription.price, subscription.currency_code, self.currency)
        if converted is None:
            logger.warning(
                "No rate from %s to %s for %s; using the unconverted price",
                subscription.currency_code,
                self.currency,
                subscription.name,
            )
            return subscription.price
        return converted

    def monthly_equivalent(self, subscription: Subscription) -> Decimal:
        amount = self.converted_price(subscription)
        divisor = MONTHLY_DIVISORS.get(subscription.period)
        if divisor is None:
            return amount
        return amount / divisor

    def yearly_equivalent(self, subscription: Subscription) -> Decimal:
        return self.converted_price(subscription) * cycles_per_year(subscription.period)

    # ------------------------------------------------------------------
    # Totals

    def total_for_month(self, subscriptions: Iterable[Subscription], year: int, month: int) -> Decimal:
        """Headline amount due in a month from monthly subscriptions.

        Only active subscriptions with a monthly period that have started by
        the end of the month count.  This is stricter than a plain sum over
        every active monthly subscription: one whose first billing date falls
        after the month is left out.  With a ``totals_cache``
        the figure is reused until the entry expires, but only for the same
        subscriptions and converter.
        """

        subscriptions = list(subscriptions)
        inputs = (self.convert, _fingerprint(subscriptions))
        month_end = date(year, month, monthrange(year, month)[1])

        def compute() -> Decimal:
            return sum(
                (
                    self.converted_price(s)
                    for s in _active(subscriptions)
                    if s.period is RecurrencePeriod.MONTHLY and s.anchor_date <= month_end
                ),
                ZERO,
            )

        if self.totals_cache is None:
            return compute()
        return self.totals_cache.get_or_compute(year, month, self.currency, compute, inputs)

    def average_monthly_cost(self, subscriptions: Iterable[Subscription]) -> Decimal:
        """Mean monthly equivalent over every active subscription."""
        active = _active(subscriptions)
        if not active:
            return ZERO
        total = sum((self.monthly_equivalent(s) for s in active), ZERO)
        return total / Decimal(len(active))

    def billed_in_month(self, subscriptions: Iterable[Subscription], year: int, month: int) -> Decimal:
        """Sum of every billing that actually falls inside the month."""
        start = date(year, month, 1)
        end = date(year, month, monthrange(year, month)[1])
        total = ZERO
        for sub in _active(subscriptions):
            count = len(occurrences_between(sub.rule, sub.anchor_date, start, end))
            if count:
                total += self.converted_price(sub) * count
        return total

    # ------------------------------------------------------------------
    # Breakdowns

    def tag_breakdown(self, subscriptions: Iterable[Subscription]) -> List[TagBreakdownItem]:
        """Monthly cost per tag, most expensive first.

        A subscription counts in full towards each of its tags; untagged ones
        are grouped under "Uncategorized".  Percentages are shares of the sum
        over all tags.
        """

        totals: Dict[Tag, Decimal] = {}
        for sub in _active(subscriptions):
            cost = self.monthly_equivalent(sub)
            for tag in sub.tags or (UNCATEGORIZED,):
                totals[tag] = totals.get(tag, ZERO) + cost

        grand_total = sum(totals.values(), ZERO)
        items = [
            TagBreakdownItem(
                tag=tag,
                total_monthly_cost=cost,
                percentage=cost / grand_total * HUNDRED if grand_total > 0 else ZERO,
            )
            for tag, cost in totals.items()
        ]
        items.sort(key=lambda item: item.total_monthly_cost, reverse=True)
        return items

    def dashboard_metrics(self, subscriptions: Iterable[Subscription], today: date) -> DashboardMetrics:
        subscriptions = list(subscriptions)
        active = _active(subscriptions)
        monthly_total = self.total_for_month(subscriptions, today.year, today.month)

        start = today.replace(day=1)
        end = today.replace(day=monthrange(today.year, today.month)[1])
        billings = sum(
            len(occurrences_between(s.rule, s.anchor_date, start, end)) for s in active
        )

        most_expensive = max(active, key=self.converted_price) if active else None
        periods = Counter(s.period for s in active)
        most_common = periods.most_common(1)[0][0] if periods else RecurrencePeriod.MONTHLY

        return DashboardMetrics(
            monthly_total=monthly_total,
            yearly_projection=monthly_total * 12,
            average_monthly_cost=self.average_monthly_cost(active),
            active_subscription_count=len(active),
            billings_this_month=billings,
            most_expensive_subscription=most_expensive,
            most_common_period=most_common,
        )
