"""Memoized billing-day lookups and monthly totals.

``BillingScheduleCache`` keeps, per subscription id, the set of
``(month, day)`` pairs on which that subscription can bill in some year.  The
set is only ever used to reject days quickly; a day that passes still goes
through ``occurs_on``, so answers are the same with a warm, cold or absent
cache.  Entries are immutable and replaced whole whenever the rule or anchor
changes.
"""

from __future__ import annotations

import logging
import threading
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, Hashable, Optional, Tuple

from occurrences import occurs_on
from recurrence import MONTHS_PER_CYCLE, RecurrencePeriod, RecurrenceRule
from subscriptions import Subscription

logger = logging.getLogger(__name__)

MonthDays = FrozenSet[Tuple[int, int]]


def _month_lengths(month: int) -> Tuple[int, ...]:
    if month == 2:
        return (28, 29)
    return (monthrange(2001, month)[1],)


def billing_month_days(rule: RecurrenceRule, anchor: date) -> Optional[MonthDays]:
    """Return every ``(month, day)`` the rule may bill on, in any year.

    ``None`` means no year-independent set exists (semimonthly and custom
    intervals drift through the calendar).
    """

    months = MONTHS_PER_CYCLE.get(rule.period)
    if months is None:
        if rule.period is RecurrencePeriod.CUSTOM and rule.interval is None:
            return frozenset({(anchor.month, anchor.day)})
        return None
    offsets = range(0, 12, months) if months < 12 else (0,)
    pairs = set()
    for offset in offsets:
        month = (anchor.month - 1 + offset) % 12 + 1
        for length in _month_lengths(month):
            pairs.add((month, min(anchor.day, length)))
    return frozenset(pairs)


@dataclass(frozen=True)
class _Entry:
    rule: RecurrenceRule
    anchor: date
    days: Optional[MonthDays]

    def matches(self, subscription: Subscription) -> bool:
        return self.rule == subscription.rule and self.anchor == subscription.anchor_date


class BillingScheduleCache:
    """Per-subscription billing-day cache, safe to share between threads."""

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.builds = 0

    def __contains__(self, subscription_id: str) -> bool:
        return subscription_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _lock_for(self, subscription_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(subscription_id, threading.Lock())

    def billing_days(self, subscription: Subscription) -> Optional[MonthDays]:
        entry = self._entries.get(subscription.id)
        if entry is not None and entry.matches(subscription):
            return entry.days
        with self._lock_for(subscription.id):
            entry = self._entries.get(subscription.id)
            if entry is None or not entry.matches(subscription):
                if entry is not None:
                    logger.debug("Schedule for %s changed; rebuilding", subscription.id)
                entry = _Entry(
                    rule=subscription.rule,
                    anchor=subscription.anchor_date,
                    days=billing_month_days(subscription.rule, subscription.anchor_date),
                )
                self._entries[subscription.id] = entry
                self.builds += 1
                logger.debug("Cached billing days for %s", subscription.id)
        return entry.days

    def bills_on(self, subscription: Subscription, day: date) -> bool:
        days = self.billing_days(subscription)
        if days is not None and (day.month, day.day) not in days:
            return False
        return occurs_on(subscription.rule, subscription.anchor_date, day)

    def invalidate(self, subscription_id: str) -> None:
        with self._lock_for(subscription_id):
            self._entries.pop(subscription_id, None)

    def clear(self) -> None:
        with self._locks_guard:
            self._entries.clear()


class MonthlyTotalCache:
    """Monthly totals that expire after ``ttl``.

    Entries are keyed by ``(year, month, currency)`` plus a fingerprint of
    whatever the total was computed from, so a different subscription list
    or converter never sees another caller's figure.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=1), now: Callable[[], datetime] = datetime.now):
        self._ttl = ttl
        self._now = now
        self._values: Dict[Tuple[int, int, str, Hashable], Tuple[Decimal, datetime]] = {}
        self._lock = threading.Lock()

    def get_or_compute(
        self,
        year: int,
        month: int,
        currency: str,
        compute: Callable[[], Decimal],
        inputs: Hashable = (),
    ) -> Decimal:
        key = (year, month, currency.upper(), inputs)
        with self._lock:
            cached = self._values.get(key)
            if cached is not None and cached[1] > self._now():
                return cached[0]
        total = compute()
        with self._lock:
            self._values[key] = (total, self._now() + self._ttl)
        return total

    def invalidate(self, year: int, month: int, currency: str) -> None:
        """Drop every entry for the month, whatever it was computed from."""
        prefix = (year, month, currency.upper())
        with self._lock:
            for key in [k for k in self._values if k[:3] == prefix]:
                del self._values[key]

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
