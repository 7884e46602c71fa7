"""Occurrence dates derived from an anchor date and a recurrence rule.

Every occurrence is defined by its cycle index ``k``: month and year based
periods land on ``anchor + k * months`` (clamped to short months, without
drifting afterwards), semimonthly lands on ``anchor + 15 * k`` days.  A custom
rule with an explicit interval is stepped one interval at a time; without one
the anchor is its only occurrence.

``next_occurrence_on_or_after`` and ``occurs_on`` describe the same sequence
and must always agree.
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from recurrence import (
    MONTHS_PER_CYCLE,
    SEMIMONTHLY_DAYS,
    OutOfRangeDate,
    RecurrencePeriod,
    RecurrenceRule,
    advance,
    as_rule,
)

MAX_STEPS = 10_000


def _month_index(d: date) -> int:
    return d.year * 12 + d.month - 1


def _check_cycles(k: int, anchor: date) -> None:
    if k > MAX_STEPS:
        raise OutOfRangeDate(
            f"More than {MAX_STEPS} billing cycles between {anchor} and the requested date"
        )


def nth_occurrence(rule: RecurrenceRule, anchor: date, k: int) -> date:
    """Return occurrence ``k`` (0 is the anchor) for a non-custom rule."""

    rule = as_rule(rule)
    _check_cycles(k, anchor)
    months = MONTHS_PER_CYCLE.get(rule.period)
    try:
        if months is not None:
            return anchor + relativedelta(months=k * months)
        if rule.period is RecurrencePeriod.SEMIMONTHLY:
            return anchor + timedelta(days=SEMIMONTHLY_DAYS * k)
    except (OverflowError, ValueError) as exc:
        raise OutOfRangeDate(f"Cycle {k} from {anchor} is outside the calendar") from exc
    if k == 0:
        return anchor
    current = anchor
    for _ in range(k):
        current = advance(rule, current)
    return current


def following_occurrence(rule: RecurrenceRule, anchor: date, current: date) -> Optional[date]:
    """Return the occurrence after ``current``, itself an occurrence of the rule.

    ``None`` when the rule does not recur.
    """

    rule = as_rule(rule)
    if not rule.is_recurring:
        return None
    return advance(rule, current, anchor)


def next_occurrence_on_or_after(rule: RecurrenceRule, anchor: date, target: date) -> Optional[date]:
    """Return the earliest occurrence that is not before ``target``.

    When ``target`` is on or before the anchor the anchor is returned.  A
    custom rule with no interval has no occurrence after the anchor and
    yields ``None``.
    """

    rule = as_rule(rule)
    if target <= anchor:
        return anchor

    months = MONTHS_PER_CYCLE.get(rule.period)
    if months is not None:
        k = (_month_index(target) - _month_index(anchor)) // months
        candidate = nth_occurrence(rule, anchor, k)
        while candidate < target:
            k += 1
            candidate = nth_occurrence(rule, anchor, k)
        return candidate

    if rule.period is RecurrencePeriod.SEMIMONTHLY:
        k = -(-(target - anchor).days // SEMIMONTHLY_DAYS)
        return nth_occurrence(rule, anchor, k)

    if rule.interval is None:
        return None
    current = anchor
    for _ in range(MAX_STEPS):
        if current >= target:
            return current
        current = advance(rule, current)
    raise OutOfRangeDate(f"No custom occurrence within {MAX_STEPS} cycles of {anchor}")


def occurs_on(rule: RecurrenceRule, anchor: date, day: date) -> bool:
    """Return True when ``day`` is a whole number of cycles after ``anchor``."""

    rule = as_rule(rule)
    if day < anchor:
        return False
    if day == anchor:
        return True

    months = MONTHS_PER_CYCLE.get(rule.period)
    if months is not None:
        if (_month_index(day) - _month_index(anchor)) % months:
            return False
        # Days past the end of a short month clamp to its last day.
        return day.day == min(anchor.day, monthrange(day.year, day.month)[1])

    if rule.period is RecurrencePeriod.SEMIMONTHLY:
        return (day - anchor).days % SEMIMONTHLY_DAYS == 0

    if rule.interval is None:
        return False
    return next_occurrence_on_or_after(rule, anchor, day) == day


def occurrences(
    rule: RecurrenceRule,
    anchor: date,
    count: int,
    start: Optional[date] = None,
) -> List[date]:
    """Return up to ``count`` consecutive occurrences on or after ``start``.

    ``start`` defaults to the anchor.  Fewer dates come back only for rules
    that stop recurring (custom without an interval).
    """

    if count <= 0:
        return []
    _check_cycles(count, anchor)
    rule = as_rule(rule)
    dates: List[date] = []
    current = next_occurrence_on_or_after(rule, anchor, start or anchor)
    while current is not None and len(dates) < count:
        dates.append(current)
        if len(dates) < count:
            current = following_occurrence(rule, anchor, current)
    return dates


def occurrences_between(rule: RecurrenceRule, anchor: date, start: date, end: date) -> List[date]:
    """Return every occurrence inside the closed window ``[start, end]``."""

    rule = as_rule(rule)
    dates: List[date] = []
    if end < start:
        return dates
    current = next_occurrence_on_or_after(rule, anchor, start)
    while current is not None and current <= end:
        dates.append(current)
        _check_cycles(len(dates), anchor)
        current = following_occurrence(rule, anchor, current)
    return dates
