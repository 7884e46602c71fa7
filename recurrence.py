"""Billing periods and the rule that moves a date to its next billing cycle.

Month and year based periods shift with ``dateutil.relativedelta`` so a day
that does not exist in the target month clamps to that month's last day
(January 31 plus one month is February 29 in a leap year).  ``custom`` has no
step of its own: it only recurs when the rule carries an explicit interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Union

from dateutil.relativedelta import relativedelta


class InvalidRecurrence(ValueError):
    """A rule was asked to step automatically but has no step to apply."""


class OutOfRangeDate(ValueError):
    """Occurrence iteration ran past ``occurrences.MAX_STEPS`` or the calendar."""


class RecurrencePeriod(Enum):
    """Supported billing cadences, in the order of their stored integer codes."""

    MONTHLY = "monthly"
    SEMIMONTHLY = "semimonthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUALLY = "semiannually"
    ANNUALLY = "annually"
    BIENNIALLY = "biennially"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Union["RecurrencePeriod", str, int]) -> "RecurrencePeriod":
        """Return the period named by ``value``.

        Accepts a member, a name such as ``"semi-monthly"`` or ``"Annually"``,
        or the integer codes 0-7 used by stored subscriptions.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise InvalidRecurrence(f"Unknown billing period code: {value}")
        key = str(value).strip().lower().replace("-", "").replace("_", "")
        for member in cls:
            if member.value == key:
                return member
        raise InvalidRecurrence(f"Unknown billing period: {value!r}")

    @property
    def label(self) -> str:
        return self.value.capitalize()


P = RecurrencePeriod

STEPS: Dict[RecurrencePeriod, relativedelta] = {
    P.MONTHLY: relativedelta(months=1),
    P.SEMIMONTHLY: relativedelta(days=15),
    P.BIMONTHLY: relativedelta(months=2),
    P.QUARTERLY: relativedelta(months=3),
    P.SEMIANNUALLY: relativedelta(months=6),
    P.ANNUALLY: relativedelta(years=1),
    P.BIENNIALLY: relativedelta(years=2),
}

# Periods whose occurrences land on the anchor's day-of-month.
MONTHS_PER_CYCLE: Dict[RecurrencePeriod, int] = {
    P.MONTHLY: 1,
    P.BIMONTHLY: 2,
    P.QUARTERLY: 3,
    P.SEMIANNUALLY: 6,
    P.ANNUALLY: 12,
    P.BIENNIALLY: 24,
}

SEMIMONTHLY_DAYS = 15

# Relative fields of a custom interval.  Billing dates carry no time of day.
_INTERVAL_PARTS = ("years", "months", "days", "leapdays")
_TIME_PARTS = ("hours", "minutes", "seconds", "microseconds")

CYCLES_PER_YEAR: Dict[RecurrencePeriod, Decimal] = {
    P.SEMIMONTHLY: Decimal("24"),
    P.MONTHLY: Decimal("12"),
    P.BIMONTHLY: Decimal("6"),
    P.QUARTERLY: Decimal("4"),
    P.SEMIANNUALLY: Decimal("2"),
    P.ANNUALLY: Decimal("1"),
    P.BIENNIALLY: Decimal("0.5"),
    P.CUSTOM: Decimal("1"),
}


@dataclass(frozen=True)
class RecurrenceRule:
    """A billing period, plus an explicit interval for ``custom`` schedules."""

    period: RecurrencePeriod
    interval: Optional[relativedelta] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "period", RecurrencePeriod.parse(self.period))
        if self.interval is None:
            return
        if self.period is not P.CUSTOM:
            raise InvalidRecurrence(
                f"An explicit interval only applies to custom periods, not {self.period.value}"
            )
        parts = [getattr(self.interval, name) for name in _INTERVAL_PARTS]
        has_time = any(getattr(self.interval, name) for name in _TIME_PARTS)
        # Mixed signs (a month forward, 30 days back) move some dates backwards.
        if has_time or any(p < 0 for p in parts) or not any(p > 0 for p in parts[:3]):
            raise InvalidRecurrence(f"Custom interval must move every date forward: {self.interval!r}")

    @property
    def is_recurring(self) -> bool:
        return self.period is not P.CUSTOM or self.interval is not None


def as_rule(value: Union[RecurrenceRule, RecurrencePeriod, str, int]) -> RecurrenceRule:
    """Coerce a period (or period name) into a ``RecurrenceRule``."""
    if isinstance(value, RecurrenceRule):
        return value
    return RecurrenceRule(RecurrencePeriod.parse(value))


def step(
    period: Union[RecurrencePeriod, str, int],
    from_date: date,
    anchor: Optional[date] = None,
) -> date:
    """Return the date one billing cycle after ``from_date``.

    ``custom`` returns ``from_date`` unchanged; callers must not treat that as
    a new occurrence.  When ``anchor`` is given, month and year based periods
    restore the anchor's day-of-month after the shift so that a date clamped
    in a short month (Feb 29 for a Jan 31 anchor) steps back to the 31st.
    """

    period = RecurrencePeriod.parse(period)
    if period is P.CUSTOM:
        return from_date
    try:
        next_date = from_date + STEPS[period]
        if anchor is not None and period in MONTHS_PER_CYCLE:
            next_date += relativedelta(day=anchor.day)
    except (OverflowError, ValueError) as exc:
        raise OutOfRangeDate(f"Cannot step {period.value} past {from_date}") from exc
    return next_date


def advance(
    rule: Union[RecurrenceRule, RecurrencePeriod, str, int],
    from_date: date,
    anchor: Optional[date] = None,
) -> date:
    """Step ``from_date`` automatically, refusing rules with no step."""

    rule = as_rule(rule)
    if rule.period is P.CUSTOM:
        if rule.interval is None:
            raise InvalidRecurrence("Custom billing period has no automatic step")
        try:
            return from_date + rule.interval
        except (OverflowError, ValueError) as exc:
            raise OutOfRangeDate(f"Cannot step custom interval past {from_date}") from exc
    return step(rule.period, from_date, anchor)


def months_per_cycle(period: Union[RecurrencePeriod, str, int]) -> Optional[int]:
    return MONTHS_PER_CYCLE.get(RecurrencePeriod.parse(period))


def cycles_per_year(period: Union[RecurrencePeriod, str, int]) -> Decimal:
    return CYCLES_PER_YEAR[RecurrencePeriod.parse(period)]
