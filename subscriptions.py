"""Read-only subscription projections consumed by the schedule engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from dateutil.relativedelta import relativedelta

from currency import to_decimal
from occurrences import next_occurrence_on_or_after
from recurrence import RecurrencePeriod, RecurrenceRule, as_rule


def _parse_date(value: date | str) -> date:
    """Parse a date or ISO formatted string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, "%Y-%m-%d").date()


@dataclass(frozen=True)
class Tag:
    name: str
    id: Optional[str] = None


UNCATEGORIZED = Tag(name="Uncategorized")


@dataclass(frozen=True)
class Subscription:
    """A subscription as the engine sees it.

    ``rule`` accepts a ``RecurrenceRule`` or anything ``RecurrencePeriod.parse``
    understands; ``price`` accepts anything ``to_decimal`` understands.
    """

    id: str
    name: str
    price: Decimal
    currency_code: str
    rule: RecurrenceRule
    anchor_date: date
    active: bool = True
    tags: Tuple[Tag, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_decimal(self.price))
        object.__setattr__(self, "currency_code", self.currency_code.upper())
        object.__setattr__(self, "rule", as_rule(self.rule))
        object.__setattr__(self, "anchor_date", _parse_date(self.anchor_date))
        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def period(self) -> RecurrencePeriod:
        return self.rule.period

    def next_billing_date(self, today: date) -> Optional[date]:
        """First occurrence on or after ``today``; ``None`` once a one-off is past."""
        return next_occurrence_on_or_after(self.rule, self.anchor_date, today)


@dataclass(frozen=True)
class BillingRecord:
    id: str
    subscription_id: str
    billing_date: date
    amount: Decimal
    currency_code: str
    is_paid: bool = True


def _parse_tag(value) -> Tag:
    if isinstance(value, Tag):
        return value
    if isinstance(value, dict):
        return Tag(name=value["name"], id=value.get("id"))
    return Tag(name=str(value), id=str(value))


def subscription_from_dict(data: Dict) -> Subscription:
    """Build a ``Subscription`` from a stored dictionary.

    Recognised keys: ``id``, ``name``, ``price``, ``currency``, ``period``,
    ``date`` (first billing date), ``active``, ``tags`` and, for custom
    periods, ``interval_days`` / ``interval_months``.
    """

    period = RecurrencePeriod.parse(data.get("period", "monthly"))
    interval = None
    if data.get("interval_days") or data.get("interval_months"):
        interval = relativedelta(
            days=int(data.get("interval_days", 0)),
            months=int(data.get("interval_months", 0)),
        )
    return Subscription(
        id=str(data.get("id") or data["name"]),
        name=data.get("name", "Subscription"),
        price=to_decimal(data["price"]),
        currency_code=data.get("currency", "USD"),
        rule=RecurrenceRule(period, interval),
        anchor_date=_parse_date(data["date"]),
        active=bool(data.get("active", True)),
        tags=tuple(_parse_tag(t) for t in data.get("tags", [])),
    )
