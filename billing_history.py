"""Where billing records should exist for a subscription, and what was paid.

The engine never stores records.  These helpers compute the records a caller
is missing and the totals over records it already has.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, List
from uuid import uuid4

from occurrences import occurrences_between
from subscriptions import BillingRecord, Subscription


def _new_id() -> str:
    return uuid4().hex


def billing_dates_through(subscription: Subscription, today: date) -> List[date]:
    """Billing dates from the first billing date up to and including ``today``."""
    if not subscription.active or subscription.anchor_date > today:
        return []
    return occurrences_between(
        subscription.rule, subscription.anchor_date, subscription.anchor_date, today
    )


def missing_billing_records(
    subscription: Subscription,
    existing: Iterable[BillingRecord],
    today: date,
    new_id: Callable[[], str] = _new_id,
) -> List[BillingRecord]:
    """Records for past billing dates that have none yet.

    Running this again with its own output added to ``existing`` returns an
    empty list.
    """

    recorded = {r.billing_date for r in existing if r.subscription_id == subscription.id}
    return [
        BillingRecord(
            id=new_id(),
            subscription_id=subscription.id,
            billing_date=day,
            amount=subscription.price,
            currency_code=subscription.currency_code,
        )
        for day in billing_dates_through(subscription, today)
        if day not in recorded
    ]


def reprice_future_records(
    subscription: Subscription, records: Iterable[BillingRecord], today: date
) -> List[BillingRecord]:
    """Return ``records`` with future ones carrying the current price and currency."""
    updated = []
    for record in records:
        if record.subscription_id == subscription.id and record.billing_date > today:
            record = replace(
                record, amount=subscription.price, currency_code=subscription.currency_code
            )
        updated.append(record)
    return updated


def total_paid(records: Iterable[BillingRecord], today: date) -> Decimal:
    """Sum of paid records dated on or before ``today``."""
    return sum(
        (r.amount for r in records if r.is_paid and r.billing_date <= today), Decimal("0")
    )
