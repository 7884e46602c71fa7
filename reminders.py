"""Reminder timestamps ahead of upcoming billing dates.

Reminders fire at 10:00 local time a fixed number of days before each
billing date.  Reminders that would already be in the past are dropped
rather than moved, so fewer than ``cycle_count`` timestamps can come back.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from enum import IntEnum
from typing import Callable, Dict, Iterable, List

from occurrences import following_occurrence
from subscriptions import Subscription

logger = logging.getLogger(__name__)

REMINDER_TIME = time(hour=10)
DEFAULT_CYCLES = 3


class ReminderOffset(IntEnum):
    ONE_DAY_BEFORE = 1
    THREE_DAYS_BEFORE = 3
    ONE_WEEK_BEFORE = 7


def upcoming_reminder_dates(
    subscription: Subscription,
    offset_days: int,
    cycle_count: int = DEFAULT_CYCLES,
    now: Callable[[], datetime] = datetime.now,
) -> List[datetime]:
    """Return reminder times for the next ``cycle_count`` billing cycles.

    Parameters
    ----------
    subscription:
        Subscription whose next billing date (on or after today) starts the
        schedule.
    offset_days:
        Days before each billing date; one of ``ReminderOffset``.
    cycle_count:
        Number of billing cycles to consider.
    now:
        Clock used for "today" and to drop reminders that are not in the
        future.

    Raises
    ------
    ValueError
        If ``offset_days`` is not a supported offset.
    """

    offset = timedelta(days=int(ReminderOffset(offset_days)))
    current_time = now()
    billing_date = subscription.next_billing_date(current_time.date())

    reminders: List[datetime] = []
    for _ in range(cycle_count):
        if billing_date is None:
            break
        remind_at = datetime.combine(billing_date - offset, REMINDER_TIME)
        if remind_at > current_time:
            reminders.append(remind_at)
        else:
            logger.debug("Skipping past reminder %s for %s", remind_at, subscription.name)
        billing_date = following_occurrence(subscription.rule, subscription.anchor_date, billing_date)
    return reminders


def reminder_schedule(
    subscriptions: Iterable[Subscription],
    offset_days: int,
    cycle_count: int = DEFAULT_CYCLES,
    now: Callable[[], datetime] = datetime.now,
) -> Dict[str, List[datetime]]:
    """Reminder times for every active subscription, keyed by subscription id."""
    return {
        sub.id: upcoming_reminder_dates(sub, offset_days, cycle_count, now)
        for sub in subscriptions
        if sub.active
    }
