"""Month grids of billing days for a calendar view.

A grid covers whole weeks starting on Sunday: trailing days of the previous
month, every day of the requested month, then leading days of the next month
until the last week is complete.  Each ``CalendarDate`` lists the active
subscriptions billing that day.
"""

from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from occurrences import occurs_on
from schedule_cache import BillingScheduleCache
from subscriptions import Subscription

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7


@dataclass(frozen=True)
class CalendarDate:
    date: date
    is_current_month: bool = True
    is_today: bool = False
    subscriptions: Tuple[Subscription, ...] = field(default_factory=tuple)


def subscriptions_on(
    subscriptions: Iterable[Subscription],
    day: date,
    cache: Optional[BillingScheduleCache] = None,
) -> Tuple[Subscription, ...]:
    """Return the active subscriptions that bill on ``day``, in input order."""

    billed = []
    for sub in subscriptions:
        if not sub.active:
            continue
        if cache is not None:
            hit = cache.bills_on(sub, day)
        else:
            hit = occurs_on(sub.rule, sub.anchor_date, day)
        if hit:
            billed.append(sub)
    return tuple(billed)


def grid_days(year: int, month: int) -> List[date]:
    """Return the Sunday-first week rows covering ``year``/``month``."""

    first = date(year, month, 1)
    days_in_month = monthrange(year, month)[1]
    # date.weekday() is 0 for Monday; Sunday-first rows need 0 for Sunday.
    leading = (first.weekday() + 1) % DAYS_PER_WEEK
    trailing = -(leading + days_in_month) % DAYS_PER_WEEK
    start = first - timedelta(days=leading)
    return [start + timedelta(days=i) for i in range(leading + days_in_month + trailing)]


def project_month(
    year: int,
    month: int,
    subscriptions: Sequence[Subscription],
    today: Optional[date] = None,
    cache: Optional[BillingScheduleCache] = None,
) -> List[CalendarDate]:
    """Return the calendar grid for ``year``/``month`` with its billing days."""

    logger.debug("Projecting %04d-%02d for %d subscriptions", year, month, len(subscriptions))
    return [
        CalendarDate(
            date=day,
            is_current_month=day.month == month,
            is_today=day == today,
            subscriptions=subscriptions_on(subscriptions, day, cache),
        )
        for day in grid_days(year, month)
    ]


def today_index(dates: Sequence[CalendarDate]) -> Optional[int]:
    """Index of the first date flagged as today, if the grid contains it."""
    for idx, calendar_date in enumerate(dates):
        if calendar_date.is_today:
            return idx
    return None


def shift_month(year: int, month: int, months: int) -> Tuple[int, int]:
    shifted = date(year, month, 1) + relativedelta(months=months)
    return shifted.year, shifted.month


class MonthlyCalendarProjector:
    """Pages between month grids, keeping the neighbouring months ready.

    Grids are memoized by ``(year, month)`` for the current day, so paging
    back and forth does not recompute months already shown.
    """

    def __init__(
        self,
        subscriptions: Sequence[Subscription],
        year: Optional[int] = None,
        month: Optional[int] = None,
        cache: Optional[BillingScheduleCache] = None,
        today: Callable[[], date] = date.today,
    ):
        self._subscriptions = tuple(subscriptions)
        self._cache = cache
        self._today = today
        current = today()
        self.year = year or current.year
        self.month = month or current.month
        self._grids: Dict[Tuple[int, int], List[CalendarDate]] = {}
        self._grids_day = current
        self.window()

    def project(self, year: int, month: int) -> List[CalendarDate]:
        current_day = self._today()
        if current_day != self._grids_day:
            # Grids mark "today", so a new day invalidates all of them.
            self._grids.clear()
            self._grids_day = current_day
        key = (year, month)
        grid = self._grids.get(key)
        if grid is None:
            grid = project_month(year, month, self._subscriptions, current_day, self._cache)
            self._grids[key] = grid
        return grid

    @property
    def current(self) -> List[CalendarDate]:
        return self.project(self.year, self.month)

    def window(self) -> Tuple[List[CalendarDate], List[CalendarDate], List[CalendarDate]]:
        """Return the previous, current and next month grids."""
        prev_year, prev_month = shift_month(self.year, self.month, -1)
        next_year, next_month = shift_month(self.year, self.month, 1)
        return (
            self.project(prev_year, prev_month),
            self.current,
            self.project(next_year, next_month),
        )

    def _move(self, months: int) -> List[CalendarDate]:
        self.year, self.month = shift_month(self.year, self.month, months)
        return self.window()[1]

    def next_month(self) -> List[CalendarDate]:
        return self._move(1)

    def previous_month(self) -> List[CalendarDate]:
        return self._move(-1)

    def initial_selection(self) -> Optional[CalendarDate]:
        """Today's cell when visible, otherwise the first day of the month."""
        grid = self.current
        idx = today_index(grid)
        if idx is not None:
            return grid[idx]
        return next((d for d in grid if d.is_current_month), None)

    def refresh(self, subscriptions: Optional[Sequence[Subscription]] = None) -> None:
        """Drop memoized grids, optionally replacing the subscriptions."""
        if subscriptions is not None:
            self._subscriptions = tuple(subscriptions)
        self._grids.clear()
        self.window()

    @property
    def projected_months(self) -> List[Tuple[int, int]]:
        return sorted(self._grids)
