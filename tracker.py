"""Command-line interface for tracking subscriptions and their billing dates."""

import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional
from uuid import uuid4

from aggregation import AggregationEngine
from calendar_projector import DAYS_PER_WEEK, MonthlyCalendarProjector
from currency import RateTable, format_amount
from recurrence import RecurrencePeriod
from reminders import upcoming_reminder_dates
from schedule_cache import BillingScheduleCache
from subscriptions import Subscription, subscription_from_dict

DATA_FILE = Path(__file__).with_name("subscriptions.json")

DEFAULT_SETTINGS = {
    "currency": "USD",
    "reminder_offset": 1,
    "reminder_cycles": 3,
    "rates": {},
    "log_level": "WARNING",
}


def load_data() -> Dict:
    """Load subscriptions and settings from ``subscriptions.json``."""
    if DATA_FILE.exists():
        with DATA_FILE.open() as f:
            return json.load(f)
    return {"subscriptions": [], "settings": {}}


def save_data(data: Dict) -> None:
    """Persist subscriptions and settings to disk."""
    with DATA_FILE.open("w") as f:
        json.dump(data, f, indent=2)


def settings(data: Dict) -> Dict:
    """Stored settings layered over ``DEFAULT_SETTINGS``."""
    merged = dict(DEFAULT_SETTINGS)
    merged.update(data.get("settings", {}))
    return merged


def load_subscriptions(data: Dict) -> List[Subscription]:
    return [subscription_from_dict(s) for s in data.get("subscriptions", [])]


def build_engine(data: Dict) -> AggregationEngine:
    cfg = settings(data)
    return AggregationEngine(RateTable(cfg["rates"]), cfg["currency"])


# ---------------------------------------------------------------------------
# Editing helpers


def _pick_index(items: List[dict], prompt: str) -> Optional[int]:
    idx = input(prompt).strip()
    if idx.isdigit() and 1 <= int(idx) <= len(items):
        return int(idx) - 1
    return None


def _prompt_subscription() -> Dict:
    name = input("Name: ").strip() or "Subscription"
    try:
        price = Decimal(input("Price: ").strip())
    except InvalidOperation:
        raise ValueError("Price must be a number") from None
    currency = input("Currency [USD]: ").strip().upper() or "USD"
    period = RecurrencePeriod.parse(input("Period [monthly]: ").strip() or "monthly")
    first = input("First billing date (YYYY-MM-DD): ").strip()
    datetime.strptime(first, "%Y-%m-%d")
    tags = [t.strip() for t in input("Tags (comma separated): ").split(",") if t.strip()]
    return {
        "id": uuid4().hex,
        "name": name,
        "price": str(price),
        "currency": currency,
        "period": period.value,
        "date": first,
        "active": True,
        "tags": tags,
    }


def edit_subscriptions(data: Dict) -> None:
    """Add, remove or pause subscriptions."""
    subs = data.setdefault("subscriptions", [])
    while True:
        print("\nCurrent subscriptions:")
        for i, s in enumerate(subs, 1):
            paused = "" if s.get("active", True) else " [paused]"
            tags = f" #{' #'.join(s['tags'])}" if s.get("tags") else ""
            print(
                f"{i}. {s['name']} {s.get('currency', 'USD')} {s['price']} "
                f"{s.get('period', 'monthly')} from {s['date']}{tags}{paused}"
            )
        action = input("A)dd, D)elete, T)oggle active, B)ack: ").strip().lower()
        if action == "a":
            try:
                subs.append(_prompt_subscription())
            except ValueError as exc:
                print(f"Warning: {exc}")
                continue
            save_data(data)
        elif action == "d":
            idx = _pick_index(subs, "Number to delete: ")
            if idx is not None:
                del subs[idx]
                save_data(data)
        elif action == "t":
            idx = _pick_index(subs, "Number to toggle: ")
            if idx is not None:
                subs[idx]["active"] = not subs[idx].get("active", True)
                save_data(data)
        elif action == "b":
            break


# ---------------------------------------------------------------------------
# Reports


def show_calendar(data: Dict, today: Optional[date] = None) -> None:
    """Print a month grid with billing days marked ``*``."""
    today = today or date.today()
    month_str = input("Month (YYYY-MM) [current]: ").strip()
    try:
        shown = datetime.strptime(month_str, "%Y-%m").date() if month_str else today
    except ValueError:
        print(f"Warning: invalid month {month_str!r}")
        return

    subs = load_subscriptions(data)
    engine = build_engine(data)
    projector = MonthlyCalendarProjector(
        subs, shown.year, shown.month, cache=BillingScheduleCache(), today=lambda: today
    )
    grid = projector.current

    print(f"\n{shown.strftime('%B %Y')}")
    print(" Su  Mo  Tu  We  Th  Fr  Sa")
    for row in range(0, len(grid), DAYS_PER_WEEK):
        cells = []
        for cell in grid[row : row + DAYS_PER_WEEK]:
            if not cell.is_current_month:
                cells.append("  . ")
                continue
            mark = "*" if cell.subscriptions else " "
            cells.append(f" {cell.date.day:>2}{mark}")
        print("".join(cells))

    for cell in grid:
        if cell.is_current_month and cell.subscriptions:
            items = ", ".join(
                f"{s.name} {format_amount(engine.converted_price(s), engine.currency)}"
                for s in cell.subscriptions
            )
            print(f"{cell.date.isoformat()}: {items}")


def show_totals(data: Dict, today: Optional[date] = None) -> None:
    """Print dashboard figures and the cost breakdown by tag."""
    today = today or date.today()
    subs = load_subscriptions(data)
    engine = build_engine(data)
    code = engine.currency
    metrics = engine.dashboard_metrics(subs, today)

    print(f"\n--- Totals for {today.strftime('%B %Y')} ---")
    print(f"Due this month (monthly plans): {format_amount(metrics.monthly_total, code)}")
    print(f"Billed this month: {format_amount(engine.billed_in_month(subs, today.year, today.month), code)}")
    print(f"Yearly projection: {format_amount(metrics.yearly_projection, code)}")
    print(f"Average monthly cost: {format_amount(metrics.average_monthly_cost, code)}")
    print(f"Active subscriptions: {metrics.active_subscription_count}")
    print(f"Billings this month: {metrics.billings_this_month}")
    if metrics.most_expensive_subscription is not None:
        print(f"Most expensive: {metrics.most_expensive_subscription.name}")
    print(f"Most common period: {metrics.most_common_period.label}")

    breakdown = engine.tag_breakdown(subs)
    if breakdown:
        print("\nBy tag (monthly):")
        for item in breakdown:
            print(
                f"  {item.tag.name}: {format_amount(item.total_monthly_cost, code)} "
                f"({item.percentage:.1f}%)"
            )


def show_reminders(data: Dict, now: Optional[datetime] = None) -> None:
    """Print the upcoming reminder times for every active subscription."""
    now = now or datetime.now()
    cfg = settings(data)
    for sub in load_subscriptions(data):
        if not sub.active:
            continue
        times = upcoming_reminder_dates(
            sub, cfg["reminder_offset"], cfg["reminder_cycles"], now=lambda: now
        )
        when = ", ".join(t.strftime("%Y-%m-%d %H:%M") for t in times) or "none"
        print(f"{sub.name}: {when}")


# ---------------------------------------------------------------------------
# Menu


def main() -> None:
    """Display the main menu and handle user selections."""
    data = load_data()
    level = str(settings(data)["log_level"]).upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING))
    while True:
        print("\n--- Subscription Menu ---")
        print("1. Edit subscriptions")
        print("2. Show calendar")
        print("3. Show totals")
        print("4. Show reminders")
        print("5. Quit")
        choice = input("Select an option: ").strip()
        try:
            if choice == "1":
                edit_subscriptions(data)
            elif choice == "2":
                show_calendar(data)
            elif choice == "3":
                show_totals(data)
            elif choice == "4":
                show_reminders(data)
            elif choice == "5":
                break
            else:
                print("Invalid option.")
        except ValueError as exc:
            print(f"Warning: {exc}")


if __name__ == "__main__":
    main()
