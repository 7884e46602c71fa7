import os
import sys
from datetime import date, datetime
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(Path(__file__).resolve().parent, "..")))

import tracker


def _mock_inputs(monkeypatch, inputs):
    it = iter(inputs)
    monkeypatch.setattr("builtins.input", lambda _: next(it))
    monkeypatch.setattr(tracker, "save_data", lambda data: None)


def _data():
    return {
        "subscriptions": [
            {
                "id": "v",
                "name": "Video",
                "price": "12",
                "currency": "USD",
                "period": "monthly",
                "date": "2024-01-31",
                "tags": ["Video"],
            },
            {
                "id": "m",
                "name": "Music",
                "price": "6",
                "currency": "USD",
                "period": "monthly",
                "date": "2024-01-05",
                "tags": ["Music"],
            },
            {
                "id": "s",
                "name": "Storage",
                "price": "2",
                "currency": "USD",
                "period": "monthly",
                "date": "2024-01-20",
            },
        ],
        "settings": {"currency": "USD", "reminder_offset": 7},
    }


def test_add_subscription(monkeypatch):
    data = {"subscriptions": []}
    _mock_inputs(monkeypatch, [
        "a", "Cloud", "2.99", "eur", "annually", "2024-02-29", "backup, photos", "b"
    ])
    tracker.edit_subscriptions(data)
    s = data["subscriptions"][0]
    assert s["name"] == "Cloud"
    assert s["price"] == "2.99"
    assert s["currency"] == "EUR"
    assert s["period"] == "annually"
    assert s["date"] == "2024-02-29"
    assert s["tags"] == ["backup", "photos"]
    assert s["active"] is True


def test_add_subscription_rejects_bad_period(monkeypatch, capsys):
    data = {"subscriptions": []}
    _mock_inputs(monkeypatch, ["a", "Cloud", "2.99", "", "weekly", "b"])
    tracker.edit_subscriptions(data)
    assert data["subscriptions"] == []
    assert "Warning" in capsys.readouterr().out


def test_toggle_and_delete_subscription(monkeypatch):
    data = _data()
    _mock_inputs(monkeypatch, ["t", "1", "d", "2", "b"])
    tracker.edit_subscriptions(data)
    assert data["subscriptions"][0]["active"] is False
    assert [s["id"] for s in data["subscriptions"]] == ["v", "s"]


def test_show_calendar(monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda _: "2024-02")
    tracker.show_calendar(_data(), today=date(2024, 2, 10))
    out = capsys.readouterr().out
    assert "February 2024" in out
    assert "2024-02-29: Video USD 12.00" in out
    assert "2024-02-05: Music USD 6.00" in out


def test_show_totals(capsys):
    tracker.show_totals(_data(), today=date(2024, 3, 10))
    out = capsys.readouterr().out
    assert "Due this month (monthly plans): USD 20.00" in out
    assert "Video: USD 12.00 (60.0%)" in out
    assert "Uncategorized: USD 2.00 (10.0%)" in out


def test_show_reminders(capsys):
    tracker.show_reminders(_data(), now=datetime(2024, 3, 1, 9, 0))
    out = capsys.readouterr().out
    assert "Video: 2024-03-24 10:00, 2024-04-23 10:00, 2024-05-24 10:00" in out
    # The Mar 5 reminder (Feb 27) is already past.
    assert "Music: 2024-03-29 10:00, 2024-04-28 10:00" in out


def test_settings_defaults():
    cfg = tracker.settings({"settings": {"currency": "EUR"}})
    assert cfg["currency"] == "EUR"
    assert cfg["reminder_cycles"] == 3
