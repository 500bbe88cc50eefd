import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from billtracker.api.server import create_app
from billtracker.core.app import BillTrackerApp
from billtracker.core.bill import BillStatus, compute_status
from billtracker.core.config import TrackerConfig
from billtracker.core.db import close_db
from billtracker.core.orchestrator import FetchReport, Origin, SourceOutcome
from billtracker.core.service import get_bill_history_records, get_latest_bills, save_report
from fakes import bill


@pytest.fixture
def tracker(tmp_path):
    """BillTrackerApp over a temp SQLite file with one manual provider."""
    config = TrackerConfig(data={
        "cache": {"directory": str(tmp_path / "data")},
        "sessions": {"directory": str(tmp_path / "sessions")},
        "database": {"enabled": True, "path": str(tmp_path / "bills.db")},
        "providers": [{
            "type": "manual",
            "entries": [
                {"name": "Rent", "amount": 1500, "due_date": "2099-03-01"},
                {"name": "Phone", "amount": "45.99", "due_date": "2099-02-01", "account_last4": "1234"},
            ],
        }],
    }, environ={})
    app = BillTrackerApp(config=config)
    yield app
    close_db()


def _report(*bills):
    return FetchReport(list(bills), [SourceOutcome("S", Origin.FETCHED, list(bills), None)])


def test_save_report_replaces_current_and_archives_previous(tracker):
    """Each save replaces the current run; the outgoing run moves to history."""
    first = bill(source="Water", amount="20.00")
    second = bill(source="Water", amount="25.00")

    assert save_report(_report(first)) == 1
    assert get_bill_history_records() == []

    save_report(_report(second))
    [current] = get_latest_bills()
    assert current.amount == Decimal("25.00")
    assert current.due_date == datetime(2024, 3, 1, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    [archived] = get_bill_history_records()
    assert archived.amount == Decimal("20.00")
    assert archived.source == "Water"


def test_stored_due_dates_keep_their_status(tracker):
    """A bill due within the hour reads back as due, not overdue, whatever the host's UTC offset."""
    due = datetime.now(timezone.utc) + timedelta(hours=1)
    save_report(_report(bill(source="Soon", due=due)))

    [stored] = get_latest_bills()
    assert stored.due_date == due.astimezone().replace(tzinfo=None)
    assert compute_status(stored.due_date) == BillStatus.DUE

    client = TestClient(create_app(tracker))
    [served] = client.get("/api/bills").json()["bills"]
    assert served["status"] == BillStatus.DUE


def test_history_limit(tracker):
    for amount in ("1", "2", "3"):
        save_report(_report(bill(amount=amount), bill(amount=amount)))
    assert len(get_bill_history_records()) == 4
    assert len(get_bill_history_records(limit=1)) == 1


def test_refresh_saves_run(tracker):
    report = asyncio.run(tracker.refresh())
    assert [b.source for b in report.bills] == ["Phone", "Rent"]
    assert [b.source for b in get_latest_bills()] == ["Phone", "Rent"]


def test_api_refresh_then_read(tracker):
    client = TestClient(create_app(tracker))

    response = client.post("/api/bills/refresh")
    assert response.status_code == 200
    body = response.json()
    assert body["all_failed"] is False
    assert body["sources"] == [{"source": "Manual", "origin": Origin.FETCHED, "error": None}]
    assert [b["source"] for b in body["bills"]] == ["Phone", "Rent"]
    assert body["bills"][0]["amount"] == 45.99
    assert body["bills"][0]["account_last4"] == "1234"

    response = client.get("/api/bills")
    assert response.status_code == 200
    bills = response.json()["bills"]
    assert [b["source"] for b in bills] == ["Phone", "Rent"]
    assert bills[1]["status"] == "pending"
    assert bills[1]["origin"] == Origin.FETCHED


def test_api_second_refresh_uses_cache_and_fills_history(tracker):
    client = TestClient(create_app(tracker))
    client.post("/api/bills/refresh")
    body = client.post("/api/bills/refresh").json()
    assert body["sources"][0]["origin"] == Origin.CACHE

    history = client.get("/api/bills/history", params={"limit": 10}).json()["bills"]
    assert sorted(b["source"] for b in history) == ["Phone", "Rent"]

    forced = client.post("/api/bills/refresh", params={"force": True}).json()
    assert forced["sources"][0]["origin"] == Origin.FETCHED


def test_api_bills_empty_before_first_run(tracker):
    client = TestClient(create_app(tracker))
    assert client.get("/api/bills").json() == {"bills": []}
    assert client.get("/api/bills/history").json() == {"bills": []}
