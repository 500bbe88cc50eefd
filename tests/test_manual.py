import asyncio
from datetime import date, datetime
from decimal import Decimal

from billtracker.core.bill import BillCategory, BillStatus
from billtracker.providers.manual import ManualProvider, next_due_date_for_day_of_month, parse_due_date


def test_next_due_date_for_day_of_month():
    assert next_due_date_for_day_of_month(14, date(2024, 2, 10)) == date(2024, 2, 14)
    assert next_due_date_for_day_of_month(14, date(2024, 2, 14)) == date(2024, 2, 14)
    assert next_due_date_for_day_of_month(14, date(2024, 2, 15)) == date(2024, 3, 14)
    assert next_due_date_for_day_of_month(31, date(2024, 2, 1)) == date(2024, 2, 29)
    assert next_due_date_for_day_of_month(5, date(2024, 12, 20)) == date(2025, 1, 5)
    assert next_due_date_for_day_of_month(0, date(2024, 2, 1)) is None


def test_parse_due_date_forms():
    today = date(2024, 2, 15)
    assert parse_due_date("2024-03-01") == date(2024, 3, 1)
    assert parse_due_date("on every 20", today) == date(2024, 2, 20)
    assert parse_due_date("every 1st", today) == date(2024, 3, 1)
    assert parse_due_date(date(2024, 4, 1)) == date(2024, 4, 1)
    assert parse_due_date(datetime(2024, 4, 1, 9, 30)) == date(2024, 4, 1)
    assert parse_due_date("March 5, 2024") == date(2024, 3, 5)
    assert parse_due_date("") is None
    assert parse_due_date("whenever") is None


def test_manual_entries_become_bills():
    """Each valid entry is one Bill; invalid entries are skipped."""
    provider = ManualProvider({
        "entries": [
            {"name": "Rent", "amount": 1500, "due_date": "2099-03-01", "category": "other"},
            {"name": "Card", "amount": "75.20", "due_date": "2099-03-05", "category": "credit", "status": "paid",
             "account_last4": 4321},
            {"name": "No date", "amount": 1},
            {"amount": 1, "due_date": "2099-01-01"},
            {"name": "Negative", "amount": -3, "due_date": "2099-01-01"},
            "not a dict",
        ],
    })
    bills = asyncio.run(provider.fetch())

    assert [b.source for b in bills] == ["Rent", "Card"]
    rent, card = bills
    assert rent.amount == Decimal("1500")
    assert rent.category == BillCategory.OTHER
    assert rent.status == BillStatus.PENDING
    assert card.status == BillStatus.PAID
    assert card.category == BillCategory.CREDIT
    assert card.account_last4 == "4321"


def test_manual_status_other_than_paid_is_derived():
    provider = ManualProvider({"entries": [{"name": "Old", "due_date": "2001-01-01", "status": "pending"}]})
    [b] = asyncio.run(provider.fetch())
    assert b.status == BillStatus.OVERDUE
    assert b.amount == Decimal("0")


def test_manual_without_entries_is_empty():
    assert asyncio.run(ManualProvider({}).fetch()) == []
    assert asyncio.run(ManualProvider({"entries": "oops"}).fetch()) == []
