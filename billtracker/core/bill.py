"""
Bill data model: the normalized, immutable fact about money owed to one source,
its derived status, and the JSON shape used by the cache files.
"""
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as dateutil_parser


class BillCategory:
    """Closed set of bill categories."""
    UTILITY = "utility"
    BANK = "bank"
    CREDIT = "credit"
    INSURANCE = "insurance"
    SUBSCRIPTION = "subscription"
    OTHER = "other"

    ALL = (UTILITY, BANK, CREDIT, INSURANCE, SUBSCRIPTION, OTHER)


class BillStatus:
    """Derived bill status. PAID is the only value a provider sets explicitly."""
    PENDING = "pending"
    DUE = "due"
    OVERDUE = "overdue"
    PAID = "paid"

    ALL = (PENDING, DUE, OVERDUE, PAID)


DUE_SOON_DAYS = 7

# One bill owed to one source. Immutable; use bill._replace(...) for an updated copy.
Bill = namedtuple(
    "Bill",
    [
        "source",         # provider name, e.g. "Atmos Energy"
        "category",       # BillCategory
        "amount",         # Decimal >= 0
        "currency",       # ISO 4217
        "due_date",       # datetime
        "status",         # BillStatus
        "last_updated",   # datetime of the fetch that produced this bill
        "pay_url",        # str or None
        "account_last4",  # str or None
    ],
    defaults=(None, None),
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def align_now(now: datetime, other: datetime) -> datetime:
    """Return now in the same naive/aware flavour as other (naive means local wall time)."""
    if (now.tzinfo is None) == (other.tzinfo is None):
        return now
    if other.tzinfo is None:
        return now.astimezone().replace(tzinfo=None)
    return now.astimezone()


def compute_status(due_date: datetime, now: Optional[datetime] = None, status: Optional[str] = None) -> str:
    """overdue before now, due within DUE_SOON_DAYS, else pending. An explicit paid status is kept."""
    if status == BillStatus.PAID:
        return BillStatus.PAID
    now = align_now(now or utc_now(), due_date)
    if due_date < now:
        return BillStatus.OVERDUE
    if due_date <= now + timedelta(days=DUE_SOON_DAYS):
        return BillStatus.DUE
    return BillStatus.PENDING


def to_datetime(value: Union[date, datetime]) -> datetime:
    """Promote a date to midnight datetime; datetimes pass through."""
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def make_bill(
    source: str,
    category: str,
    amount: Any,
    due_date: Union[date, datetime],
    currency: str = "USD",
    status: Optional[str] = None,
    pay_url: Optional[str] = None,
    account_last4: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Bill:
    """Build a validated Bill stamped with the fetch time; status derived from due date unless paid."""
    if category not in BillCategory.ALL:
        raise ValueError(f"Unknown bill category: {category!r}")
    if status is not None and status not in BillStatus.ALL:
        raise ValueError(f"Unknown bill status: {status!r}")
    amount = to_decimal(amount)
    if amount < 0:
        raise ValueError(f"Bill amount must be non-negative, got {amount}")
    now = now or utc_now()
    due = to_datetime(due_date)
    return Bill(
        source=source,
        category=category,
        amount=amount,
        currency=(currency or "USD").upper(),
        due_date=due,
        status=compute_status(due, now, status),
        last_updated=now,
        pay_url=pay_url,
        account_last4=account_last4,
    )


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def bill_to_dict(bill: Bill) -> Dict[str, Any]:
    """Serialize one Bill to the on-disk JSON shape (dates as ISO strings)."""
    d = {
        "provider": bill.source,
        "category": bill.category,
        "amount": float(bill.amount),
        "currency": bill.currency,
        "dueDate": bill.due_date.isoformat(),
        "status": bill.status,
        "lastUpdated": bill.last_updated.isoformat(),
    }
    if bill.pay_url:
        d["payUrl"] = bill.pay_url
    if bill.account_last4:
        d["accountLast4"] = bill.account_last4
    return d


def bill_from_dict(d: Dict[str, Any]) -> Bill:
    """Deserialize one dict back to Bill. Raises ValueError/KeyError/TypeError on bad input."""
    source = d.get("provider") or d.get("source")
    if not source:
        raise ValueError("Bill has no provider")
    category = d["category"]
    status = d["status"]
    if category not in BillCategory.ALL:
        raise ValueError(f"Unknown bill category: {category!r}")
    if status not in BillStatus.ALL:
        raise ValueError(f"Unknown bill status: {status!r}")
    amount = to_decimal(d["amount"])
    if amount < 0:
        raise ValueError(f"Bill amount must be non-negative, got {amount}")
    return Bill(
        source=source,
        category=category,
        amount=amount,
        currency=d.get("currency") or "USD",
        due_date=dateutil_parser.isoparse(d["dueDate"]),
        status=status,
        last_updated=dateutil_parser.isoparse(d["lastUpdated"]),
        pay_url=d.get("payUrl"),
        account_last4=d.get("accountLast4"),
    )


def validate_bill(bill: Bill) -> Bill:
    """
    Check a Bill built outside make_bill(): same rules as make_bill, plus
    date-only due dates are promoted to midnight datetimes.
    Raises ValueError/TypeError when the bill cannot be cached or sorted.
    """
    if not bill.source or not isinstance(bill.source, str):
        raise ValueError(f"Bill has no source: {bill.source!r}")
    if bill.category not in BillCategory.ALL:
        raise ValueError(f"Unknown bill category: {bill.category!r}")
    if bill.status not in BillStatus.ALL:
        raise ValueError(f"Unknown bill status: {bill.status!r}")
    amount = to_decimal(bill.amount)
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Bill amount must be non-negative, got {bill.amount!r}")
    if not isinstance(bill.due_date, date):
        raise TypeError(f"Bill due_date must be a date, got {type(bill.due_date).__name__}")
    if not isinstance(bill.last_updated, date):
        raise TypeError(f"Bill last_updated must be a date, got {type(bill.last_updated).__name__}")
    return bill._replace(
        amount=amount,
        currency=bill.currency or "USD",
        due_date=to_datetime(bill.due_date),
        last_updated=to_datetime(bill.last_updated),
    )


def normalize_bills(result: Any) -> List[Bill]:
    """A provider may yield one Bill or a list of them; anything else is an error."""
    if isinstance(result, Bill):
        return [validate_bill(result)]
    if isinstance(result, (list, tuple)):
        bills = []
        for item in result:
            if not isinstance(item, Bill):
                raise TypeError(f"Provider returned non-Bill item: {type(item).__name__}")
            bills.append(validate_bill(item))
        return bills
    raise TypeError(f"Provider returned {type(result).__name__}, expected Bill or list of Bill")
