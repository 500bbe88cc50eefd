"""
Service layer: save and load bill runs from the DB.
- BillRecord: latest run only (replaced on each save).
- BillHistory: earlier runs, archived when a new run replaces them.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select

from billtracker.core.bill import Bill
from billtracker.core.db import session_scope
from billtracker.core.models import BillHistory, BillRecord
from billtracker.core.orchestrator import FetchReport


def _naive_local(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite keeps no tz; aware datetimes are stored as naive local wall time (what compute_status assumes)."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)


def save_report(report: FetchReport) -> int:
    """Replace the current run with the report's bills; archive the outgoing run to BillHistory.
    Returns the number of bills saved."""
    fetched_at = datetime.now()
    count = 0
    with session_scope() as session:
        existing = session.execute(select(BillRecord)).scalars().all()
        for r in existing:
            session.add(
                BillHistory(
                    fetched_at=r.fetched_at,
                    source=r.source,
                    category=r.category,
                    amount=r.amount,
                    currency=r.currency,
                    due_date=r.due_date,
                    status=r.status,
                    account_last4=r.account_last4,
                )
            )
        session.execute(delete(BillRecord))
        for outcome in report.outcomes:
            for bill in outcome.bills:
                session.add(
                    BillRecord(
                        fetched_at=fetched_at,
                        source=bill.source,
                        category=bill.category,
                        amount=bill.amount,
                        currency=bill.currency,
                        due_date=_naive_local(bill.due_date),
                        status=bill.status,
                        last_updated=_naive_local(bill.last_updated),
                        origin=outcome.origin,
                        pay_url=bill.pay_url,
                        account_last4=bill.account_last4,
                    )
                )
                count += 1
    return count


def get_latest_bill_records() -> List[BillRecord]:
    """Return the latest run of BillRecord rows (for API serialization), soonest due first."""
    with session_scope() as session:
        stmt = select(BillRecord).order_by(BillRecord.due_date.asc(), BillRecord.source)
        return list(session.execute(stmt).scalars().all())


def get_latest_bills() -> List[Bill]:
    """Return the latest run as Bill values."""
    return [_row_to_bill(r) for r in get_latest_bill_records()]


def get_bill_history_records(limit: Optional[int] = 500) -> List[BillHistory]:
    """Return archived bills, newest run first."""
    with session_scope() as session:
        stmt = select(BillHistory).order_by(BillHistory.fetched_at.desc(), BillHistory.due_date.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.execute(stmt).scalars().all())


def _row_to_bill(r: BillRecord) -> Bill:
    return Bill(
        source=r.source,
        category=r.category,
        amount=r.amount,
        currency=r.currency,
        due_date=r.due_date,
        status=r.status,
        last_updated=r.last_updated or r.fetched_at,
        pay_url=r.pay_url,
        account_last4=r.account_last4,
    )
