"""
SQLAlchemy models for bill data.

- BillRecord: bills from the latest fetch run only (replaced each run).
- BillHistory: bills from earlier runs, archived when a new run replaces them.
"""
from sqlalchemy import Column, String, DateTime, Integer, Numeric

from billtracker.core.db import Base


class BillRecord(Base):
    """Latest run only; replaced on each save."""
    __tablename__ = "bill_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fetched_at = Column(DateTime(timezone=False), nullable=False, index=True)

    source = Column(String(255), nullable=False)
    category = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    due_date = Column(DateTime(timezone=False), nullable=False)
    status = Column(String(32), nullable=False)
    last_updated = Column(DateTime(timezone=False), nullable=True)
    origin = Column(String(16), nullable=True)  # cache, fetched, stale
    pay_url = Column(String(1024), nullable=True)
    account_last4 = Column(String(8), nullable=True)


class BillHistory(Base):
    """Archived bills from superseded runs."""
    __tablename__ = "bill_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fetched_at = Column(DateTime(timezone=False), nullable=False, index=True)
    source = Column(String(255), nullable=False)
    category = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    due_date = Column(DateTime(timezone=False), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    account_last4 = Column(String(8), nullable=True)
