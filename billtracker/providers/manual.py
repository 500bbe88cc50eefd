"""
Manual provider: define bills in config when no portal access is available.
Each entry provides name, due_date, optional amount, category and status.
due_date can be YYYY-MM-DD or "on every N" / "every N" (day of month 1-31); then the
next due date is computed from today.
No network; entries that cannot be parsed are skipped with a warning.
"""
import re
from calendar import monthrange
from datetime import date, datetime
from typing import List, Optional

from dateutil import parser as dateutil_parser

from billtracker.core.bill import Bill, BillStatus
from .base import BillProvider

# "on every 14", "every 14", "every 14th" -> day of month 1-31
_DAY_OF_MONTH_RE = re.compile(
    r"(?:on\s+)?every\s+(\d{1,2})(?:st|nd|rd|th)?\s*$",
    re.IGNORECASE,
)


def next_due_date_for_day_of_month(day: int, today: Optional[date] = None) -> Optional[date]:
    """Return the next due date for a given day of month (1-31). Uses current or next month."""
    if not 1 <= day <= 31:
        return None
    today = today or date.today()
    year, month = today.year, today.month
    _, last = monthrange(year, month)
    candidate = date(year, month, min(day, last))
    if candidate >= today:
        return candidate
    if month == 12:
        year, month = year + 1, 1
    else:
        month += 1
    _, last = monthrange(year, month)
    return date(year, month, min(day, last))


def parse_due_date(s, today: Optional[date] = None) -> Optional[date]:
    """Parse due_date: YYYY-MM-DD, or 'on every N' / 'every N' (day of month); then compute next due."""
    if s is None:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    s = str(s).strip()
    if not s:
        return None
    m = _DAY_OF_MONTH_RE.search(s)
    if m:
        return next_due_date_for_day_of_month(int(m.group(1)), today)
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return dateutil_parser.parse(s).date()
    except (ValueError, OverflowError):
        return None


class ManualProvider(BillProvider):
    """Config-driven provider: one Bill per entry in settings['entries']."""

    name = "Manual"
    method = "manual"

    async def fetch(self) -> List[Bill]:
        entries = self.settings.get("entries")
        if not isinstance(entries, list):
            if entries is not None:
                self.logger.warning(f"Manual provider: 'entries' must be a list, got {type(entries).__name__}")
            return []

        results: List[Bill] = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                self.logger.warning(f"Manual provider: entry[{i}] is not a dict, skipping")
                continue

            name = (entry.get("name") or entry.get("source") or "").strip()
            if not name:
                self.logger.warning(f"Manual provider: entry[{i}] missing name, skipping")
                continue

            due_date = parse_due_date(entry.get("due_date"))
            if due_date is None:
                self.logger.warning(f"Manual provider: entry[{i}] invalid due_date {entry.get('due_date')!r}, skipping")
                continue

            status = entry.get("status")
            status = str(status).strip().lower() if status is not None else None
            if status != BillStatus.PAID:
                status = None

            try:
                results.append(
                    self.bill(
                        entry.get("amount", 0),
                        due_date,
                        source=name,
                        category=entry.get("category") or self.category,
                        currency=entry.get("currency", "USD"),
                        status=status,
                        pay_url=entry.get("pay_url"),
                        account_last4=str(entry["account_last4"]) if entry.get("account_last4") else None,
                    )
                )
            except ValueError as e:
                self.logger.warning(f"Manual provider: entry[{i}] {e}, skipping")

        return results
