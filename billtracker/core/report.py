"""
Rendering of a bill list: plain text summary, JSON (cache-file shape) and CSV.
Status is recomputed from the due date at render time, so cached bills show
what is true now.
"""
import csv
import io
import json
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from billtracker.core.bill import Bill, BillStatus, bill_to_dict, compute_status


def refresh_status(bills: Iterable[Bill], now: Optional[datetime] = None) -> List[Bill]:
    return [b._replace(status=compute_status(b.due_date, now, b.status)) for b in bills]


def total_due(bills: Iterable[Bill]) -> Decimal:
    """Sum of unpaid amounts."""
    return sum((b.amount for b in bills if b.status != BillStatus.PAID), Decimal("0"))


def group_by_category(bills: Iterable[Bill]) -> Dict[str, List[Bill]]:
    groups: Dict[str, List[Bill]] = OrderedDict()
    for b in bills:
        groups.setdefault(b.category, []).append(b)
    return groups


def render_text(bills: List[Bill], now: Optional[datetime] = None) -> str:
    if not bills:
        return "No bills found. Add providers to get started!"
    bills = refresh_status(bills, now)
    lines = [
        "",
        "=== BILL SUMMARY ===",
        f"Total Due: ${total_due(bills):.2f}",
        f"Bills: {len(bills)}",
        "",
    ]
    for b in bills:
        lines.append(f"--- {b.source} ---")
        lines.append(f"  Account: ****{b.account_last4 or 'N/A'}")
        lines.append(f"  Amount: ${b.amount:.2f} {b.currency}")
        lines.append(f"  Due Date: {b.due_date:%b %d, %Y}")
        lines.append(f"  Status: {b.status}")
        lines.append(f"  Category: {b.category}")
        if b.pay_url:
            lines.append(f"  Pay URL: {b.pay_url}")
        lines.append("")
    return "\n".join(lines)


def render_json(bills: List[Bill], now: Optional[datetime] = None) -> str:
    return json.dumps([bill_to_dict(b) for b in refresh_status(bills, now)], indent=2)


def render_csv(bills: List[Bill], now: Optional[datetime] = None) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(["Provider", "Amount", "Currency", "Due Date", "Status", "Category", "AccountLast4"])
    for b in refresh_status(bills, now):
        writer.writerow([
            b.source, f"{b.amount:.2f}", b.currency, b.due_date.isoformat(), b.status, b.category,
            b.account_last4 or "",
        ])
    return out.getvalue()
