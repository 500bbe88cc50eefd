"""
SmartHub co-op portals (CoServ gas, Farmers Electric, ...).
Logs in at <base_url>/ui/#/login with Email/Password;
reads the HOME dashboard text for Current Bill Amount, Due Date, Last Payment, usage.
"""
import re
from collections import namedtuple
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from billtracker.core.bill import Bill, BillCategory, BillStatus
from .base import ProviderError, parse_date_text
from .methods.browser import BrowserProvider

DASHBOARD_MARKERS = ("Current Bill Amount", "Past Due Balance")

# Month names for usage parsing (Usage Comparison: "Jan 2026568" -> latest month)
_MONTH_NAMES = r"Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
_MONTH_TO_NUM = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

SmartHubFields = namedtuple(
    "SmartHubFields",
    [
        "current_balance",      # Decimal or None
        "past_due",             # Decimal or None
        "payment_due",          # bool
        "due_date",             # datetime or None
        "last_payment_amount",  # Decimal or None
        "last_payment_date",    # datetime or None
        "usage",                # str or None, e.g. "568 kWh"
    ],
)


def _amount(m: Optional[re.Match]) -> Optional[Decimal]:
    if not m:
        return None
    g = m.group(1) or m.group(2)
    if not g:
        return None
    try:
        return Decimal(g.replace(",", ""))
    except InvalidOperation:
        return None


def parse_usage_from_body(body_text: str, unit: str = "kWh") -> Optional[str]:
    """Find all 'Month YYYY' + digits on page and return usage for the latest month, e.g. '568 kWh'."""
    if not body_text:
        return None
    pattern = re.compile(rf"({_MONTH_NAMES})\s*(\d{{4}})\s*(\d+)", re.I)
    matches = []
    for m in pattern.finditer(body_text):
        month_num = _MONTH_TO_NUM.get(m.group(1).lower())
        if month_num is not None:
            matches.append((int(m.group(2)), month_num, m.group(3)))
    if not matches:
        m = re.search(rf"(\d+)\s*{unit}", body_text, re.I)
        if m:
            return f"{m.group(1)} {unit}"
        return None
    matches.sort(key=lambda x: (x[0], x[1]))
    return f"{matches[-1][2]} {unit}"


def parse_due_date_from_text(text: str) -> Optional[datetime]:
    """Extract due date from dashboard text (e.g. 'Next Auto Pay Due Date February 3, 2026')."""
    if not text:
        return None
    m = re.search(r"Next Auto Pay Due Date\s+(\w+\s+\d{1,2},?\s*\d{4})", text, re.I)
    if m:
        parsed = parse_date_text(m.group(1))
        if parsed:
            return parsed
    # Fallbacks: "due date", "due by", "payment due"
    for pat in [
        r"due\s+(?:date|by)?\s*:?\s*(\d{1,2}/\d{1,2}/\d{2,4})",
        r"due\s+(?:date|by)?\s*:?\s*(\w+\s+\d{1,2},?\s*\d{4})",
        r"payment\s+due\s*:?\s*(\d{1,2}/\d{1,2}/\d{2,4})",
    ]:
        m = re.search(pat, text, re.I)
        if m:
            parsed = parse_date_text(m.group(1))
            if parsed:
                return parsed
    return None


def parse_smarthub_dashboard(body_text: str) -> SmartHubFields:
    """Pure parser for the SmartHub HOME dashboard text."""
    body_text = body_text or ""
    # Amounts appear next to their labels, either order ("$80.00 Current Bill Amount")
    current_balance = _amount(re.search(
        r"\$([\d,]+\.?\d*)\s+Current Bill Amount|Current Bill Amount\s+\$([\d,]+\.?\d*)", body_text, re.I))
    past_due = _amount(re.search(
        r"\$([\d,]+\.?\d*)\s+Past Due Balance|Past Due Balance\s+\$([\d,]+\.?\d*)", body_text, re.I))
    payment_due = bool((current_balance and current_balance > 0) or (past_due and past_due > 0))

    last_payment_date = None
    last_date_m = re.search(
        r"Last Payment.*?on\s+(\w+\s+\d{1,2},?\s*\d{4})|PAID on\s+(\w+\s+\d{1,2},?\s*\d{4})", body_text, re.I | re.S)
    if last_date_m:
        last_payment_date = parse_date_text(last_date_m.group(1) or last_date_m.group(2))
    last_payment_amount = _amount(re.search(
        r"\$([\d,]+\.?\d*)\s+Last Payment|Last Payment.*?\$([\d,]+\.?\d*)", body_text, re.I | re.S))

    unit = "therms" if "therm" in body_text.lower() else "kWh"
    return SmartHubFields(
        current_balance=current_balance,
        past_due=past_due,
        payment_due=payment_due,
        due_date=parse_due_date_from_text(body_text),
        last_payment_amount=last_payment_amount,
        last_payment_date=last_payment_date,
        usage=parse_usage_from_body(body_text, unit=unit),
    )


class SmartHubProvider(BrowserProvider):
    """SmartHub portal: login with Email/Password, read the HOME dashboard."""

    name = "SmartHub"
    category = BillCategory.UTILITY
    username_selector = '#mat-input-0, input[aria-label="Email"]'
    password_selector = '#mat-input-1, input[aria-label="Password"], input[type="password"]'
    submit_selector = 'button:has-text("Sign In"), button[type="submit"]'
    unauthenticated_markers = ("login",)

    def __init__(self, settings, config=None, logger=None, **kwargs):
        base_url = (settings.get("base_url") or "").rstrip("/")
        if not base_url:
            raise ValueError("smarthub provider needs base_url, e.g. https://coserv.smarthub.coop")
        settings = dict(settings)
        settings.setdefault("login_url", f"{base_url}/ui/#/login")
        settings.setdefault("landing_url", f"{base_url}/ui/#/home")
        settings.setdefault("authenticated_markers", ["/ui/#/"])
        super().__init__(settings, config, logger, **kwargs)
        self.base_url = base_url

    async def extract_bills(self, port) -> List[Bill]:
        body_text = await self.wait_for_text(port, DASHBOARD_MARKERS)
        if not any(m in body_text for m in DASHBOARD_MARKERS):
            raise ProviderError(f"{self.name}: dashboard did not load")
        fields = parse_smarthub_dashboard(body_text)
        if fields.due_date is None:
            raise ProviderError(f"{self.name}: due date not found on dashboard")
        self.logger.info(f"{self.name}: finished, payment_due={fields.payment_due}, usage={fields.usage}")
        amount = (fields.current_balance or Decimal("0")) + (fields.past_due or Decimal("0"))
        return [
            self.bill(
                amount,
                fields.due_date,
                status=None if fields.payment_due else BillStatus.PAID,
                pay_url=self.settings.get("pay_url") or f"{self.base_url}/ui/#/billing",
                account_last4=self.settings.get("account_last4"),
            )
        ]
