"""
Atmos Energy gas bill (atmosenergy.com account center).
Logs in with ATMOS_EMAIL / ATMOS_PASS, then reads amount, due date and account
number from the landing screen.
"""
import json
from collections import namedtuple
from decimal import Decimal
from typing import List, Optional

from billtracker.core.bill import Bill, BillCategory
from .base import ProviderError, parse_currency, parse_date_text
from .methods.browser import BrowserProvider

LOGIN_URL = "https://www.atmosenergy.com/accountcenter/logon/login.html"
LANDING_URL = "https://www.atmosenergy.com/accountcenter/landing/landingScreen.html"
PAY_URL = "https://www.atmosenergy.com/accountcenter/finance/FinancialTransaction.html?activeTab=2"

SNAPSHOT_SCRIPT = """(() => {
  const text = (sel) => { const el = document.querySelector(sel); return el ? el.textContent.trim() : null; };
  return JSON.stringify({
    error: text('h1') || '',
    unavailable: document.body.textContent.includes('systems are temporarily unavailable'),
    amount: text('[class*="amount"], [class*="balance"], [id*="amount"]'),
    dueDate: text('[class*="due"], [id*="due"]'),
    account: text('[class*="account"], [id*="account"]'),
  });
})()"""

AtmosSnapshot = namedtuple("AtmosSnapshot", ["amount", "due_date", "account_last4"])


def _load_snapshot(raw: str) -> dict:
    try:
        data = json.loads(raw or "{}")
        # Some adapters print the returned string JSON-quoted
        if isinstance(data, str):
            data = json.loads(data)
    except ValueError as e:
        raise ProviderError(f"Atmos Energy: unreadable page snapshot ({e})")
    if not isinstance(data, dict):
        raise ProviderError("Atmos Energy: unexpected page snapshot")
    return data


def parse_atmos_snapshot(raw: str) -> AtmosSnapshot:
    """Parse the landing-screen snapshot. Raises ProviderError when the site is down or fields are missing."""
    data = _load_snapshot(raw)
    if data.get("unavailable") or data.get("error") == "Error":
        raise ProviderError("Atmos Energy: systems temporarily unavailable")

    amount = parse_currency(data.get("amount"))
    if amount is None:
        raise ProviderError(f"Atmos Energy: amount not found ({data.get('amount')!r})")
    due_date = parse_date_text(data.get("dueDate"))
    if due_date is None:
        raise ProviderError(f"Atmos Energy: due date not found ({data.get('dueDate')!r})")

    account_last4: Optional[str] = None
    digits = "".join(c for c in (data.get("account") or "") if c.isdigit())
    if len(digits) >= 4:
        account_last4 = digits[-4:]
    return AtmosSnapshot(amount, due_date, account_last4)


class AtmosEnergyProvider(BrowserProvider):
    name = "Atmos Energy"
    category = BillCategory.UTILITY
    env_vars = ("ATMOS_EMAIL", "ATMOS_PASS")

    login_url = LOGIN_URL
    landing_url = LANDING_URL
    authenticated_markers = ("landing",)
    unauthenticated_markers = ("logon", "login")
    username_selector = "input[name=username]"
    password_selector = "input[name=password]"
    submit_selector = 'button[type="submit"], input[type="submit"]'

    async def extract_bills(self, port) -> List[Bill]:
        self.logger.info("Fetching Atmos Energy bill...")
        snapshot = parse_atmos_snapshot(await port.evaluate(SNAPSHOT_SCRIPT))
        self.logger.info(f"Atmos Energy: balance ${snapshot.amount:.2f}, due {snapshot.due_date:%Y-%m-%d}")
        return [
            self.bill(
                Decimal(snapshot.amount),
                snapshot.due_date,
                pay_url=self.settings.get("pay_url", PAY_URL),
                account_last4=snapshot.account_last4,
            )
        ]
