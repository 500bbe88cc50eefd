"""
AT&T wireless / internet bills from myAT&T.
Two-step login (User ID, Continue, password, #signin). Each configured account
is selected by its data-testid and read separately; one failing account does
not drop the others.

Settings:
  accounts: [{type: wireless, number: "177125913995", testid: "Wireless-177125913995"}, ...]
"""
import json
import re
from collections import namedtuple
from typing import Any, Dict, List

from billtracker.core.bill import Bill, BillCategory
from billtracker.browser import BrowserError
from .base import ProviderError, parse_currency, parse_date_text
from .methods.browser import BrowserProvider

MYATT_URL = "https://www.att.com/myatt"
PAY_URL = "https://www.att.com/myatt/billing"

ACCOUNT_SCRIPT = r"""(() => {
  const el = document.querySelector('.type-60');
  const due = document.body.innerText.match(/Due[:\s]+([A-Za-z0-9,\/\s]+)/i);
  return JSON.stringify({ balance: el ? el.textContent.trim() : '', due: due ? due[1].trim() : '' });
})()"""

AttAccountFields = namedtuple("AttAccountFields", ["balance", "due_date"])


def parse_att_account(raw: str) -> AttAccountFields:
    """Parse the per-account snapshot (balance text and 'Due ...' text)."""
    try:
        data = json.loads(raw or "{}")
        if isinstance(data, str):
            data = json.loads(data)
    except ValueError as e:
        raise ProviderError(f"AT&T: unreadable account snapshot ({e})")
    if not isinstance(data, dict):
        raise ProviderError("AT&T: unexpected account snapshot")
    balance = parse_currency(data.get("balance"))
    if balance is None:
        raise ProviderError(f"AT&T: balance not found ({data.get('balance')!r})")
    # "Due" text runs on into the next line of the page; keep the leading date-ish part
    due_text = re.split(r"\n", data.get("due") or "")[0]
    due_date = parse_date_text(due_text)
    if due_date is None:
        raise ProviderError(f"AT&T: due date not found ({data.get('due')!r})")
    return AttAccountFields(balance, due_date)


class ATTProvider(BrowserProvider):
    name = "AT&T"
    category = BillCategory.UTILITY
    env_vars = ("ATT_USER", "ATT_PASS")

    login_url = MYATT_URL
    landing_url = MYATT_URL
    authenticated_markers = ("myatt",)
    unauthenticated_markers = ("signin", "login")
    username_selector = 'input#userName, input[name="userName"]'
    continue_selector = 'button#continueFromUserLogin, button:has-text("Continue")'
    password_selector = "input[type='password']"
    submit_selector = "#signin"

    def accounts(self) -> List[Dict[str, Any]]:
        accounts = self.settings.get("accounts") or []
        if not isinstance(accounts, list):
            raise ProviderError("AT&T: 'accounts' must be a list")
        return [a for a in accounts if isinstance(a, dict) and a.get("testid")]

    async def extract_bills(self, port) -> List[Bill]:
        accounts = self.accounts()
        if not accounts:
            raise ProviderError("AT&T: no accounts configured")

        bills: List[Bill] = []
        for account in accounts:
            kind = str(account.get("type") or "account")
            number = str(account.get("number") or "")
            self.logger.info(f"Fetching AT&T {kind} (****{number[-4:]})...")
            try:
                await port.click(f'[data-testid="{account["testid"]}"]')
                await self.wait_for_text(port, ("Due",), timeout=5)
                fields = parse_att_account(await port.evaluate(ACCOUNT_SCRIPT))
            except (BrowserError, ProviderError) as e:
                self.logger.warning(f"Failed to fetch AT&T {kind}: {e}")
                continue
            self.logger.info(f"  -> Balance: ${fields.balance:.2f}, Due: {fields.due_date:%Y-%m-%d}")
            bills.append(
                self.bill(
                    fields.balance,
                    fields.due_date,
                    source=f"AT&T {kind.capitalize()}",
                    pay_url=PAY_URL,
                    account_last4=number[-4:] or None,
                )
            )
        if not bills:
            raise ProviderError("AT&T: no account could be read")
        return bills
