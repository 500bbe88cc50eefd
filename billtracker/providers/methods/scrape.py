"""
Scrape access method: form login with requests, billing page parsed with BeautifulSoup.
Beware of fragility to UI changes; selectors live in config so they can be fixed without code.
"""
import asyncio
from collections import namedtuple
from typing import Dict, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from billtracker.core.bill import Bill
from ..base import BillProvider, ProviderError, parse_currency, parse_date_text

BillingFields = namedtuple("BillingFields", ["amount", "due_date", "currency", "pay_url"])

DEFAULT_SELECTORS = {
    "amount": '.balance, .amount-due, [data-testid="balance"]',
    "due_date": '.due-date, [data-testid="due-date"]',
    "currency": None,
    "pay_link": 'a[href*="pay"]',
}


def _select_text(soup: BeautifulSoup, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    el = soup.select_one(selector)
    return el.get_text(" ", strip=True) if el else None


def parse_billing_page(html: str, selectors: Dict[str, Optional[str]], base_url: str = "") -> BillingFields:
    """Pure parser for a billing page. Raises ProviderError when amount or due date is missing."""
    soup = BeautifulSoup(html, "html.parser")
    amount = parse_currency(_select_text(soup, selectors.get("amount")))
    if amount is None:
        raise ProviderError("Amount not found on billing page")
    due_text = _select_text(soup, selectors.get("due_date"))
    due_date = parse_date_text(due_text)
    if due_date is None:
        raise ProviderError(f"Due date not found on billing page ({due_text!r})")
    currency = (_select_text(soup, selectors.get("currency")) or "").strip().upper() or None
    pay_url = None
    if selectors.get("pay_link"):
        link = soup.select_one(selectors["pay_link"])
        if link is not None and link.get("href"):
            pay_url = urljoin(base_url + "/", link["href"])
    return BillingFields(amount, due_date, currency, pay_url)


class ScrapeProvider(BillProvider):
    method = "scrape"

    def __init__(self, settings, config=None, logger=None):
        super().__init__(settings, config, logger)
        self.base_url = (self.settings.get("base_url") or self.settings.get("login_url") or "").rstrip("/")
        self.login_path = self.settings.get("login_path", "/login")
        self.billing_path = self.settings.get("billing_path", "/billing")
        self.selectors = dict(DEFAULT_SELECTORS, **(self.settings.get("selectors") or {}))
        self.timeout = self.settings.get("timeout", 30)
        self.session = requests.Session()

    async def fetch(self) -> Bill:
        return await asyncio.to_thread(self._fetch_sync)

    def _fetch_sync(self) -> Bill:
        self.authenticate()
        url = f"{self.base_url}{self.billing_path}"
        self.logger.info(f"{self.name}: fetching billing page {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        fields = parse_billing_page(response.text, self.selectors, self.base_url)
        return self.bill(
            fields.amount,
            fields.due_date,
            currency=fields.currency or self.settings.get("currency", "USD"),
            pay_url=fields.pay_url,
        )

    def authenticate(self) -> None:
        """Post the login form; cookies stay on the requests session."""
        username = self.credential("username", 0)
        password = self.credential("password", 1)
        if not username or not password:
            raise ProviderError(f"{self.name}: missing credentials")
        response = self.session.post(
            f"{self.base_url}{self.login_path}",
            data={"username": username, "password": password},
            timeout=self.timeout,
        )
        response.raise_for_status()
