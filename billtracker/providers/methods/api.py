"""
API access method: direct REST calls for providers with an official API.
Balance and due date come from configured endpoints; values are picked out of
the JSON responses with dotted paths (e.g. "data.account.balance").
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict

import requests

from billtracker.core.bill import Bill
from ..base import BillProvider, ProviderError, parse_date_text

DEFAULT_TIMEOUT = 30


def lookup(data: Any, path: str) -> Any:
    """Follow a dotted path through dicts and lists; raise ProviderError if it is missing."""
    current = data
    for part in path.split("."):
        if isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        elif isinstance(current, dict) and part in current:
            current = current[part]
        else:
            raise ProviderError(f"Field {path!r} not found in response")
    return current


class ApiProvider(BillProvider):
    method = "api"

    def __init__(self, settings, config=None, logger=None):
        super().__init__(settings, config, logger)
        self.api_base = (self.settings.get("api_base") or "").rstrip("/")
        self.endpoints: Dict[str, str] = self.settings.get("endpoints") or {}
        self.timeout = self.settings.get("timeout", DEFAULT_TIMEOUT)
        self.session = requests.Session()

    async def fetch(self) -> Bill:
        return await asyncio.to_thread(self._fetch_sync)

    def _fetch_sync(self) -> Bill:
        self.prepare_session()
        balance_endpoint = self.endpoints.get("balance")
        due_endpoint = self.endpoints.get("due_date") or balance_endpoint
        if not balance_endpoint:
            raise ProviderError(f"{self.name}: no balance endpoint configured")

        balance_data = self._get_json(balance_endpoint)
        due_data = balance_data if due_endpoint == balance_endpoint else self._get_json(due_endpoint)

        amount = self.extract_balance(balance_data)
        due_date = self.extract_due_date(due_data)
        return self.bill(amount, due_date, pay_url=self.settings.get("pay_url"))

    def prepare_session(self) -> None:
        """Set auth headers before requests are made."""
        if (self.settings.get("auth") or "").lower() == "basic":
            user = self.credential("username", 0)
            password = self.credential("password", 1)
            if not user or not password:
                raise ProviderError(f"{self.name}: missing credentials")
            self.session.auth = (user, password)

    def _get_json(self, endpoint: str) -> Any:
        url = endpoint if endpoint.startswith("http") else f"{self.api_base}/{endpoint.lstrip('/')}"
        self.logger.debug(f"Making API request to {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def extract_balance(self, data: Any) -> Any:
        return lookup(data, self.settings.get("balance_field", "balance"))

    def extract_due_date(self, data: Any):
        value = lookup(data, self.settings.get("due_date_field", "due_date"))
        if isinstance(value, (int, float)):
            # Unix timestamp in seconds
            return datetime.fromtimestamp(value, tz=timezone.utc)
        parsed = parse_date_text(str(value))
        if parsed is None:
            raise ProviderError(f"{self.name}: invalid due date {value!r}")
        return parsed
