"""
Base interface for bill providers.
All providers return Bill or List[Bill]; no dicts.
"""
import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Union

from dateutil import parser as dateutil_parser

from billtracker.core.bill import Bill, BillCategory, make_bill


class ProviderError(Exception):
    """A provider could not produce bills (unavailable site, unparseable page, missing credentials)."""


def parse_currency(text: Optional[str]) -> Optional[Decimal]:
    """Parse $X.XX or (X.XX) from text. Returns Decimal or None."""
    if not text:
        return None
    m = re.search(r"[\$\(]?\s*([\d,]+\.?\d*)\s*\)?", text)
    if not m:
        return None
    try:
        return Decimal(m.group(1).replace(",", ""))
    except InvalidOperation:
        return None


def parse_date_text(text: Optional[str], default: Optional[datetime] = None) -> Optional[datetime]:
    """Parse 1/7/2026, 'February 3, 2026', '2026-02-03' and similar. Returns None when unparseable."""
    if not text or not text.strip():
        return None
    text = text.strip()
    m = re.search(r"(\d{1,2})/(\d{1,2})/(\d{2,4})", text)
    if m:
        try:
            mo, d, y = int(m.group(1)), int(m.group(2)), int(m.group(3))
            if y < 100:
                y += 2000
            return datetime(y, mo, d)
        except ValueError:
            return None
    default = default or datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        return dateutil_parser.parse(text[:50], default=default, fuzzy=True)
    except (ValueError, OverflowError):
        return None


class BillProvider(ABC):
    """Abstract provider: fetch bills from one external source."""

    name: str = ""
    category: str = BillCategory.OTHER
    method: str = "api"
    # Environment variable names holding (username, password) when settings omit them
    env_vars: Sequence[str] = ()

    def __init__(self, settings: Dict[str, Any], config=None, logger: Optional[logging.Logger] = None):
        self.settings = settings or {}
        self.config = config
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        if self.settings.get("name"):
            self.name = self.settings["name"]
        elif not self.name:
            self.name = self.settings.get("id") or self.__class__.__name__
        if self.settings.get("category"):
            self.category = self.settings["category"]
        if self.settings.get("env_vars"):
            self.env_vars = tuple(self.settings["env_vars"])

    @abstractmethod
    async def fetch(self) -> Union[Bill, List[Bill]]:
        """Fetch and return bills. May raise anything; the orchestrator treats every error as a failed fetch."""

    def credential(self, key: str, index: int) -> str:
        """Resolve a credential from settings, else from the config's environment snapshot."""
        value = self.settings.get(key)
        if value:
            return str(value)
        if self.config is not None and len(self.env_vars) > index:
            return self.config.env(self.env_vars[index]) or ""
        return ""

    def bill(self, amount: Any, due_date: Union[date, datetime], **kwargs: Any) -> Bill:
        """make_bill() with this provider's name and category."""
        kwargs.setdefault("currency", self.settings.get("currency", "USD"))
        return make_bill(
            kwargs.pop("source", self.name),
            kwargs.pop("category", self.category),
            amount,
            due_date,
            **kwargs,
        )
