import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from billtracker.core.bill import BillStatus
from billtracker.core.session_store import Cookie, SessionRecord, SessionStore
from billtracker.core.session_manager import LoginError
from billtracker.providers.base import ProviderError
from billtracker.providers.smarthub import SmartHubProvider, parse_smarthub_dashboard, parse_usage_from_body
from fakes import FakeBrowserPort, NOW

BASE_URL = "https://coserv.smarthub.coop"
HOME_URL = f"{BASE_URL}/ui/#/home"

DASHBOARD = """HOME
$80.50 Current Bill Amount
$0.00 Past Due Balance
Next Auto Pay Due Date February 3, 2026
Last Payment $75.10 on January 5, 2026
Usage Comparison
Dec 2025512
Jan 2026568
kWh"""

PAID_DASHBOARD = """HOME
$0.00 Current Bill Amount
$0.00 Past Due Balance
Next Auto Pay Due Date March 3, 2026"""


def test_parse_dashboard():
    fields = parse_smarthub_dashboard(DASHBOARD)
    assert fields.current_balance == Decimal("80.50")
    assert fields.past_due == Decimal("0.00")
    assert fields.payment_due is True
    assert fields.due_date == datetime(2026, 2, 3)
    assert fields.last_payment_amount == Decimal("75.10")
    assert fields.last_payment_date == datetime(2026, 1, 5)
    assert fields.usage == "568 kWh"


def test_parse_dashboard_nothing_owed():
    fields = parse_smarthub_dashboard(PAID_DASHBOARD)
    assert fields.payment_due is False
    assert fields.due_date == datetime(2026, 3, 3)


def test_parse_dashboard_without_due_date():
    fields = parse_smarthub_dashboard("Current Bill Amount $12.00")
    assert fields.current_balance == Decimal("12.00")
    assert fields.due_date is None


def test_usage_prefers_latest_month():
    assert parse_usage_from_body("Jan 2026100 Dec 2025900") == "100 kWh"
    assert parse_usage_from_body("Used 42 therms", unit="therms") == "42 therms"
    assert parse_usage_from_body("") is None


def _provider(tmp_path, port, **settings):
    settings = dict({"base_url": BASE_URL, "username": "me@example.com", "password": "pw"}, **settings)
    return SmartHubProvider(settings, port_factory=lambda: port, session_store=SessionStore(str(tmp_path)))


def test_fetch_logs_in_and_reads_dashboard(tmp_path):
    """No saved session: log in, save the session, read the dashboard into one Bill."""
    port = FakeBrowserPort(cookies=[Cookie("sid", "abc")], pages={HOME_URL: DASHBOARD})
    provider = _provider(tmp_path, port, name="CoServ Gas")

    [bill] = asyncio.run(provider.fetch())

    assert bill.source == "CoServ Gas"
    assert bill.amount == Decimal("80.50")
    assert bill.due_date == datetime(2026, 2, 3)
    assert bill.pay_url == f"{BASE_URL}/ui/#/billing"
    assert ("fill", SmartHubProvider.username_selector, "me@example.com") in port.actions
    assert port.closed
    assert SessionStore(str(tmp_path)).read("CoServ Gas").cookies == [Cookie("sid", "abc")]


def test_fetch_reuses_saved_session(tmp_path):
    port = FakeBrowserPort(pages={HOME_URL: PAID_DASHBOARD})
    provider = _provider(tmp_path, port)
    SessionStore(str(tmp_path)).write(
        "SmartHub", SessionRecord.create([Cookie("sid", "saved")], datetime.now(NOW.tzinfo))
    )

    [bill] = asyncio.run(provider.fetch())

    assert not [a for a in port.actions if a[0] == "fill"]
    assert bill.status == BillStatus.PAID


def test_dashboard_without_due_date_fails(tmp_path):
    port = FakeBrowserPort(pages={HOME_URL: "Current Bill Amount $12.00"})
    with pytest.raises(ProviderError):
        asyncio.run(_provider(tmp_path, port).fetch())


def test_login_landing_on_login_page_fails(tmp_path):
    port = FakeBrowserPort()
    port.redirects[HOME_URL] = f"{BASE_URL}/ui/#/login"
    with pytest.raises(LoginError):
        asyncio.run(_provider(tmp_path, port).fetch())
    assert port.closed


def test_base_url_is_required():
    with pytest.raises(ValueError):
        SmartHubProvider({})
