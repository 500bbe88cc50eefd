"""
Test doubles shared by the test modules: a scripted provider, a recording
BrowserPort, a scripted LoginFlow and a settable clock.
"""
import asyncio
from datetime import datetime, timedelta, timezone

from billtracker.browser import BrowserError, BrowserPort
from billtracker.core.bill import BillCategory, make_bill
from billtracker.core.session_manager import LoginFlow
from billtracker.core.session_store import Cookie

NOW = datetime(2024, 2, 15, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def bill(source="Test Utility", amount="10.00", due=datetime(2024, 3, 1, tzinfo=timezone.utc), **kwargs):
    kwargs.setdefault("category", BillCategory.UTILITY)
    kwargs.setdefault("now", NOW)
    return make_bill(source, kwargs.pop("category"), amount, due, **kwargs)


class FakeProvider:
    """Provider whose fetch() returns (or raises) a scripted result and counts calls."""

    def __init__(self, name, result=None, error=None, delay=0):
        self.name = name
        self.result = result if result is not None else []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeBrowserPort(BrowserPort):
    """
    Records every action. `url` follows open(); `pages` maps a url to the text
    returned for document.body.innerText; `evaluations` maps a script to a result.
    """

    def __init__(self, url="about:blank", cookies=None, pages=None, evaluations=None, fail_on=()):
        super().__init__(step_timeout=1)
        self.url = url
        self.cookies = list(cookies or [])
        self.pages = dict(pages or {})
        self.evaluations = dict(evaluations or {})
        self.fail_on = set(fail_on)
        self.redirects = {}
        self.actions = []
        self.closed = False

    def _record(self, *action):
        self.actions.append(action)
        if action[0] in self.fail_on:
            raise BrowserError(f"{action[0]} failed")

    async def open(self, url, timeout=None):
        self._record("open", url)
        self.url = self.redirects.get(url, url)

    async def fill(self, selector, value, timeout=None):
        self._record("fill", selector, value)

    async def click(self, selector, timeout=None):
        self._record("click", selector)

    async def evaluate(self, script, timeout=None):
        self._record("evaluate", script)
        if script == "window.location.href":
            return self.url
        if script == "document.body.innerText":
            return self.pages.get(self.url, "")
        return self.evaluations.get(script, "")

    async def get_cookies(self, timeout=None):
        self._record("get_cookies")
        return list(self.cookies)

    async def set_cookies(self, cookies, timeout=None):
        self._record("set_cookies", list(cookies))
        self.cookies = list(cookies)

    async def close(self):
        self.closed = True

    def opened(self):
        return [a[1] for a in self.actions if a[0] == "open"]


class FakeLoginFlow(LoginFlow):
    """LoginFlow with scripted outcomes; counts restore/login calls."""

    def __init__(self, restore_ok=True, login_ok=True, login_error=None, restore_error=None,
                 cookies=(Cookie("sid", "new"),)):
        self.restore_ok = restore_ok
        self.login_ok = login_ok
        self.login_error = login_error
        self.restore_error = restore_error
        self.cookies = list(cookies)
        self.restored_with = None
        self.restore_calls = 0
        self.login_calls = 0
        self._authenticated = False

    async def restore(self, cookies):
        self.restore_calls += 1
        self.restored_with = list(cookies)
        if self.restore_error is not None:
            raise self.restore_error
        self._authenticated = self.restore_ok

    async def login(self, credentials):
        self.login_calls += 1
        if self.login_error is not None:
            raise self.login_error
        self._authenticated = self.login_ok

    async def is_authenticated(self):
        return self._authenticated

    async def capture(self):
        return list(self.cookies)
