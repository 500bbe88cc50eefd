"""
Browser access method: for portals that need a scripted login.
Opens a BrowserPort, makes sure a session exists (restore or log in),
then hands the authenticated port to extract_bills().
"""
import asyncio
import re
from abc import abstractmethod
from typing import Callable, List, Optional, Sequence

from billtracker.browser import BrowserPort, create_browser
from billtracker.core.bill import Bill
from billtracker.core.session_manager import BrowserLoginFlow, Credentials, LoginFlow, SessionManager
from billtracker.core.session_store import SESSION_TTL, SessionStore
from ..base import BillProvider


class BrowserProvider(BillProvider):
    method = "browser"

    login_url: str = ""
    landing_url: str = ""
    authenticated_markers: Sequence[str] = ()
    unauthenticated_markers: Sequence[str] = ("login", "signin", "logon")
    username_selector: str = 'input[name="username"], input[name="email"]'
    password_selector: str = 'input[name="password"], input[type="password"]'
    submit_selector: str = 'button[type="submit"]'
    continue_selector: Optional[str] = None

    def __init__(
        self,
        settings,
        config=None,
        logger=None,
        port_factory: Optional[Callable[[], BrowserPort]] = None,
        session_store: Optional[SessionStore] = None,
    ):
        super().__init__(settings, config, logger)
        for attr in ("login_url", "landing_url", "username_selector", "password_selector",
                     "submit_selector", "continue_selector"):
            if self.settings.get(attr):
                setattr(self, attr, self.settings[attr])
        if self.settings.get("authenticated_markers"):
            self.authenticated_markers = tuple(self.settings["authenticated_markers"])
        self._port_factory = port_factory or (
            lambda: create_browser(self.config, self.session_name, logger=self.logger)
        )
        if session_store is None:
            session_store = SessionStore(self.config.session_dir if self.config is not None else None)
        self.session_store = session_store

    @property
    def session_name(self) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", self.name.lower()).strip("-")
        return self.settings.get("session_name") or f"{slug}-bill-tracker"

    @property
    def step_timeout(self) -> float:
        return self.config.step_timeout if self.config is not None else 30.0

    def credentials(self) -> Credentials:
        return Credentials(self.credential("username", 0), self.credential("password", 1))

    def login_flow(self, port: BrowserPort) -> LoginFlow:
        return BrowserLoginFlow(
            port,
            login_url=self.login_url,
            landing_url=self.landing_url,
            authenticated_markers=self.authenticated_markers,
            unauthenticated_markers=self.unauthenticated_markers,
            username_selector=self.username_selector,
            password_selector=self.password_selector,
            submit_selector=self.submit_selector,
            continue_selector=self.continue_selector,
        )

    async def fetch(self) -> List[Bill]:
        session_ttl = self.config.session_ttl if self.config is not None else SESSION_TTL
        async with self._port_factory() as port:
            manager = SessionManager(
                self.name,
                self.session_store,
                self.login_flow(port),
                self.credentials(),
                session_ttl=session_ttl,
                logger=self.logger,
            )
            await manager.ensure_session()
            return await self.extract_bills(port)

    @abstractmethod
    async def extract_bills(self, port: BrowserPort) -> List[Bill]:
        """Read bills from the authenticated portal."""

    async def wait_for_text(
        self,
        port: BrowserPort,
        needles: Sequence[str],
        timeout: Optional[float] = None,
        interval: float = 1.0,
    ) -> str:
        """Poll document.body.innerText until one of needles appears; return the last text seen."""
        deadline = asyncio.get_running_loop().time() + (timeout if timeout is not None else self.step_timeout)
        text = ""
        while True:
            text = await port.evaluate("document.body.innerText")
            if any(n in text for n in needles):
                return text
            if asyncio.get_running_loop().time() >= deadline:
                return text
            await asyncio.sleep(interval)
