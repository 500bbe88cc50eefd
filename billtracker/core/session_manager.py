"""
Per-source session state machine: reuse a saved session when it is still valid,
otherwise log in and persist the new session.

    Unauthenticated -> Restoring -> Authenticated
    Unauthenticated -> LoggingIn -> Authenticated
    Authenticated   -> Unauthenticated   (invalidate)

The manager only knows the restore -> verify -> login -> persist protocol.
How a session is carried (cookies in a browser, a token, ...) is the LoginFlow's business.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from billtracker.core.session_store import SESSION_TTL, Cookie, SessionRecord, SessionStore

Credentials = namedtuple("Credentials", ["username", "password"])


class SessionState:
    UNAUTHENTICATED = "unauthenticated"
    RESTORING = "restoring"
    LOGGING_IN = "logging_in"
    AUTHENTICATED = "authenticated"


class LoginError(Exception):
    """Login was rejected, timed out, or ended on an unexpected page."""


class LoginFlow(ABC):
    """Transport for one source's session: how to restore, log in, verify and capture."""

    @abstractmethod
    async def restore(self, cookies: List[Cookie]) -> None:
        """Re-establish the automated context from a saved session artifact."""

    @abstractmethod
    async def login(self, credentials: Credentials) -> None:
        """Submit credentials."""

    @abstractmethod
    async def is_authenticated(self) -> bool:
        """Check the authenticated marker (URL pattern, DOM marker, API call)."""

    @abstractmethod
    async def capture(self) -> List[Cookie]:
        """Return the session artifact to persist after a successful login."""


class BrowserLoginFlow(LoginFlow):
    """
    Cookie sessions over a BrowserPort.
    Verification reads the current URL: it must contain one of authenticated_markers
    and none of unauthenticated_markers.
    """

    def __init__(
        self,
        port,
        login_url: str,
        landing_url: str,
        authenticated_markers: Sequence[str],
        unauthenticated_markers: Sequence[str] = ("login", "signin", "logon"),
        username_selector: str = 'input[name="username"], input[name="email"]',
        password_selector: str = 'input[name="password"], input[type="password"]',
        submit_selector: str = 'button[type="submit"]',
        continue_selector: Optional[str] = None,
    ):
        self.port = port
        self.login_url = login_url
        self.landing_url = landing_url
        self.authenticated_markers = tuple(authenticated_markers)
        self.unauthenticated_markers = tuple(unauthenticated_markers)
        self.username_selector = username_selector
        self.password_selector = password_selector
        self.submit_selector = submit_selector
        self.continue_selector = continue_selector

    async def restore(self, cookies: List[Cookie]) -> None:
        await self.port.open(self.login_url)
        await self.port.set_cookies(cookies)
        await self.port.open(self.landing_url)

    async def login(self, credentials: Credentials) -> None:
        await self.port.open(self.login_url)
        await self.port.fill(self.username_selector, credentials.username)
        # Two-step logins show the password field only after "Continue"
        if self.continue_selector:
            await self.port.click(self.continue_selector)
        await self.port.fill(self.password_selector, credentials.password)
        await self.port.click(self.submit_selector)
        await self.port.open(self.landing_url)

    async def is_authenticated(self) -> bool:
        url = (await self.port.current_url()).lower()
        if any(m.lower() in url for m in self.unauthenticated_markers):
            return False
        return any(m.lower() in url for m in self.authenticated_markers)

    async def capture(self) -> List[Cookie]:
        return await self.port.get_cookies()


class SessionManager:
    RESTORED = "restored"
    LOGGED_IN = "logged_in"

    def __init__(
        self,
        source_id: str,
        store: SessionStore,
        flow: LoginFlow,
        credentials: Optional[Credentials],
        session_ttl: timedelta = SESSION_TTL,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.source_id = source_id
        self.store = store
        self.flow = flow
        self.credentials = credentials
        self.session_ttl = session_ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.state = SessionState.UNAUTHENTICATED

    def invalidate(self) -> None:
        """Mark the session as no longer usable (e.g. expiry detected mid-fetch)."""
        self.state = SessionState.UNAUTHENTICATED

    async def ensure_session(self) -> str:
        """Return RESTORED or LOGGED_IN once authenticated; raise LoginError otherwise. Never retries."""
        if self.state == SessionState.AUTHENTICATED:
            return self.RESTORED

        record = await asyncio.to_thread(self.store.read, self.source_id)
        if record is not None and not record.is_expired(self._clock()):
            if await self._try_restore(record):
                return self.RESTORED
        elif record is not None:
            self.logger.info(f"{self.source_id}: saved session expired at {record.expires_at.isoformat()}")

        await self._login()
        return self.LOGGED_IN

    async def _try_restore(self, record: SessionRecord) -> bool:
        self.state = SessionState.RESTORING
        try:
            await self.flow.restore(record.cookies)
            ok = await self.flow.is_authenticated()
        except Exception as e:
            self.logger.warning(f"{self.source_id}: session restore failed: {e}")
            ok = False
        if ok:
            self.state = SessionState.AUTHENTICATED
            self.logger.info(f"{self.source_id}: using existing session")
            return True
        self.state = SessionState.UNAUTHENTICATED
        self.logger.info(f"{self.source_id}: saved session rejected, logging in")
        return False

    async def _login(self) -> None:
        if not self.credentials or not self.credentials.username or not self.credentials.password:
            raise LoginError(f"{self.source_id}: missing credentials")

        self.state = SessionState.LOGGING_IN
        self.logger.info(f"Logging into {self.source_id}...")
        try:
            await self.flow.login(self.credentials)
            ok = await self.flow.is_authenticated()
        except Exception as e:
            self.state = SessionState.UNAUTHENTICATED
            raise LoginError(f"{self.source_id}: login failed: {e}") from e
        if not ok:
            self.state = SessionState.UNAUTHENTICATED
            raise LoginError(f"{self.source_id}: login did not reach an authenticated page")

        self.state = SessionState.AUTHENTICATED
        try:
            cookies = await self.flow.capture()
            record = SessionRecord.create(cookies, self._clock(), self.session_ttl)
            await asyncio.to_thread(self.store.write, self.source_id, record)
        except Exception as e:
            self.logger.warning(f"{self.source_id}: failed to save session: {e}")
