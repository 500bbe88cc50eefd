"""
Browser automation port: the narrow set of actions session management and
browser providers are allowed to use. Every action takes an explicit timeout
in seconds (default: the port's step_timeout).
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from billtracker.core.session_store import Cookie

DEFAULT_STEP_TIMEOUT = 30.0


class BrowserError(Exception):
    """A browser action failed."""


class BrowserTimeout(BrowserError):
    """A browser action did not finish within its timeout."""


class BrowserPort(ABC):
    def __init__(self, step_timeout: float = DEFAULT_STEP_TIMEOUT, logger: Optional[logging.Logger] = None):
        self.step_timeout = step_timeout
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def _timeout(self, timeout: Optional[float]) -> float:
        return self.step_timeout if timeout is None else timeout

    async def start(self) -> None:
        """Acquire the underlying browser. Called by __aenter__."""

    @abstractmethod
    async def open(self, url: str, timeout: Optional[float] = None) -> None:
        pass

    @abstractmethod
    async def fill(self, selector: str, value: str, timeout: Optional[float] = None) -> None:
        pass

    @abstractmethod
    async def click(self, selector: str, timeout: Optional[float] = None) -> None:
        pass

    @abstractmethod
    async def evaluate(self, script: str, timeout: Optional[float] = None) -> str:
        """Run a JavaScript expression in the page and return its result as a string."""

    @abstractmethod
    async def get_cookies(self, timeout: Optional[float] = None) -> List[Cookie]:
        pass

    @abstractmethod
    async def set_cookies(self, cookies: List[Cookie], timeout: Optional[float] = None) -> None:
        """Inject cookies for the currently open origin."""

    @abstractmethod
    async def close(self) -> None:
        pass

    async def current_url(self, timeout: Optional[float] = None) -> str:
        return await self.evaluate("window.location.href", timeout=timeout)

    async def __aenter__(self) -> "BrowserPort":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
