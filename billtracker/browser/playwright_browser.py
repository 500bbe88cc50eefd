"""
Headless Chromium through Playwright's async API.
"""
import asyncio
import json
from typing import List, Optional
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from billtracker.core.session_store import Cookie
from .base import BrowserError, BrowserPort, BrowserTimeout, DEFAULT_STEP_TIMEOUT


class PlaywrightBrowser(BrowserPort):
    def __init__(self, headless: bool = True, step_timeout: float = DEFAULT_STEP_TIMEOUT, logger=None):
        super().__init__(step_timeout=step_timeout, logger=logger)
        self.headless = headless
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def start(self) -> None:
        if self._page is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--disable-blink-features=AutomationControlled"],
            )
            self._context = await self._browser.new_context(viewport={"width": 1280, "height": 800})
            self._context.set_default_timeout(self.step_timeout * 1000)
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise BrowserError(f"Failed to launch browser: {e}") from e
        self.logger.debug(f"Browser started (headless={self.headless})")

    def _require_page(self):
        if self._page is None:
            raise BrowserError("Browser not started")
        return self._page

    async def _run(self, action: str, coro, timeout: float):
        try:
            return await asyncio.wait_for(coro, timeout)
        except (PlaywrightTimeout, asyncio.TimeoutError) as e:
            raise BrowserTimeout(f"{action} timed out after {timeout}s") from e
        except PlaywrightError as e:
            raise BrowserError(f"{action} failed: {e}") from e

    async def open(self, url: str, timeout: Optional[float] = None) -> None:
        t = self._timeout(timeout)
        page = self._require_page()
        await self._run(f"open {url}", page.goto(url, wait_until="domcontentloaded", timeout=t * 1000), t)

    async def fill(self, selector: str, value: str, timeout: Optional[float] = None) -> None:
        t = self._timeout(timeout)
        page = self._require_page()
        await self._run(f"fill {selector}", page.fill(selector, value, timeout=t * 1000), t)

    async def click(self, selector: str, timeout: Optional[float] = None) -> None:
        t = self._timeout(timeout)
        page = self._require_page()
        await self._run(f"click {selector}", page.locator(selector).first.click(timeout=t * 1000), t)

    async def evaluate(self, script: str, timeout: Optional[float] = None) -> str:
        t = self._timeout(timeout)
        page = self._require_page()
        result = await self._run("evaluate", page.evaluate(script), t)
        if result is None:
            return ""
        return result if isinstance(result, str) else json.dumps(result)

    async def get_cookies(self, timeout: Optional[float] = None) -> List[Cookie]:
        self._require_page()
        cookies = await self._run("get cookies", self._context.cookies(), self._timeout(timeout))
        return [Cookie(c["name"], c["value"]) for c in cookies]

    async def set_cookies(self, cookies: List[Cookie], timeout: Optional[float] = None) -> None:
        page = self._require_page()
        parts = urlsplit(page.url or "")
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise BrowserError("set_cookies needs an open origin")
        # Scope to the site root; a page URL would limit the cookie path to that page's directory
        origin = f"{parts.scheme}://{parts.netloc}/"
        payload = [{"name": c.name, "value": c.value, "url": origin} for c in cookies]
        await self._run("set cookies", self._context.add_cookies(payload), self._timeout(timeout))

    async def close(self) -> None:
        # Each step is guarded on its own so a failing context close still stops the driver
        if self._context is not None:
            await self._close_quietly("context", self._context.close)
        if self._browser is not None:
            await self._close_quietly("browser", self._browser.close)
        if self._playwright is not None:
            await self._close_quietly("playwright", self._playwright.stop)
        self._page = self._context = self._browser = self._playwright = None

    async def _close_quietly(self, what: str, closer) -> None:
        try:
            await closer()
        except PlaywrightError as e:
            self.logger.debug(f"Error closing {what}: {e}")
