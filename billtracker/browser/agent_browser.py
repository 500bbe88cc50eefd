"""
Browser port backed by the agent-browser command line tool.
Each action is one subprocess call (`agent-browser --session <name> <command> ...`);
the named session keeps the browser alive between calls.
"""
import asyncio
import re
from typing import List, Optional

from billtracker.core.session_store import Cookie
from .base import BrowserError, BrowserPort, BrowserTimeout, DEFAULT_STEP_TIMEOUT

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def parse_cookie_header(text: str) -> List[Cookie]:
    """Parse 'a=1; b=2' as printed by `agent-browser cookies`."""
    cookies = []
    for pair in (text or "").split(";"):
        pair = pair.strip()
        if not pair or "=" not in pair:
            continue
        name, value = pair.split("=", 1)
        if name:
            cookies.append(Cookie(name.strip(), value))
    return cookies


class AgentBrowser(BrowserPort):
    def __init__(
        self,
        session_name: str,
        executable: str = "agent-browser",
        step_timeout: float = DEFAULT_STEP_TIMEOUT,
        logger=None,
    ):
        super().__init__(step_timeout=step_timeout, logger=logger)
        self.session_name = session_name
        self.executable = executable

    async def _exec(self, *args: str, timeout: Optional[float] = None) -> str:
        t = self._timeout(timeout)
        cmd = [self.executable, "--session", self.session_name, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BrowserError(f"Cannot run {self.executable}: {e}") from e
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), t)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise BrowserTimeout(f"{args[0]} timed out after {t}s") from e
        if proc.returncode != 0:
            err = _ANSI_RE.sub("", stderr.decode("utf-8", "replace")).strip()
            raise BrowserError(f"{args[0]} failed (exit {proc.returncode}): {err}")
        return _ANSI_RE.sub("", stdout.decode("utf-8", "replace")).strip()

    async def open(self, url: str, timeout: Optional[float] = None) -> None:
        await self._exec("open", url, timeout=timeout)

    async def fill(self, selector: str, value: str, timeout: Optional[float] = None) -> None:
        await self._exec("fill", selector, value, timeout=timeout)

    async def click(self, selector: str, timeout: Optional[float] = None) -> None:
        await self._exec("click", selector, timeout=timeout)

    async def evaluate(self, script: str, timeout: Optional[float] = None) -> str:
        return await self._exec("eval", script, timeout=timeout)

    async def current_url(self, timeout: Optional[float] = None) -> str:
        return await self._exec("get", "url", timeout=timeout)

    async def get_cookies(self, timeout: Optional[float] = None) -> List[Cookie]:
        return parse_cookie_header(await self._exec("cookies", timeout=timeout))

    async def set_cookies(self, cookies: List[Cookie], timeout: Optional[float] = None) -> None:
        for cookie in cookies:
            await self._exec("cookies", "set", cookie.name, cookie.value, timeout=timeout)

    async def close(self) -> None:
        try:
            await self._exec("close")
        except BrowserError as e:
            self.logger.debug(f"agent-browser close: {e}")
