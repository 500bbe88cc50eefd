from .base import BrowserError, BrowserPort, BrowserTimeout

__all__ = ["BrowserError", "BrowserPort", "BrowserTimeout", "create_browser"]


def create_browser(config, session_name: str, logger=None) -> BrowserPort:
    """Factory: return the browser port selected by config.browser_backend."""
    backend = (config.browser_backend or "playwright").lower()
    if backend == "agent-browser":
        from .agent_browser import AgentBrowser
        return AgentBrowser(session_name, step_timeout=config.step_timeout, logger=logger)
    if backend == "playwright":
        from .playwright_browser import PlaywrightBrowser
        return PlaywrightBrowser(headless=config.headless, step_timeout=config.step_timeout, logger=logger)
    raise ValueError(f"Unknown browser backend: {backend!r}")
