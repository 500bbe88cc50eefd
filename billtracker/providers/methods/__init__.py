from .api import ApiProvider
from .browser import BrowserProvider
from .oauth import OAuthProvider
from .scrape import ScrapeProvider

__all__ = ["ApiProvider", "BrowserProvider", "OAuthProvider", "ScrapeProvider"]
