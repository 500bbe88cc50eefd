"""
OAuth access method: client-credentials token, kept in memory until it expires,
sent as a bearer header on every API call.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..base import ProviderError
from .api import ApiProvider

# Refresh slightly before the server-side expiry
TOKEN_EXPIRY_MARGIN = timedelta(seconds=30)


class OAuthProvider(ApiProvider):
    method = "oauth"

    def __init__(self, settings, config=None, logger=None):
        super().__init__(settings, config, logger)
        self.token_url = self.settings.get("token_url") or f"{self.api_base}/oauth/token"
        self.access_token: Optional[str] = None
        self.token_expiry: Optional[datetime] = None

    def prepare_session(self) -> None:
        self.ensure_authenticated()

    def ensure_authenticated(self) -> None:
        now = datetime.now(timezone.utc)
        if self.access_token and self.token_expiry and now < self.token_expiry:
            return
        self.authenticate()

    def authenticate(self) -> None:
        client_id = self.credential("client_id", 0)
        client_secret = self.credential("client_secret", 1)
        if not client_id or not client_secret:
            raise ProviderError(f"{self.name}: missing OAuth client credentials")

        self.logger.info(f"{self.name}: requesting OAuth token")
        response = self.session.post(
            self.token_url,
            json={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        token = data.get("access_token")
        if not token:
            raise ProviderError(f"{self.name}: token response has no access_token")
        expires_in = int(data.get("expires_in", 3600))
        self.access_token = token
        self.token_expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_in) - TOKEN_EXPIRY_MARGIN
        self.session.headers["Authorization"] = f"Bearer {token}"
