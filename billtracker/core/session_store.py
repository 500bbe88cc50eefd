"""
File-backed store for authentication artifacts (cookie sets), one file per source.
Expiry is evaluated by the reader; the store never deletes files.
"""
import json
import logging
import os
from collections import namedtuple
from datetime import datetime, timedelta
from typing import List, Optional

from billtracker.core.cache_store import (
    atomic_write_json,
    from_epoch_ms,
    source_file_name,
    to_epoch_ms,
)

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=24)

Cookie = namedtuple("Cookie", ["name", "value"])


class SessionRecord(namedtuple("SessionRecord", ["saved_at", "expires_at", "cookies"])):
    """A saved session: aware datetimes and a list of Cookie."""

    __slots__ = ()

    @classmethod
    def create(cls, cookies: List[Cookie], now: datetime, ttl: timedelta = SESSION_TTL) -> "SessionRecord":
        return cls(saved_at=now, expires_at=now + ttl, cookies=list(cookies))

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class SessionStore:
    DEFAULT_SESSION_DIR = "sessions"

    def __init__(self, session_dir: Optional[str] = None):
        self.session_dir = os.path.expanduser(session_dir or self.DEFAULT_SESSION_DIR)

    def _get_session_file(self, source_id: str) -> str:
        return os.path.join(self.session_dir, source_file_name(source_id, "-session"))

    def read(self, source_id: str) -> Optional[SessionRecord]:
        """Return the saved record (expired or not), or None if missing or unreadable."""
        session_file = self._get_session_file(source_id)
        if not os.path.exists(session_file):
            return None
        try:
            with open(session_file, "r") as f:
                data = json.load(f)
            cookies = [Cookie(str(c["name"]), str(c["value"])) for c in data.get("data") or []]
            return SessionRecord(
                saved_at=from_epoch_ms(int(data["savedAt"])),
                expires_at=from_epoch_ms(int(data["expiresAt"])),
                cookies=cookies,
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable session file {session_file}: {e}")
            return None

    def write(self, source_id: str, record: SessionRecord) -> None:
        atomic_write_json(
            self._get_session_file(source_id),
            {
                "savedAt": to_epoch_ms(record.saved_at),
                "expiresAt": to_epoch_ms(record.expires_at),
                "data": [{"name": c.name, "value": c.value} for c in record.cookies],
            },
        )
        logger.info(f"Session saved for {source_id} (expires {record.expires_at.isoformat()})")
