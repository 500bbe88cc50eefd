import os
import json
import tempfile
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable, Dict, List, Optional

from billtracker.core.bill import Bill, bill_from_dict, bill_to_dict

logger = logging.getLogger(__name__)

CACHE_TTL = timedelta(hours=24)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def atomic_write_json(path: str, data: Dict[str, Any]) -> None:
    """Write JSON to a temp file in the same directory, then move it into place."""
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def source_file_name(source_id: str, suffix: str = "") -> str:
    """Lower-cased source name, safe as a single path component."""
    name = source_id.strip().lower().replace(os.sep, "_").replace("/", "_")
    return f"{name}{suffix}.json"


class CacheStore:
    """File-backed TTL cache: one JSON file of bills per source."""

    DEFAULT_CACHE_DIR = "data"

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        ttl: timedelta = CACHE_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize cache store
        Args:
            cache_dir: Cache directory from config, if None uses DEFAULT_CACHE_DIR
            ttl: Maximum age at which an entry is still fresh
            clock: Returns the current aware datetime; injectable for tests
        """
        self.cache_dir = os.path.expanduser(cache_dir or self.DEFAULT_CACHE_DIR)
        self.ttl = ttl
        self._clock = clock or _utc_now

    def _get_cache_file(self, source_id: str) -> str:
        return os.path.join(self.cache_dir, source_file_name(source_id))

    def _read_entry(self, source_id: str) -> Optional[Dict[str, Any]]:
        """Load and validate an entry; anything unreadable is reported as absent."""
        cache_file = self._get_cache_file(source_id)
        if not os.path.exists(cache_file):
            return None
        try:
            with open(cache_file, "r") as f:
                cached = json.load(f)
            timestamp = from_epoch_ms(int(cached["timestamp"]))
            bills = [bill_from_dict(d) for d in cached["bills"]]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable cache file {cache_file}: {e}")
            return None
        return {"timestamp": timestamp, "bills": bills}

    def read_fresh(self, source_id: str, ttl: Optional[timedelta] = None) -> Optional[List[Bill]]:
        """Get cached bills only if the entry is younger than ttl. Does not delete stale files."""
        entry = self._read_entry(source_id)
        if entry is None:
            return None
        age = self._clock() - entry["timestamp"]
        if age < (ttl if ttl is not None else self.ttl):
            logger.debug(f"Cache hit for {source_id} ({age.total_seconds() / 3600:.1f}h old)")
            return entry["bills"]
        return None

    def read_stale(self, source_id: str) -> Optional[List[Bill]]:
        """Get cached bills regardless of age."""
        entry = self._read_entry(source_id)
        return entry["bills"] if entry is not None else None

    def age(self, source_id: str) -> Optional[timedelta]:
        """Age of the cached entry, or None when absent."""
        entry = self._read_entry(source_id)
        if entry is None:
            return None
        return self._clock() - entry["timestamp"]

    def write(self, source_id: str, bills: List[Bill]) -> None:
        """Persist {timestamp: now, provider: source_id, bills} atomically."""
        cache_data = {
            "timestamp": to_epoch_ms(self._clock()),
            "provider": source_id,
            "bills": [bill_to_dict(b) for b in bills],
        }
        atomic_write_json(self._get_cache_file(source_id), cache_data)
