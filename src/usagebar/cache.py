"""Last-known-good usage per provider, in memory with optional disk persistence."""

from __future__ import annotations

import json
import logging
import threading
from datetime import timedelta
from pathlib import Path

from usagebar.models import UsageData, parse_dt, utcnow

logger = logging.getLogger(__name__)


class UsageCache:
    """
    Thread-safe cache keyed by provider id.

    Entries older than the expiry are filtered out on read but never evicted;
    they are replaced on the next ``set``.
    """

    def __init__(self, expiry_minutes: int = 5, path: Path | None = None) -> None:
        self.expiry = timedelta(minutes=expiry_minutes)
        self.path = path
        self._items: dict[str, UsageData] = {}
        self._lock = threading.Lock()

    def _is_fresh(self, data: UsageData) -> bool:
        return not data.is_stale(self.expiry)

    def get(self, provider: str) -> UsageData | None:
        with self._lock:
            data = self._items.get(provider)
        if data is None:
            return None
        if self._is_fresh(data):
            return data
        logger.debug("Cache expired for %s", provider)
        return None

    def set(self, provider: str, data: UsageData) -> None:
        with self._lock:
            self._items[provider] = data
        logger.debug("Cached data for %s", provider)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
        logger.debug("Cache cleared")

    def get_all(self) -> dict[str, UsageData]:
        with self._lock:
            items = dict(self._items)
        return {k: v for k, v in items.items() if self._is_fresh(v)}

    def save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            items = {k: v.to_dict() for k, v in self._items.items()}
        payload = {"timestamp": utcnow().isoformat(), "items": items}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2))
            logger.debug("Cache saved to %s", self.path)
        except OSError:
            logger.error("Failed to save cache to %s", self.path, exc_info=True)

    def load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError):
            logger.error("Failed to load cache from %s", self.path, exc_info=True)
            return

        if not isinstance(raw, dict):
            return
        timestamp = parse_dt(raw.get("timestamp"))
        if timestamp is None or utcnow() - timestamp > self.expiry:
            logger.debug("Cache file expired, ignoring")
            return

        loaded: dict[str, UsageData] = {}
        for provider, item in (raw.get("items") or {}).items():
            if not isinstance(item, dict):
                continue
            try:
                loaded[provider] = UsageData.from_dict(item)
            except (TypeError, ValueError):
                logger.debug("Skipping unreadable cache entry for %s", provider)

        with self._lock:
            self._items.update(loaded)
        logger.debug("Cache loaded from %s", self.path)
