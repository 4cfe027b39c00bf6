"""Lookup cache — process-local, per-entry expiry.

Used for: Dolibarr users (10-minute TTL), product catalog (60-minute TTL).
A cache miss always falls back to a direct fetch; nothing here talks to
the network.

The clock is injectable so expiry can be tested without sleeping.
"""

import logging
import threading
import time
from typing import Any, Callable

log = logging.getLogger("ordersync.cache")

_MISSING = object()


class TTLCache:
    def __init__(self, default_ttl: float = 600, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value if not expired, else default."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                log.debug("Cache EXPIRED: %s", key)
                return default
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def expiry(self, key: str) -> float | None:
        """Clock value at which the entry expires, or None if absent."""
        with self._lock:
            entry = self._entries.get(key)
            return entry[0] if entry else None

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count deleted."""
        now = self._clock()
        with self._lock:
            stale = [k for k, (exp, _) in self._entries.items() if now >= exp]
            for k in stale:
                del self._entries[k]
        if stale:
            log.info("Cache cleanup: removed %d expired entries", len(stale))
        return len(stale)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING
