"""Response cache and bearer-token holder used by ResilientClient."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from src.core.clock import Clock, default_clock


@dataclass
class CacheEntry:
    """A cached payload and the epoch second it expires at."""

    data: Any
    expires_at: float


class ResponseCache:
    """TTL cache for idempotent (GET) response payloads.

    Entries are evicted lazily: on lookup when expired, and in bulk by
    ``clear()`` / ``purge_expired()``. Once more than *max_entries* are held,
    ``set()`` purges expired entries and then drops the oldest writes.
    """

    def __init__(
        self,
        default_ttl_secs: float = 300.0,
        clock: Clock | None = None,
        max_entries: int = 1000,
    ) -> None:
        self._default_ttl = default_ttl_secs
        self._max_entries = max_entries
        self._clock = clock or default_clock()
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock.now() < entry.expires_at

    @staticmethod
    def key_for(method: str, path: str, params: dict[str, Any] | None = None) -> str:
        key = f"{method.upper()}:{path}"
        if params:
            query = "&".join(f"{k}={params[k]}" for k in sorted(params))
            key = f"{key}?{query}"
        return key

    def get(self, key: str) -> tuple[bool, Any]:
        """Return (found, data); counts a hit or a miss."""
        entry = self._entries.get(key)
        if entry is not None and self._clock.now() < entry.expires_at:
            self.hits += 1
            return True, entry.data
        if entry is not None:
            del self._entries[key]
        self.misses += 1
        return False, None

    def set(self, key: str, data: Any, ttl_secs: float | None = None) -> None:
        ttl = self._default_ttl if ttl_secs is None else ttl_secs
        if ttl <= 0:
            return
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(data=data, expires_at=self._clock.now() + ttl)
        if len(self._entries) > self._max_entries:
            self.purge_expired()
            # Dicts keep insertion order, so the first keys are the oldest writes.
            while len(self._entries) > self._max_entries:
                del self._entries[next(iter(self._entries))]

    def clear(self, pattern: str | None = None) -> int:
        """Drop entries whose key matches *pattern* (regex), or all of them.

        Expired entries are purged as well. Returns the number removed.
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed

        regex = re.compile(pattern)
        doomed = [k for k in self._entries if regex.search(k)]
        for key in doomed:
            del self._entries[key]
        return len(doomed) + self.purge_expired()

    def purge_expired(self) -> int:
        now = self._clock.now()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)


class AuthToken:
    """Bearer token with an expiry; ``valid`` is False once it lapses."""

    DEFAULT_LIFETIME_SECS = 60 * 60

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or default_clock()
        self._token: str | None = None
        self._expires_at = 0.0

    def set(self, token: str, expires_in_ms: int | None = None) -> None:
        lifetime = (
            expires_in_ms / 1000.0 if expires_in_ms is not None else self.DEFAULT_LIFETIME_SECS
        )
        self._token = token
        self._expires_at = self._clock.now() + lifetime

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0

    @property
    def is_set(self) -> bool:
        return self._token is not None

    @property
    def valid(self) -> bool:
        return self._token is not None and self._clock.now() < self._expires_at

    def header(self) -> dict[str, str]:
        if not self.valid:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
