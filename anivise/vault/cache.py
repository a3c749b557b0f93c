"""Process-local read-through cache for decrypted secrets.

One SecretCache is built at application startup and shared by reference.
It is eventually consistent across processes: a secret rotated elsewhere
is served stale here until its TTL runs out.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from anivise.models.common import Clock, utc_now

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class _Entry:
    value: str
    expires_at: datetime


class SecretCache:
    """TTL cache keyed by (service, key) with an injectable clock."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[tuple[str, str], _Entry] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def peek(self, service: str, key: str) -> str | None:
        """Return a live entry without loading; expired entries are dropped."""
        entry = self._entries.get((service, key))
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[(service, key)]
            return None
        return entry.value

    def store(self, service: str, key: str, value: str) -> None:
        self._entries[(service, key)] = _Entry(
            value=value, expires_at=self._clock() + self._ttl,
        )

    async def get_or_load(
        self,
        service: str,
        key: str,
        loader: Callable[[str, str], Awaitable[str | None]],
    ) -> str | None:
        """Read-through lookup.

        A miss calls ``loader``; a None result evicts any stale entry so a
        deleted or undecryptable secret stops being served.
        """
        cached = self.peek(service, key)
        if cached is not None:
            return cached

        value = await loader(service, key)
        if value:
            self.store(service, key, value)
        else:
            self._entries.pop((service, key), None)
        return value

    def invalidate(self, service: str, key: str | None = None) -> None:
        """Drop one entry, or every entry for ``service`` when key is None."""
        if key is not None:
            self._entries.pop((service, key), None)
            return
        for cache_key in [k for k in self._entries if k[0] == service]:
            del self._entries[cache_key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
