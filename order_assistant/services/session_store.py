from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import AsyncIterator, Callable, Optional

from ..config import get_settings
from ..intents import Locale
from ..models.session import Session
from .metrics import MetricsService, get_metrics_service

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: Session
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0
    last_seen: float = 0.0


class SessionStore:
    """
    In-memory registry of dialog sessions keyed by user/channel key.

    Bounded by max_entries (LRU) and idle TTL. A session is processed by one
    message at a time: acquire() holds a per-key asyncio.Lock, so unrelated
    sessions never wait on each other. Entries that are held or awaited are
    never evicted.
    """

    def __init__(
        self,
        *,
        max_entries: int | None = None,
        idle_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsService | None = None,
    ) -> None:
        settings = get_settings()
        self._max_entries = max_entries if max_entries is not None else settings.session_max_entries
        self._idle_ttl = idle_ttl_seconds if idle_ttl_seconds is not None else settings.session_idle_ttl_seconds
        self._clock = clock
        self._metrics = metrics or get_metrics_service()
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = Lock()

    def _checkout(self, key: str, locale: Locale | None) -> _Entry:
        now = self._clock()
        with self._lock:
            self._evict_expired_locked(now)
            entry = self._entries.get(key)
            if entry is None:
                session = Session(key=key, locale=locale or Locale.RU, created_at=now, last_seen_at=now)
                entry = _Entry(session=session, last_seen=now)
                self._entries[key] = entry
                logger.debug("Created session %s", key)
            self._entries.move_to_end(key)
            entry.holders += 1
            entry.last_seen = now
            self._evict_overflow_locked()
            return entry

    def _release(self, entry: _Entry) -> None:
        with self._lock:
            entry.holders -= 1
            entry.last_seen = self._clock()

    def _evict_expired_locked(self, now: float) -> int:
        if self._idle_ttl <= 0:
            return 0
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.holders == 0 and now - entry.last_seen > self._idle_ttl
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Evicted %s idle sessions", len(expired))
            self._metrics.record_sessions_evicted(len(expired))
        return len(expired)

    def _evict_overflow_locked(self) -> None:
        if self._max_entries <= 0:
            return
        evicted = 0
        for key in list(self._entries.keys()):
            if len(self._entries) <= self._max_entries:
                break
            if self._entries[key].holders == 0:
                del self._entries[key]
                evicted += 1
        if evicted:
            logger.info("Evicted %s least recently used sessions", evicted)
            self._metrics.record_sessions_evicted(evicted)

    @asynccontextmanager
    async def acquire(self, key: str, locale: Locale | None = None) -> AsyncIterator[Session]:
        """Exclusive access to the session for one inbound message. Locale applies on creation only."""
        if not key:
            raise ValueError("session key is required")
        entry = self._checkout(key, locale)
        try:
            async with entry.lock:
                entry.session.last_seen_at = self._clock()
                yield entry.session
        finally:
            self._release(entry)

    def get(self, key: str) -> Optional[Session]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.session if entry else None

    def evict_expired(self) -> int:
        with self._lock:
            return self._evict_expired_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)


_session_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store
