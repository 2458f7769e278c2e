"""Process-wide fallback cache for pending correlation state.

Browsers regularly come back from a consent screen without the session
write that started the flow (cookie dropped, session rotated, tab opened
elsewhere). The cache keeps the same correlation material keyed by
``(provider, state)`` so the callback can still be matched. It is volatile,
bounded and TTL-enforced; entries are single-use.
"""

from __future__ import annotations

import threading
import time

from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..state.types import PendingAuth


@dataclass
class _Entry:
    pending: PendingAuth
    session_id: str
    expires_at: float


class CorrelationCache:
    """Bounded, TTL-enforced store for pending correlation state.

    Thread-safe via ``threading.Lock``. Evicts expired entries on every
    access and enforces a hard capacity limit to prevent memory exhaustion.
    Starting a new flow for the same session and provider drops the entry
    of the earlier flow.

    Parameters
    ----------
    max_pending : int
        Maximum number of concurrent pending entries.
    clock : Callable[[], float], optional
        Source of the current time (defaults to ``time.time``).
    """

    def __init__(self, max_pending: int = 1000, clock: Callable[[], float] = time.time) -> None:
        self._store: dict[tuple[str, str], _Entry] = {}
        self._latest: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()
        self._max_pending = max_pending
        self._clock = clock

    def put(self, session_id: str, pending: PendingAuth, ttl: float) -> None:
        """Store pending state for ``(pending.provider, pending.state)``."""
        with self._lock:
            self._evict_expired()
            provider = pending.provider
            previous = self._latest.get((session_id, provider))
            if previous is not None:
                self._store.pop((provider, previous), None)
            if len(self._store) >= self._max_pending:
                # Evict oldest entry when at capacity
                oldest_key = min(self._store, key=lambda k: self._store[k].expires_at)
                self._drop(oldest_key)
            self._store[(provider, pending.state)] = _Entry(
                pending=pending,
                session_id=session_id,
                expires_at=self._clock() + ttl,
            )
            self._latest[(session_id, provider)] = pending.state

    def pop(self, provider: str, state: str, session_id: str | None = None) -> PendingAuth | None:
        """Retrieve and remove pending state (single-use).

        With ``session_id`` only the session the state was issued to can
        redeem it; an entry held for another session is left in place.
        """
        with self._lock:
            self._evict_expired()
            entry = self._store.get((provider, state))
            if entry is None:
                return None
            if session_id is not None and entry.session_id != session_id:
                return None
            self._drop((provider, state))
            return entry.pending

    def discard(self, session_id: str, provider: str) -> None:
        """Drop whatever entry the session holds for the provider."""
        with self._lock:
            state = self._latest.get((session_id, provider))
            if state is not None:
                self._drop((provider, state))

    def cleanup(self) -> int:
        """Explicitly clean up expired entries. Returns count removed."""
        with self._lock:
            before = len(self._store)
            self._evict_expired()
            return before - len(self._store)

    def size(self) -> int:
        """Return current number of pending entries."""
        with self._lock:
            return len(self._store)

    def __contains__(self, key: tuple[str, str]) -> bool:
        with self._lock:
            self._evict_expired()
            return key in self._store

    def _drop(self, key: tuple[str, str]) -> None:
        """Remove an entry and its session index (caller must hold lock)."""
        entry = self._store.pop(key, None)
        if entry is None:
            return
        index_key = (entry.session_id, key[0])
        if self._latest.get(index_key) == key[1]:
            del self._latest[index_key]

    def _evict_expired(self) -> None:
        """Remove all expired entries (caller must hold lock)."""
        now = self._clock()
        for key in [k for k, v in self._store.items() if now >= v.expires_at]:
            self._drop(key)
