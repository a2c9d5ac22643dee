"""Time-limited in-memory store for pending provider OAuth flows."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

from cloudsync.providers import Provider


@dataclass(frozen=True)
class PendingAuthorization:
    provider: Provider
    redirect_uri: str


class OAuthStateStore:
    """Anti-forgery ``state`` values issued by connect and consumed by the callback."""

    def __init__(self, ttl_seconds: int = 600, max_entries: int = 100) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._entries: dict[str, tuple[PendingAuthorization, float]] = {}

    def issue(self, pending: PendingAuthorization) -> str:
        """Store *pending* under a fresh random state and return the state."""
        state = secrets.token_urlsafe(32)
        self.set(state, pending)
        return state

    def set(self, state: str, pending: PendingAuthorization) -> None:
        self.cleanup()
        if len(self._entries) >= self._max_entries:
            oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest_key]
        self._entries[state] = (pending, time.time())

    def pop(self, state: str) -> PendingAuthorization | None:
        """Consume a state. Unknown, reused and expired states return None."""
        entry = self._entries.pop(state, None)
        if entry is None:
            return None
        pending, created_at = entry
        if time.time() - created_at > self._ttl:
            return None
        return pending

    def cleanup(self) -> None:
        """Remove expired entries."""
        now = time.time()
        expired = [k for k, (_, t) in self._entries.items() if now - t > self._ttl]
        for k in expired:
            del self._entries[k]
