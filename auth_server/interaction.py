"""
Short-lived interaction store: correlates a browser redirect with an error or a pending consent.
In-memory, keyed by an opaque id, TTL counted from creation.
"""
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable


@dataclass(frozen=True)
class ErrorMessage:
    error: str
    error_description: str | None = None
    client_id: str | None = None


@dataclass(frozen=True)
class ConsentRequest:
    """An authenticated authorization request waiting for the user's consent."""
    subject_id: str
    request: Any  # authorize.AuthorizeRequest
    auth_time: datetime


@dataclass
class _Entry:
    payload: Any
    created_at: float


class InteractionStore:
    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: _Entry, now: float) -> bool:
        return (now - entry.created_at) > self.ttl_seconds

    def create(self, payload: Any) -> str:
        interaction_id = secrets.token_urlsafe(24)
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            self._entries[interaction_id] = _Entry(payload=payload, created_at=now)
        return interaction_id

    def get(self, interaction_id: str | None) -> Any | None:
        """Payload for the id, or None if unknown or expired. Does not consume."""
        if not interaction_id:
            return None
        with self._lock:
            entry = self._entries.get(interaction_id)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[interaction_id]
                return None
            return entry.payload

    def pop(self, interaction_id: str | None) -> Any | None:
        """Consume: return the payload and remove the entry (None if unknown or expired)."""
        if not interaction_id:
            return None
        with self._lock:
            entry = self._entries.pop(interaction_id, None)
            if entry is None or self._expired(entry, self._clock()):
                return None
            return entry.payload

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if self._expired(e, now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_error_store: InteractionStore | None = None
_consent_store: InteractionStore | None = None


def get_error_store() -> InteractionStore:
    global _error_store
    if _error_store is None:
        from auth_server.config import INTERACTION_TTL_SECONDS

        _error_store = InteractionStore(INTERACTION_TTL_SECONDS)
    return _error_store


def get_consent_store() -> InteractionStore:
    global _consent_store
    if _consent_store is None:
        from auth_server.config import INTERACTION_TTL_SECONDS

        _consent_store = InteractionStore(INTERACTION_TTL_SECONDS)
    return _consent_store
