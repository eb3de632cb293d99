"""Conversation store: where pending continuations live between events."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from slack_convo.models import PendingContinuation

logger = logging.getLogger(__name__)


class ConversationStore(Protocol):
    """Key/value interface the router needs from any backing store.

    Implementations must replace a key atomically (last write wins). They
    are not expected to evict expired records on their own.
    """

    def set(self, key: str, value: PendingContinuation) -> None: ...

    def get(self, key: str) -> PendingContinuation | None: ...

    def delete(self, key: str) -> None: ...

    def pop(self, key: str) -> PendingContinuation | None:
        """Remove and return the value at ``key`` in one atomic step."""
        ...


class MemoryStore:
    """In-process store backed by a dict.

    Expired continuations stay resident until they are overwritten, deleted,
    or removed by :meth:`prune`.
    """

    def __init__(self) -> None:
        self._data: dict[str, PendingContinuation] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: PendingContinuation) -> None:
        with self._lock:
            self._data[key] = value

    def get(self, key: str) -> PendingContinuation | None:
        with self._lock:
            return self._data.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def pop(self, key: str) -> PendingContinuation | None:
        with self._lock:
            return self._data.pop(key, None)

    def prune(self, now_ms: float) -> int:
        """Drop every expired continuation and return how many were removed."""
        with self._lock:
            expired = [k for k, v in self._data.items() if v.is_expired(now_ms)]
            for key in expired:
                del self._data[key]
        if expired:
            logger.debug("Pruned %d expired continuation(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
