"""Thread-safe in-memory cache of the meeting slots offered to each session.

Design decisions
────────────────
• Keyed by session id; each value is the **full** list most recently
  returned by the calendar for that session, so ``book_meeting`` can resolve
  an index the model picked from the three slots it was shown.
• **threading.Lock** for thread safety (turns run in worker threads).
• No per-entry TTL.  :meth:`SlotCache.sweep` is a coarse valve that drops
  *every* entry once the cache holds more than ``max_entries`` sessions.  The
  owner of the cache (the FastAPI lifespan) calls it on a timer.
• Purely ephemeral.  A session whose slots were swept simply has to search
  again before booking.

>>> cache = SlotCache(max_entries=100)
>>> cache.put("session-1", slots)
>>> cache.get("session-1")
[TimeSlot(...), ...]
>>> cache.invalidate("session-1")
True
"""

from __future__ import annotations

import logging
import threading

from lynx_sdr.config import SLOT_CACHE_MAX_ENTRIES
from lynx_sdr.services.calendar_client import TimeSlot

logger = logging.getLogger(__name__)


class SlotCache:
    """Session id → most recently fetched list of :class:`TimeSlot`."""

    def __init__(self, max_entries: int = SLOT_CACHE_MAX_ENTRIES) -> None:
        self._max_entries = max_entries
        self._store: dict[str, list[TimeSlot]] = {}
        self._lock = threading.Lock()

    # ── Core operations ──────────────────────────────────────────────

    def get(self, session_id: str) -> list[TimeSlot] | None:
        with self._lock:
            slots = self._store.get(session_id)
            return list(slots) if slots is not None else None

    def put(self, session_id: str, slots: list[TimeSlot]) -> None:
        """Replace whatever was cached for *session_id*."""
        with self._lock:
            self._store[session_id] = list(slots)

    def invalidate(self, session_id: str) -> bool:
        """Remove one session's slots.  Returns ``True`` if there were any."""
        with self._lock:
            return self._store.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def sweep(self) -> int:
        """Drop every entry if the cache has grown past ``max_entries``.

        Returns the number of sessions dropped (0 when under the limit).
        """
        with self._lock:
            count = len(self._store)
            if count <= self._max_entries:
                return 0
            self._store.clear()
        logger.info("Slot cache swept: %d sessions dropped", count)
        return count

    # ── Introspection ────────────────────────────────────────────────

    @property
    def entry_count(self) -> int:
        with self._lock:
            return len(self._store)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def has(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._store
