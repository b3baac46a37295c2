"""Per-sheet snapshot cache with a time-to-live.

Each entry holds the complete decoded row set of one sheet. Entries are
replaced whole, never patched, so a reader always sees one consistent
snapshot.

Every invalidation bumps the sheet's generation. A reader records the
generation before going to the store and hands it back to ``set``; if a
write invalidated the sheet in between, the rows it read are returned but
not cached.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, NamedTuple, Optional, Tuple

from .codec import SheetRow
from .metrics import CACHE_EVENTS

log = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class Snapshot(NamedTuple):
    rows: Tuple[SheetRow, ...]
    captured_at: float


class SheetCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, Snapshot] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self.hits = 0
        self.misses = 0

    def get(self, sheet: str) -> Optional[Tuple[SheetRow, ...]]:
        entry = self._entries.get(sheet)
        if entry is not None and self._clock() - entry.captured_at < self.ttl_seconds:
            self.hits += 1
            CACHE_EVENTS.labels(sheet, "hit").inc()
            return entry.rows
        self.misses += 1
        CACHE_EVENTS.labels(sheet, "miss").inc()
        return None

    def generation(self, sheet: str) -> int:
        return self._epoch + self._generations.get(sheet, 0)

    def set(
        self,
        sheet: str,
        rows: Iterable[SheetRow],
        generation: Optional[int] = None,
    ) -> Tuple[SheetRow, ...]:
        snapshot = Snapshot(tuple(rows), self._clock())
        if generation is not None and generation != self.generation(sheet):
            CACHE_EVENTS.labels(sheet, "stale").inc()
            log.debug("discarded stale read of %s", sheet)
            return snapshot.rows
        self._entries[sheet] = snapshot
        log.debug("cached %d rows for %s", len(snapshot.rows), sheet)
        return snapshot.rows

    def invalidate(self, sheet: str) -> None:
        self._generations[sheet] = self._generations.get(sheet, 0) + 1
        if self._entries.pop(sheet, None) is not None:
            CACHE_EVENTS.labels(sheet, "invalidate").inc()
            log.debug("invalidated cache for %s", sheet)

    def clear(self) -> None:
        self._epoch += 1
        for sheet in list(self._entries):
            self.invalidate(sheet)

    def stats(self) -> dict:
        now = self._clock()
        return {
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "sheets": {
                name: {
                    "rows": len(entry.rows),
                    "age_seconds": round(now - entry.captured_at, 3),
                }
                for name, entry in self._entries.items()
            },
        }
