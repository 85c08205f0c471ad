"""In-process cache of the prompt allowlist.

Constructed once at startup and shared by the audit orchestrator.  The
snapshot refreshes lazily once its TTL has elapsed; writers call
:meth:`AllowlistCache.bust` so the change applies immediately in this
process.  Other processes pick it up within one TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from promptgate.allowlist.store import AllowlistStore, normalize_key
from promptgate.errors import StoreCorrupted
from promptgate.moderation.models import PromptTrigger

log = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class AllowlistCache:
    def __init__(
        self,
        store: AllowlistStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._keys: frozenset[tuple[str, str]] = frozenset()
        self._loaded_at: Optional[float] = None
        self._lock = threading.Lock()

    def refresh(self) -> None:
        """Reload every entry from the store."""
        keys = frozenset(e.key for e in self._store.list_entries())
        with self._lock:
            self._keys = keys
            self._loaded_at = self._clock()
        log.debug("Allowlist cache refreshed", extra={"entries": len(keys)})

    def bust(self) -> None:
        """Mark the snapshot stale; the next read reloads it."""
        with self._lock:
            self._loaded_at = None

    def _snapshot(self) -> frozenset[tuple[str, str]]:
        with self._lock:
            loaded_at = self._loaded_at
        if loaded_at is None or self._clock() - loaded_at >= self.ttl_seconds:
            try:
                self.refresh()
            except (OSError, ValueError, StoreCorrupted) as exc:
                # A stale or empty allowlist only blocks more, never less.
                log.error("Allowlist refresh failed; using previous snapshot", exc_info=exc)
        return self._keys

    def is_allowed(self, trigger: str, category: str) -> bool:
        return normalize_key(trigger, category) in self._snapshot()

    def filter(self, triggers: list[PromptTrigger]) -> list[PromptTrigger]:
        """Drop allowlisted triggers.  Triggers without a matched word are kept."""
        keys = self._snapshot()
        if not keys:
            return list(triggers)
        return [
            t
            for t in triggers
            if t.matched_word is None
            or normalize_key(t.matched_word, t.category.value) not in keys
        ]
