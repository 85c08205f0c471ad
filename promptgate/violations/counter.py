"""Rolling per-user violation counter.

Counts confirmed violations in a rolling window anchored at "now" when
the count is read.  Reads fail closed (:class:`CounterReadFailure`):
undercounting silently weakens enforcement.  Writes are best effort: the
user has already been denied, and the count only feeds future escalation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from promptgate.errors import CounterReadFailure
from promptgate.violations.models import EventKind, ViolationEvent

if TYPE_CHECKING:
    from promptgate.ports import ViolationEventStore

log = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=24)

# Consecutive write failures after which the counter is considered degraded.
WRITE_FAILURE_ALERT_THRESHOLD = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ViolationCounter:
    def __init__(
        self,
        store: ViolationEventStore,
        window: timedelta = DEFAULT_WINDOW,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self.window = window
        self._clock = clock or _utcnow
        self.consecutive_write_failures = 0

    def increment(self, user_id: str, source: str = "") -> int:
        """Record one confirmed block and return the user's current count.

        A failed write is logged but does not stop the count from being read.
        """
        event = ViolationEvent(user_id=user_id, source=source, timestamp=self._clock())
        try:
            self._store.append(event)
        except Exception as exc:  # any backend error; the denial already happened
            self.consecutive_write_failures += 1
            log.error(
                "Violation counter write failed",
                exc_info=exc,
                extra={
                    "user_id": user_id,
                    "source": source,
                    "consecutive_failures": self.consecutive_write_failures,
                },
            )
            if self.consecutive_write_failures >= WRITE_FAILURE_ALERT_THRESHOLD:
                log.critical(
                    "Violation counter degraded: %d consecutive write failures; "
                    "escalation is undercounting",
                    self.consecutive_write_failures,
                    extra={"user_id": user_id},
                )
        else:
            self.consecutive_write_failures = 0
        return self.count(user_id)

    def count(self, user_id: str) -> int:
        """Violations in the rolling window, ignoring anything before the last reset."""
        now = self._clock()
        since = now - self.window
        try:
            return self._store.count(user_id, since, now)
        except Exception as exc:  # any backend error must fail closed
            log.error("Violation counter read failed", exc_info=exc, extra={"user_id": user_id})
            raise CounterReadFailure(f"could not read violation count for user '{user_id}'") from exc

    def reset(self, user_id: str) -> None:
        """Clear the slate for *user_id* by appending a reset event."""
        self._store.append(
            ViolationEvent(user_id=user_id, source="reset", kind=EventKind.reset, timestamp=self._clock())
        )
        log.info("Violation count reset", extra={"user_id": user_id})
