"""Append-only violation event log.

Events are persisted as newline-delimited JSON in daily log files stored
under ``~/.promptgate/violations/``.  Queries only open the files a time
range spans, so a rolling 24-hour count reads at most two files.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

from promptgate.violations.models import EventKind, ViolationEvent

log = logging.getLogger(__name__)


class JsonlViolationEventStore:
    """File-based JSONL event store.

    Read errors (missing permissions, unreadable files) propagate to the
    caller.  A line that is not valid JSON, such as a torn trailing write, is
    skipped with a warning.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".promptgate" / "violations"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, d: date) -> Path:
        """Return the log file path for a given date."""
        return self._base_dir / f"{d.strftime('%Y-%m-%d')}.jsonl"

    def _iter_events(self, since: datetime, until: datetime) -> Iterator[ViolationEvent]:
        day = since.date()
        while day <= until.date():
            path = self._log_file_for_date(day)
            day += timedelta(days=1)
            if not path.exists():
                continue
            text = path.read_text(encoding="utf-8")
            for lineno, line in enumerate(text.splitlines(), start=1):
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    log.warning(
                        "Skipping corrupt violation event line",
                        extra={"event_file": str(path), "line_number": lineno},
                    )
                    continue
                yield ViolationEvent(**data)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, event: ViolationEvent) -> None:
        log_file = self._log_file_for_date(event.timestamp.date())
        with self._lock, log_file.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event.to_dict()) + "\n")

    def count(self, user_id: str, since: datetime, until: datetime) -> int:
        """Violations in ``(since, until]`` logged after the user's latest reset.

        Resets are ordered by log position, not timestamp, so a violation
        logged after a reset counts even when both carry the same instant.
        """
        n = 0
        for e in self._iter_events(since, until):
            if e.user_id != user_id or not since < e.timestamp <= until:
                continue
            if e.kind is EventKind.reset:
                n = 0
            elif e.kind is EventKind.violation:
                n += 1
        return n

    def events_for_user(self, user_id: str, since: datetime, until: datetime) -> list[ViolationEvent]:
        """Return the user's events in the range, oldest first."""
        events = [e for e in self._iter_events(since, until) if e.user_id == user_id]
        events.sort(key=lambda e: e.timestamp)
        return events
