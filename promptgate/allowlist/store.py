"""File-based JSON storage for prompt allowlist entries.

Each entry is keyed by ``(trigger, category)``.  Keys are normalised
(trimmed, case-folded) so a second write for the same pair updates the
existing entry instead of adding a duplicate.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from promptgate.jsonfile import file_lock, read_rows, write_rows


def normalize_key(trigger: str, category: str) -> tuple[str, str]:
    return trigger.strip().casefold(), category.strip().casefold()


@dataclass
class AllowlistEntry:
    """A (trigger, category) pair that no longer blocks prompts."""

    trigger: str
    category: str
    added_by: str
    reason: str = ""
    restriction_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return normalize_key(self.trigger, self.category)


class AllowlistStore:
    """File-based storage for allowlist entries.

    Storage path: ``~/.promptgate/allowlist/entries.json``.
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".promptgate" / "allowlist"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._entries_path = self._base / "entries.json"
        self._lock = threading.Lock()
        self._file_lock = file_lock(self._entries_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> list[dict]:
        return read_rows(self._entries_path)

    def _write_json(self, data: list[dict]) -> None:
        write_rows(self._entries_path, data)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def upsert(
        self,
        trigger: str,
        category: str,
        added_by: str,
        reason: str = "",
        restriction_id: Optional[str] = None,
    ) -> AllowlistEntry:
        """Create the entry, or update ``added_by``/``reason`` if the key exists."""
        key = normalize_key(trigger, category)
        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._file_lock:
            entries = self._read_json()
            for d in entries:
                if normalize_key(d["trigger"], d["category"]) == key:
                    d["added_by"] = added_by
                    d["reason"] = reason
                    d["updated_at"] = now
                    self._write_json(entries)
                    return AllowlistEntry(**d)
            entry = AllowlistEntry(
                trigger=trigger.strip(),
                category=category.strip(),
                added_by=added_by,
                reason=reason,
                restriction_id=restriction_id,
                created_at=now,
                updated_at=now,
            )
            entries.append(asdict(entry))
            self._write_json(entries)
        return entry

    def remove(self, trigger: str, category: str) -> bool:
        key = normalize_key(trigger, category)
        with self._lock, self._file_lock:
            entries = self._read_json()
            kept = [d for d in entries if normalize_key(d["trigger"], d["category"]) != key]
            if len(kept) == len(entries):
                return False
            self._write_json(kept)
        return True

    def get(self, trigger: str, category: str) -> Optional[AllowlistEntry]:
        key = normalize_key(trigger, category)
        for d in self._read_json():
            if normalize_key(d["trigger"], d["category"]) == key:
                return AllowlistEntry(**d)
        return None

    def list_entries(self) -> list[AllowlistEntry]:
        return [AllowlistEntry(**d) for d in self._read_json()]
