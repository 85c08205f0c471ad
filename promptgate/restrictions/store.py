"""File-based JSON storage for restrictions.

Provides create, query and state-transition operations for generation
restrictions, backed by ``~/.promptgate/restrictions/restrictions.json``.

Every read-check-write runs under a thread lock and a cross-process file lock
(``restrictions.json.lock``), so :meth:`RestrictionStore.transition`
is a conditional update: two moderators racing to resolve the same
restriction cannot both succeed.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from promptgate.errors import RestrictionAlreadyResolved, RestrictionNotFound
from promptgate.jsonfile import file_lock, read_rows, write_rows
from promptgate.restrictions.models import BlockedPrompt, Restriction, RestrictionStatus


def _to_dict(r: Restriction) -> dict:
    d = asdict(r)
    d["status"] = r.status.value
    return d


class RestrictionStore:
    """File-based storage for restrictions.

    Storage path: ``~/.promptgate/restrictions/`` with:
    - ``restrictions.json`` -- list of restriction dicts
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".promptgate" / "restrictions"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._restrictions_path = self._base / "restrictions.json"
        self._lock = threading.RLock()
        self._file_lock = file_lock(self._restrictions_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> list[dict]:
        return read_rows(self._restrictions_path)

    def _write_json(self, data: list[dict]) -> None:
        write_rows(self._restrictions_path, data)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_or_append_pending(
        self,
        user_id: str,
        triggers: list[str],
        blocked_prompt: BlockedPrompt,
    ) -> tuple[Restriction, bool]:
        """Create a Pending restriction for *user_id*, or extend the existing one.

        Returns ``(restriction, created)``.
        """
        with self._lock, self._file_lock:
            rows = self._read_json()
            for d in rows:
                if d["user_id"] == user_id and d["status"] == RestrictionStatus.pending.value:
                    for t in triggers:
                        if t not in d["triggers"]:
                            d["triggers"].append(t)
                    d["blocked_prompts"].append(asdict(blocked_prompt))
                    self._write_json(rows)
                    return Restriction(**d), False

            restriction = Restriction(
                id=str(uuid.uuid4()),
                user_id=user_id,
                triggers=list(triggers),
                blocked_prompts=[blocked_prompt],
                created_at=datetime.utcnow().isoformat(),
            )
            rows.append(_to_dict(restriction))
            self._write_json(rows)
        return restriction, True

    def get(self, restriction_id: str) -> Optional[Restriction]:
        """Look up a restriction by ID.  Returns None if not found."""
        for d in self._read_json():
            if d["id"] == restriction_id:
                return Restriction(**d)
        return None

    def query(
        self,
        status: Optional[RestrictionStatus] = None,
        user_ids: Optional[set[str]] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Restriction], int]:
        """Return ``(page, total_count)``, newest first."""
        rows = self._read_json()
        if status is not None:
            rows = [d for d in rows if d["status"] == status.value]
        if user_ids is not None:
            rows = [d for d in rows if d["user_id"] in user_ids]
        rows.sort(key=lambda d: d.get("created_at", ""), reverse=True)
        return [Restriction(**d) for d in rows[offset : offset + limit]], len(rows)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        restriction_id: str,
        status: RestrictionStatus,
        resolved_by: str,
        resolved_message: str = "",
    ) -> Restriction:
        """Move a Pending restriction to a terminal *status*.

        Raises :class:`RestrictionNotFound` or :class:`RestrictionAlreadyResolved`
        without writing anything.
        """
        if not status.is_terminal:
            raise ValueError(f"cannot transition a restriction to {status.value}")
        with self._lock, self._file_lock:
            rows = self._read_json()
            for d in rows:
                if d["id"] != restriction_id:
                    continue
                if d["status"] != RestrictionStatus.pending.value:
                    raise RestrictionAlreadyResolved(restriction_id, d["status"])
                d["status"] = status.value
                d["resolved_at"] = datetime.utcnow().isoformat()
                d["resolved_by"] = resolved_by
                d["resolved_message"] = resolved_message
                self._write_json(rows)
                return Restriction(**d)
        raise RestrictionNotFound(restriction_id)

    def set_user_message(self, restriction_id: str, user_id: str, message: str) -> Restriction:
        """Attach the restricted user's explanation to a Pending restriction."""
        with self._lock, self._file_lock:
            rows = self._read_json()
            for d in rows:
                if d["id"] != restriction_id or d["user_id"] != user_id:
                    continue
                if d["status"] != RestrictionStatus.pending.value:
                    raise RestrictionAlreadyResolved(restriction_id, d["status"])
                d["user_message"] = message
                d["user_message_at"] = datetime.utcnow().isoformat()
                self._write_json(rows)
                return Restriction(**d)
        raise RestrictionNotFound(restriction_id)
