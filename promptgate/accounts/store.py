"""File-based JSON storage for accounts and sessions.

Reference implementations of the ``AccountStore`` and ``SessionService``
ports, backed by simple JSON files under ``~/.promptgate/accounts/``.
"""

from __future__ import annotations

import secrets
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from promptgate.accounts.models import Account, Session
from promptgate.jsonfile import file_lock, read_rows, write_rows


def _default_dir(base_dir: Optional[str | Path]) -> Path:
    base = Path(base_dir) if base_dir else Path.home() / ".promptgate" / "accounts"
    base.mkdir(parents=True, exist_ok=True)
    return base


class JsonAccountStore:
    """File-based account storage.

    Storage path: ``~/.promptgate/accounts/accounts.json``.
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        self._base = _default_dir(base_dir)
        self._accounts_path = self._base / "accounts.json"
        self._lock = threading.Lock()
        self._file_lock = file_lock(self._accounts_path)

    @staticmethod
    def _account_from_dict(d: dict) -> Account:
        return Account(
            id=d["id"],
            username=d.get("username", ""),
            moderator=d.get("moderator", False),
            muted=d.get("muted", False),
            muted_at=d.get("muted_at", ""),
            mute_confirmed_at=d.get("mute_confirmed_at", ""),
            created_at=d.get("created_at", ""),
        )

    def _update(self, user_id: str, **changes: object) -> None:
        with self._lock, self._file_lock:
            accounts = read_rows(self._accounts_path)
            for d in accounts:
                if d["id"] == user_id:
                    d.update(changes)
                    break
            else:
                # Accounts are owned by the surrounding application; create a
                # stub so enforcement is never lost for an unknown user.
                d = {"id": user_id, "username": "", "created_at": datetime.utcnow().isoformat()}
                d.update(changes)
                accounts.append(d)
            write_rows(self._accounts_path, accounts)

    # ------------------------------------------------------------------
    # Account CRUD
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        with self._lock, self._file_lock:
            accounts = read_rows(self._accounts_path)
            accounts.append({
                "id": account.id,
                "username": account.username,
                "moderator": account.moderator,
                "muted": account.muted,
                "muted_at": account.muted_at,
                "mute_confirmed_at": account.mute_confirmed_at,
                "created_at": account.created_at,
            })
            write_rows(self._accounts_path, accounts)
        return account

    def get_account(self, user_id: str) -> Optional[Account]:
        for d in read_rows(self._accounts_path):
            if d["id"] == user_id:
                return self._account_from_dict(d)
        return None

    def list_accounts(self) -> list[Account]:
        return [self._account_from_dict(d) for d in read_rows(self._accounts_path)]

    def find_user_ids_by_username(self, fragment: str) -> list[str]:
        """Case-insensitive substring match on usernames."""
        needle = fragment.lower()
        return [
            d["id"]
            for d in read_rows(self._accounts_path)
            if needle in d.get("username", "").lower()
        ]

    # ------------------------------------------------------------------
    # Restriction state
    # ------------------------------------------------------------------

    def set_muted(self, user_id: str, muted: bool) -> None:
        if muted:
            self._update(user_id, muted=True, muted_at=datetime.utcnow().isoformat())
        else:
            self._update(user_id, muted=False)

    def confirm_mute(self, user_id: str) -> None:
        now = datetime.utcnow().isoformat()
        self._update(user_id, muted=True, mute_confirmed_at=now)

    def reset_violation_state(self, user_id: str) -> None:
        self._update(user_id, muted_at="", mute_confirmed_at="")


class JsonSessionStore:
    """File-based session storage.

    Storage path: ``~/.promptgate/accounts/sessions.json``.  Invalidated
    sessions are kept with an ``invalidated_at`` stamp.
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        self._base = _default_dir(base_dir)
        self._sessions_path = self._base / "sessions.json"
        self._lock = threading.Lock()
        self._file_lock = file_lock(self._sessions_path)

    @staticmethod
    def _session_from_dict(d: dict) -> Session:
        return Session(
            id=d["id"],
            user_id=d["user_id"],
            token=d["token"],
            created_at=d.get("created_at", ""),
            expires_at=d.get("expires_at", ""),
            invalidated_at=d.get("invalidated_at", ""),
        )

    def create_session(self, user_id: str, expires_in_hours: int = 24) -> Session:
        """Create a new session for a user."""
        now = datetime.utcnow()
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token=secrets.token_urlsafe(48),
            created_at=now.isoformat(),
            expires_at=(now + timedelta(hours=expires_in_hours)).isoformat(),
        )
        with self._lock, self._file_lock:
            sessions = read_rows(self._sessions_path)
            sessions.append({
                "id": session.id,
                "user_id": session.user_id,
                "token": session.token,
                "created_at": session.created_at,
                "expires_at": session.expires_at,
                "invalidated_at": "",
            })
            write_rows(self._sessions_path, sessions)
        return session

    def active_sessions(self, user_id: str) -> list[Session]:
        now = datetime.utcnow().isoformat()
        return [
            self._session_from_dict(d)
            for d in read_rows(self._sessions_path)
            if d["user_id"] == user_id
            and not d.get("invalidated_at")
            and not (d.get("expires_at") and d["expires_at"] < now)
        ]

    def validate_session(self, token: str) -> Optional[Session]:
        """Return the session for *token* if it is still active."""
        now = datetime.utcnow().isoformat()
        for d in read_rows(self._sessions_path):
            if d["token"] != token:
                continue
            if d.get("invalidated_at") or (d.get("expires_at") and d["expires_at"] < now):
                return None
            return self._session_from_dict(d)
        return None

    def invalidate_sessions(self, user_id: str) -> int:
        """Invalidate every active session for *user_id*.  Returns how many changed."""
        now = datetime.utcnow().isoformat()
        changed = 0
        with self._lock, self._file_lock:
            sessions = read_rows(self._sessions_path)
            for d in sessions:
                if d["user_id"] == user_id and not d.get("invalidated_at"):
                    d["invalidated_at"] = now
                    changed += 1
            if changed:
                write_rows(self._sessions_path, sessions)
        return changed
