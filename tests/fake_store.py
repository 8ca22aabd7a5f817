"""
In-memory StoreAdapter for tests.

Enforces the same uniqueness constraints as the real schema so races and
upserts behave the way they would against Postgres. Every call is recorded
in ``calls`` as (method, target) and failures can be injected per call.
"""

import sys
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

sys.path.insert(0, str(Path(__file__).parent.parent))

from store.base import (
    EVENT_SIGNED_IN,
    EVENT_SIGNED_OUT,
    PG_UNIQUE_VIOLATION,
    AuthRejectedError,
    AuthSession,
    ConflictError,
    Principal,
    StoreError,
)

# Columns with a unique constraint, per table
UNIQUE_KEYS = {
    "profiles": ("id",),
    "user_preferences": ("id", "user_id"),
    "case_files": ("id",),
    "evidence_items": ("id",),
}

# (table, related table) -> foreign key column on table
JOINS = {
    ("evidence_items", "case_files"): "case_id",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeStore:
    """Thread-safe in-memory tables plus a toy auth service."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in UNIQUE_KEYS}
        self.users: Dict[str, Dict[str, str]] = {}  # email -> {"id", "password"}
        self.session: Optional[AuthSession] = None
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.callbacks: List[Callable] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail(self, method: str, target: str, error: Optional[Exception] = None) -> None:
        """Make the next and every later (method, target) call raise."""
        self.failures[(method, target)] = error or StoreError("service unavailable", "503")

    def heal(self, method: str, target: str) -> None:
        self.failures.pop((method, target), None)

    def _record(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        error = self.failures.get((method, target))
        if error is not None:
            raise error

    def calls_to(self, method: str, target: Optional[str] = None) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] == method and (target is None or c[1] == target)]

    def add_user(self, email: str, password: str) -> Principal:
        user_id = str(uuid.uuid4())
        self.users[email] = {"id": user_id, "password": password}
        return Principal(id=user_id, email=email)

    def login_as(self, principal: Principal) -> AuthSession:
        self.session = AuthSession(principal=principal, issued_at=datetime.now(timezone.utc))
        return self.session

    def emit(self, event: str, session: Optional[AuthSession]) -> None:
        for callback in list(self.callbacks):
            callback(event, session)

    def rows(self, table: str, **match) -> List[Dict[str, Any]]:
        return [r for r in self.tables[table] if all(r.get(k) == v for k, v in match.items())]

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _matches(self, table: str, row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        for column, value in filters.items():
            if "." in column:
                related, related_column = column.split(".", 1)
                fk = JOINS[(table, related)]
                parents = [p for p in self.tables[related] if p.get("id") == row.get(fk)]
                if not any(p.get(related_column) == value for p in parents):
                    return False
            elif isinstance(value, (list, tuple, set)):
                if row.get(column) not in value:
                    return False
            elif row.get(column) != value:
                return False
        return True

    def _check_unique(self, table: str, row: Dict[str, Any], ignore: Optional[Dict] = None) -> None:
        for key in UNIQUE_KEYS[table]:
            for existing in self.tables[table]:
                if existing is ignore:
                    continue
                if key in row and existing.get(key) == row[key]:
                    raise ConflictError(
                        f'duplicate key value violates unique constraint "{table}_{key}_key"',
                        PG_UNIQUE_VIOLATION,
                    )

    def select(self, table: str, filters: Dict[str, Any], columns: str = "*") -> List[Dict[str, Any]]:
        with self._lock:
            self._record("select", table)
            return [dict(r) for r in self.tables[table] if self._matches(table, r, filters)]

    def insert(self, table: str, records: Union[Dict, List[Dict]]) -> List[Dict[str, Any]]:
        with self._lock:
            self._record("insert", table)
            batch = records if isinstance(records, list) else [records]
            prepared = []
            for record in batch:
                row = dict(record)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", _now())
                row.setdefault("updated_at", row["created_at"])
                self._check_unique(table, row)
                for other in prepared:
                    for key in UNIQUE_KEYS[table]:
                        if key in row and other.get(key) == row[key]:
                            raise ConflictError("duplicate key in batch", PG_UNIQUE_VIOLATION)
                prepared.append(row)
            self.tables[table].extend(prepared)
            return [dict(r) for r in prepared]

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            self._record("update", table)
            updated = []
            for row in self.tables[table]:
                if self._matches(table, row, filters):
                    row.update(patch)
                    row["updated_at"] = _now()
                    updated.append(dict(row))
            return updated

    def upsert(self, table: str, record: Dict[str, Any], on_conflict: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._record("upsert", table)
            for row in self.tables[table]:
                if row.get(on_conflict) == record.get(on_conflict):
                    row.update(record)
                    row["updated_at"] = _now()
                    return [dict(row)]
            row = dict(record)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", _now())
            self._check_unique(table, row)
            self.tables[table].append(row)
            return [dict(row)]

    def delete(self, table: str, filters: Dict[str, Any]) -> None:
        with self._lock:
            self._record("delete", table)
            self.tables[table] = [r for r in self.tables[table] if not self._matches(table, r, filters)]

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        with self._lock:
            self._record("rpc", name)
            if name == "delete_user" and self.session is not None:
                email = self.session.principal.email
                self.users.pop(email, None)
            return None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def current_session(self) -> Optional[AuthSession]:
        self._record("auth", "get_session")
        return self.session

    def sign_up(self, email: str, password: str, redirect_to: str) -> Optional[AuthSession]:
        self._record("auth", "sign_up")
        if email in self.users:
            raise AuthRejectedError("User already registered", "user_already_exists")
        if len(password) < 6:
            raise AuthRejectedError("Password should be at least 6 characters", "weak_password")
        self.add_user(email, password)
        self.last_redirect = redirect_to
        return None

    def sign_in(self, email: str, password: str) -> AuthSession:
        self._record("auth", "sign_in")
        user = self.users.get(email)
        if user is None or user["password"] != password:
            raise AuthRejectedError("Invalid login credentials", "invalid_credentials")
        session = self.login_as(Principal(id=user["id"], email=email))
        self.emit(EVENT_SIGNED_IN, session)
        return session

    def sign_out(self) -> None:
        self._record("auth", "sign_out")
        self.session = None
        self.emit(EVENT_SIGNED_OUT, None)

    def update_user(self, email: Optional[str] = None, password: Optional[str] = None) -> Principal:
        self._record("auth", "update_user")
        if self.session is None:
            raise AuthRejectedError("Auth session missing", "session_not_found")
        principal = self.session.principal
        user = self.users.pop(principal.email)
        if password is not None:
            user["password"] = password
        new_email = email or principal.email
        self.users[new_email] = user
        updated = Principal(id=principal.id, email=new_email)
        self.session = AuthSession(principal=updated, issued_at=self.session.issued_at)
        return updated

    def on_session_change(self, callback: Callable) -> Callable[[], None]:
        self.callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self.callbacks:
                self.callbacks.remove(callback)

        return _unsubscribe
