"""Store adapter contract and shared store types."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

# Postgres / PostgREST error codes the account code cares about
PG_UNIQUE_VIOLATION = "23505"
PGRST_NO_ROWS = "PGRST116"

# Session-change event names emitted by the auth service
EVENT_INITIAL_SESSION = "INITIAL_SESSION"
EVENT_SIGNED_IN = "SIGNED_IN"
EVENT_SIGNED_OUT = "SIGNED_OUT"
EVENT_TOKEN_REFRESHED = "TOKEN_REFRESHED"
EVENT_USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class Principal:
    """The authenticated identity returned by the auth service."""

    id: str
    email: str


@dataclass(frozen=True)
class AuthSession:
    """A live session for a principal."""

    principal: Principal
    issued_at: datetime


class StoreError(Exception):
    """
    Raised by store adapters for any remote failure.

    Attributes:
        code: Backend error code (Postgres SQLSTATE, PostgREST or auth code).
    """

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConflictError(StoreError):
    """A uniqueness constraint rejected the write."""


class NotFoundError(StoreError):
    """A single-row read found nothing."""


class AuthRejectedError(StoreError):
    """The auth service rejected credentials (bad, weak, or duplicate)."""


SessionCallback = Callable[[str, Optional[AuthSession]], None]
Filters = Dict[str, Any]
Record = Dict[str, Any]


class StoreAdapter(Protocol):
    """
    Capability interface over the remote record store and auth service.

    Filters map column name to the value it must equal. A dotted key
    (``"case_files.user_id"``) filters through an inner join on the
    related table named before the dot.
    """

    def select(self, table: str, filters: Filters, columns: str = "*") -> List[Record]:
        ...

    def insert(self, table: str, records: Union[Record, List[Record]]) -> List[Record]:
        ...

    def update(self, table: str, filters: Filters, patch: Record) -> List[Record]:
        ...

    def upsert(self, table: str, record: Record, on_conflict: str) -> List[Record]:
        ...

    def delete(self, table: str, filters: Filters) -> None:
        ...

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        ...

    def current_session(self) -> Optional[AuthSession]:
        ...

    def sign_up(self, email: str, password: str, redirect_to: str) -> Optional[AuthSession]:
        ...

    def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    def sign_out(self) -> None:
        ...

    def update_user(self, email: Optional[str] = None, password: Optional[str] = None) -> Principal:
        ...

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        ...
