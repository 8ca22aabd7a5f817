"""
SupabaseStore - store adapter over the Supabase Python client.

Handles:
- Auth token storage and restore across runs
- Sign-up / sign-in / sign-out / user updates
- Session-change subscription
- Table reads and writes (select, insert, update, upsert, delete)
- Remote procedure calls

Every backend exception is translated into the store.base error
hierarchy so callers never depend on supabase-py exception classes.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from supabase import Client, create_client

import config
from store.base import (
    PG_UNIQUE_VIOLATION,
    PGRST_NO_ROWS,
    AuthRejectedError,
    AuthSession,
    ConflictError,
    Filters,
    NotFoundError,
    Principal,
    Record,
    SessionCallback,
    StoreError,
)

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429


def _translate(exc: Exception, auth: bool = False) -> StoreError:
    """
    Map a supabase-py / postgrest / httpx exception to a StoreError.

    Args:
        exc: The raised exception.
        auth: True when the call went to the auth service.

    Returns:
        StoreError subclass instance (not raised).
    """
    if isinstance(exc, StoreError):
        return exc

    code = getattr(exc, "code", None)
    code = str(code) if code is not None else None
    message = getattr(exc, "message", None) or str(exc)

    if code == PG_UNIQUE_VIOLATION:
        return ConflictError(message, code)
    if code == PGRST_NO_ROWS:
        return NotFoundError(message, code)

    if auth:
        # Auth API errors carry an HTTP status; 4xx means the request itself
        # was rejected (bad credentials, weak password, email taken).
        # 429 is throttling, not a verdict on the credentials.
        status = getattr(exc, "status", None)
        if isinstance(status, int) and 400 <= status < 500 and status != HTTP_TOO_MANY_REQUESTS:
            return AuthRejectedError(message, code)

    return StoreError(message, code)


def _to_session(raw_session) -> Optional[AuthSession]:
    """Convert a supabase-py Session to an AuthSession."""
    if raw_session is None or getattr(raw_session, "user", None) is None:
        return None

    issued_at = datetime.now(timezone.utc)
    expires_at = getattr(raw_session, "expires_at", None)
    expires_in = getattr(raw_session, "expires_in", None)
    if expires_at and expires_in:
        issued_at = datetime.fromtimestamp(expires_at, tz=timezone.utc) - timedelta(seconds=expires_in)

    user = raw_session.user
    return AuthSession(
        principal=Principal(id=str(user.id), email=user.email or ""),
        issued_at=issued_at,
    )


class SupabaseStore:
    """
    Supabase client wrapper implementing the StoreAdapter contract.

    Persists auth tokens locally so a session survives restarts of the CLI.
    """

    def __init__(
        self,
        supabase_url: str = "",
        supabase_key: str = "",
        auth_file: Optional[Path] = None,
        client: Optional[Client] = None,
    ) -> None:
        """
        Initialise the store.

        Args:
            supabase_url: Supabase project URL (falls back to config).
            supabase_key: Supabase anon/public key (falls back to config).
            auth_file: Where auth tokens are kept (falls back to config).
            client: Pre-built client (tests inject a mock here).

        Raises:
            StoreError: If no client is given and credentials are missing.
        """
        self._url = supabase_url or config.SUPABASE_URL
        self._key = supabase_key or config.SUPABASE_ANON_KEY
        self.auth_file: Path = auth_file or config.AUTH_FILE

        if client is not None:
            self._client = client
        else:
            if not self._url or not self._key:
                raise StoreError("Supabase credentials not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
            self._client = create_client(self._url, self._key)
            logger.info("Supabase client initialised")

        self._load_stored_session()

    # ------------------------------------------------------------------
    # Auth token persistence
    # ------------------------------------------------------------------

    def _load_stored_session(self) -> None:
        """Load stored auth tokens from disk if they exist."""
        if not self.auth_file.exists():
            return
        try:
            data = json.loads(self.auth_file.read_text())
            access_token = data.get("access_token", "")
            refresh_token = data.get("refresh_token", "")
            if access_token and refresh_token:
                self._client.auth.set_session(access_token, refresh_token)
                logger.info(f"Loaded stored session for {data.get('email', 'unknown')}")
        except Exception as e:
            # Expired or corrupt tokens just mean "signed out"
            logger.warning(f"Failed to load stored session: {e}")

    def _save_session(self, raw_session) -> None:
        """Save auth tokens to local storage."""
        if raw_session is None:
            return
        try:
            self.auth_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "access_token": raw_session.access_token,
                "refresh_token": raw_session.refresh_token,
                "user_id": raw_session.user.id,
                "email": raw_session.user.email,
                "expires_at": raw_session.expires_at,
            }
            self.auth_file.write_text(json.dumps(data, indent=2))
            logger.debug(f"Auth session saved for {raw_session.user.email}")
        except (IOError, OSError) as e:
            logger.warning(f"Failed to save auth session: {e}")

    def _clear_stored_session(self) -> None:
        if self.auth_file.exists():
            try:
                self.auth_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove stored session: {e}")

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def current_session(self) -> Optional[AuthSession]:
        """Return the active session, or None when signed out."""
        try:
            return _to_session(self._client.auth.get_session())
        except Exception as e:
            raise _translate(e, auth=True) from e

    def sign_up(self, email: str, password: str, redirect_to: str) -> Optional[AuthSession]:
        """
        Request account creation.

        Returns:
            A session only when the project does not require email
            confirmation; None otherwise.
        """
        try:
            result = self._client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"email_redirect_to": redirect_to},
            })
        except Exception as e:
            raise _translate(e, auth=True) from e
        self._save_session(result.session)
        return _to_session(result.session)

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password."""
        try:
            result = self._client.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            raise _translate(e, auth=True) from e

        session = _to_session(result.session)
        if session is None:
            raise AuthRejectedError("Sign-in returned no session")
        self._save_session(result.session)
        return session

    def sign_out(self) -> None:
        """Sign out and clear stored tokens."""
        try:
            self._client.auth.sign_out()
        except Exception as e:
            raise _translate(e, auth=True) from e
        finally:
            self._clear_stored_session()

    def update_user(self, email: Optional[str] = None, password: Optional[str] = None) -> Principal:
        """Update the signed-in principal's email and/or password."""
        attributes: Dict[str, str] = {}
        if email is not None:
            attributes["email"] = email
        if password is not None:
            attributes["password"] = password
        try:
            result = self._client.auth.update_user(attributes)
        except Exception as e:
            raise _translate(e, auth=True) from e
        return Principal(id=str(result.user.id), email=result.user.email or "")

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Subscribe to auth state changes.

        Returns:
            Zero-argument function that cancels the subscription.
        """
        def _relay(event, raw_session) -> None:
            event_name = getattr(event, "value", event)
            if raw_session is not None:
                self._save_session(raw_session)
            callback(str(event_name), _to_session(raw_session))

        subscription = self._client.auth.on_auth_state_change(_relay)
        return subscription.unsubscribe

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_filters(query, filters: Filters):
        for column, value in filters.items():
            if isinstance(value, (list, tuple, set)):
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)
        return query

    def select(self, table: str, filters: Filters, columns: str = "*") -> List[Record]:
        try:
            query = self._apply_filters(self._client.table(table).select(columns), filters)
            return query.execute().data or []
        except Exception as e:
            raise _translate(e) from e

    def insert(self, table: str, records: Union[Record, List[Record]]) -> List[Record]:
        try:
            return self._client.table(table).insert(records).execute().data or []
        except Exception as e:
            raise _translate(e) from e

    def update(self, table: str, filters: Filters, patch: Record) -> List[Record]:
        try:
            query = self._apply_filters(self._client.table(table).update(patch), filters)
            return query.execute().data or []
        except Exception as e:
            raise _translate(e) from e

    def upsert(self, table: str, record: Record, on_conflict: str) -> List[Record]:
        try:
            return (
                self._client.table(table)
                .upsert(record, on_conflict=on_conflict)
                .execute()
                .data
            ) or []
        except Exception as e:
            raise _translate(e) from e

    def delete(self, table: str, filters: Filters) -> None:
        if not filters:
            # PostgREST refuses unfiltered deletes; fail early with a clear message
            raise StoreError(f"Refusing unfiltered delete on {table}")
        try:
            self._apply_filters(self._client.table(table).delete(), filters).execute()
        except Exception as e:
            raise _translate(e) from e

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            return self._client.rpc(name, params or {}).execute().data
        except Exception as e:
            raise _translate(e) from e
