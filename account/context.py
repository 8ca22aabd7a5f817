"""
AccountContext - explicit context object wiring the account subsystem.

Built once by the composition root (main.py, or a test) and passed to
whatever needs it. init() subscribes to session changes and restores any
existing session; teardown() cancels the subscription.

Data flow on a session change:
    auth service -> SessionManager -> ProfileProvisioner
                                   -> listeners (theme reload, UI refresh)
"""

import logging
from typing import Callable, Optional

import config
from account.errors import CredentialError
from account.preferences import PreferenceSynchronizer
from account.provisioning import ProfileProvisioner
from account.session_manager import SessionManager
from portability.engine import DataPortabilityEngine
from store.base import AuthSession, Principal, StoreAdapter
from store.local_cache import LocalCache

logger = logging.getLogger(__name__)


class AccountContext:
    """Holds the store, the cache and every account component."""

    def __init__(self, store: StoreAdapter, cache: LocalCache) -> None:
        self.store = store
        self.cache = cache
        self.provisioner = ProfileProvisioner(store)
        self.preferences = PreferenceSynchronizer(store, cache)
        self.sessions = SessionManager(store, self.provisioner)
        self.portability = DataPortabilityEngine(store)

        self.theme: str = self.preferences.cached_theme()
        self.on_theme_change: Optional[Callable[[str], None]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @classmethod
    def from_config(cls) -> 'AccountContext':
        """Build a context backed by Supabase and the on-disk preference cache."""
        from store.supabase_store import SupabaseStore

        return cls(SupabaseStore(), LocalCache(config.PREFERENCES_CACHE_FILE))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Subscribe to session changes and restore the current session."""
        if self._unsubscribe is not None:
            return
        self.sessions.add_listener(self._on_session_change)
        self._unsubscribe = self.store.on_session_change(self.sessions.handle_session_change)

        if self.sessions.restore() is None:
            self._apply_theme(self.preferences.load_theme(None))
        logger.debug("Account context initialised")

    def teardown(self) -> None:
        """Cancel the session subscription."""
        if self._unsubscribe is not None:
            try:
                self._unsubscribe()
            finally:
                self._unsubscribe = None
        self.sessions.remove_listener(self._on_session_change)
        logger.debug("Account context torn down")

    def __enter__(self) -> 'AccountContext':
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _on_session_change(self, session: Optional[AuthSession]) -> None:
        principal = session.principal if session else None
        self._apply_theme(self.preferences.load_theme(principal))

    def _apply_theme(self, theme: str) -> None:
        changed = theme != self.theme
        self.theme = theme
        if changed and self.on_theme_change:
            self.on_theme_change(theme)

    def require_principal(self) -> Principal:
        """
        Return the signed-in principal.

        Raises:
            CredentialError: Nobody is signed in.
        """
        principal = self.sessions.principal
        if principal is None:
            raise CredentialError("You must be signed in to do that")
        return principal
