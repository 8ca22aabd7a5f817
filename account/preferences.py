"""
Preference synchronisation between the local cache and the user_preferences table.

Two groups share one remote row per user: the theme and the notification
settings. Each group is read and written on its own, always through an
upsert keyed on user_id, so the first write creates the row and later ones
update it. The unique constraint on user_id is what keeps it to one row.

The theme is also mirrored in the local cache, which is what gets used
before sign-in or when the store can't be reached.
"""

import logging
from typing import Optional

import config
from account.errors import ServiceError, ValidationError
from account.models import NotificationSettings, UserPreferences
from store.base import ConflictError, Principal, StoreAdapter, StoreError
from store.local_cache import LocalCache

logger = logging.getLogger(__name__)


class PreferenceSynchronizer:
    """Loads and saves theme and notification preferences."""

    def __init__(self, store: StoreAdapter, cache: LocalCache) -> None:
        self.store = store
        self.cache = cache

    # ------------------------------------------------------------------
    # Shared row access
    # ------------------------------------------------------------------

    def _fetch(self, user_id: str) -> Optional[UserPreferences]:
        rows = self.store.select(config.TABLE_PREFERENCES, {"user_id": user_id})
        return UserPreferences.from_row(rows[0]) if rows else None

    def _create_default_row(self, user_id: str, **fields) -> None:
        """Lazily create the row on first read; a concurrent creator wins quietly."""
        row = {"user_id": user_id, "theme": config.DEFAULT_THEME}
        row.update(fields)
        try:
            self.store.insert(config.TABLE_PREFERENCES, row)
            logger.info(f"Created default preferences for {user_id}")
        except ConflictError:
            logger.info(f"Preferences for {user_id} already created concurrently")

    def _upsert(self, user_id: str, fields: dict) -> None:
        record = {"user_id": user_id}
        record.update(fields)
        try:
            self.store.upsert(config.TABLE_PREFERENCES, record, on_conflict="user_id")
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e

    # ------------------------------------------------------------------
    # Theme
    # ------------------------------------------------------------------

    def cached_theme(self) -> str:
        """Theme from the local cache, falling back to the default."""
        theme = self.cache.get(config.THEME_CACHE_KEY)
        return theme if theme in config.THEMES else config.DEFAULT_THEME

    def load_theme(self, principal: Optional[Principal]) -> str:
        """
        Resolve the theme to apply.

        Signed out: the local cache. Signed in: the remote value, which then
        overwrites the cache. A missing remote row is created with the
        default theme. If the store is unreachable, the cache is used.

        Args:
            principal: Current principal, or None when signed out.

        Returns:
            Theme name ("light" or "dark").
        """
        if principal is None:
            return self.cached_theme()

        try:
            prefs = self._fetch(principal.id)
            if prefs is None:
                self._create_default_row(principal.id)
                theme = config.DEFAULT_THEME
            else:
                theme = prefs.theme if prefs.theme in config.THEMES else config.DEFAULT_THEME
        except StoreError as e:
            logger.warning(f"Failed to fetch theme from cloud, using cache: {e}")
            return self.cached_theme()

        self.cache.set(config.THEME_CACHE_KEY, theme)
        return theme

    def set_theme(self, principal: Optional[Principal], theme: str) -> str:
        """
        Apply a theme locally and, when signed in, persist it remotely.

        Raises:
            ValidationError: Unknown theme name (nothing is written).
            ServiceError: Remote upsert failed (local cache already updated).
        """
        if theme not in config.THEMES:
            raise ValidationError(f"Unknown theme '{theme}'. Choose one of: {', '.join(config.THEMES)}")

        self.cache.set(config.THEME_CACHE_KEY, theme)
        if principal is not None:
            self._upsert(principal.id, {"theme": theme})
        logger.info(f"Theme set to {theme}")
        return theme

    def toggle_theme(self, principal: Optional[Principal]) -> str:
        current = self.load_theme(principal)
        new_theme = config.THEME_DARK if current == config.THEME_LIGHT else config.THEME_LIGHT
        return self.set_theme(principal, new_theme)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def load_notifications(self, principal: Optional[Principal]) -> NotificationSettings:
        """
        Read notification settings, creating the defaults row on first read.

        Raises:
            ServiceError: The store could not be read.
        """
        if principal is None:
            return NotificationSettings()

        try:
            prefs = self._fetch(principal.id)
            if prefs is None:
                self._create_default_row(principal.id, **config.DEFAULT_NOTIFICATIONS)
                return NotificationSettings()
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e
        return prefs.notifications

    def save_notifications(self, principal: Principal, settings: NotificationSettings) -> None:
        """
        Persist notification settings without touching the theme.

        Raises:
            ValidationError: Unknown notification frequency.
            ServiceError: Remote upsert failed.
        """
        if settings.notification_frequency not in config.NOTIFICATION_FREQUENCIES:
            raise ValidationError(
                f"Unknown notification frequency '{settings.notification_frequency}'"
            )
        self._upsert(principal.id, settings.to_dict())
        logger.info(f"Notification preferences updated for {principal.id}")
