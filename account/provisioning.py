"""
Profile provisioning and profile edits.

Every principal that completes a session-establishment event must end up
with exactly one row in the profiles table. Provisioning is read-then-insert
with no lock: if two callers race (two tabs restoring the same session), the
loser's insert hits the primary-key constraint and that conflict is treated
as success, since another caller already created the row.
"""

import logging
import threading
from typing import Any, Dict, Optional

import config
from account.errors import ServiceError
from account.models import Profile
from store.base import ConflictError, Principal, StoreAdapter, StoreError

logger = logging.getLogger(__name__)


class ProfileProvisioner:
    """Creates, reads and edits the profile row for a principal."""

    def __init__(self, store: StoreAdapter) -> None:
        self.store = store
        self._lock = threading.Lock()
        self._unmirrored_emails: Dict[str, str] = {}  # principal id -> email the mirror failed to write

    def _fetch(self, principal_id: str) -> Optional[Profile]:
        rows = self.store.select(config.TABLE_PROFILES, {"id": principal_id})
        return Profile.from_row(rows[0]) if rows else None

    def ensure_profile(self, principal: Principal) -> Optional[Profile]:
        """
        Make sure a profile exists for the principal.

        Runs inside session-change callbacks, so it never raises: failures
        are logged and the next session event tries again.

        Args:
            principal: The authenticated principal.

        Returns:
            The profile if it is known to exist, otherwise None.
        """
        try:
            existing = self._fetch(principal.id)
        except StoreError as e:
            logger.warning(f"Profile lookup failed for {principal.id}: {e}")
            return None

        if existing is not None:
            return existing

        row = {
            "id": principal.id,
            "email": principal.email,
            "anonymous_mode": False,
        }
        try:
            inserted = self.store.insert(config.TABLE_PROFILES, row)
        except ConflictError:
            # Lost the race; the other writer's row is the profile
            logger.info(f"Profile for {principal.id} already created concurrently")
            try:
                return self._fetch(principal.id)
            except StoreError as e:
                logger.warning(f"Profile re-read failed for {principal.id}: {e}")
                return None
        except StoreError as e:
            logger.error(f"Profile creation error for {principal.id}: {e}")
            return None

        logger.info(f"Provisioned profile for {principal.id}")
        return Profile.from_row(inserted[0]) if inserted else Profile.from_row(row)

    def get_profile(self, principal: Principal) -> Optional[Profile]:
        """
        Read the principal's profile.

        If an earlier update_email could not mirror the new address into the
        profile, the mirror is retried here with that address. The retry is
        best-effort; a failure is logged only. The auth-side email is never
        copied back, since it can still be the old address while a change
        awaits confirmation.

        Raises:
            ServiceError: If the profile cannot be read.
        """
        try:
            profile = self._fetch(principal.id)
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e

        with self._lock:
            unmirrored = self._unmirrored_emails.get(principal.id)
        if profile is not None and unmirrored:
            if profile.email == unmirrored:
                with self._lock:
                    self._unmirrored_emails.pop(principal.id, None)
            else:
                try:
                    self.mirror_email(principal.id, unmirrored)
                    profile.email = unmirrored
                    logger.info(f"Reconciled profile email for {principal.id}")
                except StoreError as e:
                    logger.warning(f"Could not reconcile profile email for {principal.id}: {e}")
        return profile

    def update_profile(
        self,
        principal: Principal,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        anonymous_mode: Optional[bool] = None,
    ) -> None:
        """
        Apply user edits to the profile. Only given fields are written.

        Raises:
            ServiceError: If the store rejects the update.
        """
        patch: Dict[str, Any] = {}
        if full_name is not None:
            patch["full_name"] = full_name
        if phone is not None:
            patch["phone"] = phone
        if anonymous_mode is not None:
            patch["anonymous_mode"] = anonymous_mode
        if not patch:
            return

        try:
            self.store.update(config.TABLE_PROFILES, {"id": principal.id}, patch)
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e
        logger.info(f"Profile updated for {principal.id}: {sorted(patch)}")

    def mirror_email(self, principal_id: str, email: str) -> None:
        """
        Copy a new email into the profile.

        A failed write is remembered and retried by the next get_profile().

        Raises:
            StoreError: The profile update failed.
        """
        try:
            self.store.update(config.TABLE_PROFILES, {"id": principal_id}, {"email": email})
        except StoreError:
            with self._lock:
                self._unmirrored_emails[principal_id] = email
            raise
        with self._lock:
            self._unmirrored_emails.pop(principal_id, None)

    def delete_profile(self, principal_id: str) -> None:
        """Remove the profile row. Raises StoreError."""
        self.store.delete(config.TABLE_PROFILES, {"id": principal_id})
