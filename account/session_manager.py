"""
SessionManager - authentication state machine for a Veritas account.

Owns sign-up, sign-in, sign-out, email/password rotation and account
deletion, and reacts to session changes pushed by the auth service (token
refresh, sign-in from another window, remote expiry).

States:
    UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED -> DELETING

Every transition into AUTHENTICATED runs profile provisioning. Registered
listeners are called with the new session (or None) after each transition.

Account deletion is a three-step sequence, NOT a transaction:
    1. delete the profile row
    2. call the delete_user procedure
    3. sign out
A failed step leaves earlier steps done and the user signed in. The last
completed step is kept as a checkpoint and a retry resumes after it. The
checkpoint lives only as long as that session: signing out (or a new
sign-in) drops it, and the next sign-in provisions the profile again.
"""

import logging
import re
import threading
from enum import Enum
from typing import Callable, List, Optional

import config
from account.errors import (
    AccountDeletionError,
    CredentialError,
    PartialUpdateError,
    ServiceError,
    ValidationError,
)
from account.provisioning import ProfileProvisioner
from store.base import (
    EVENT_SIGNED_IN,
    EVENT_SIGNED_OUT,
    AuthRejectedError,
    AuthSession,
    Principal,
    StoreAdapter,
    StoreError,
)

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SessionListener = Callable[[Optional[AuthSession]], None]


class SessionState(Enum):
    """Authentication states."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    DELETING = "deleting"


class DeletionStep(Enum):
    """Checkpoints of the account-deletion sequence, in order."""
    PROFILE_DELETED = 1
    PRINCIPAL_REMOVED = 2
    SIGNED_OUT = 3


def _validate_email(email: str) -> str:
    email = (email or "").strip()
    if not _EMAIL_PATTERN.match(email):
        raise ValidationError("Please enter a valid email address")
    return email


def _validate_password(password: str) -> None:
    if password is None or len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters"
        )


class SessionManager:
    """Drives the auth service and keeps a read-through cache of the session."""

    def __init__(self, store: StoreAdapter, provisioner: ProfileProvisioner) -> None:
        """
        Initialise the session manager in the UNAUTHENTICATED state.

        Args:
            store: Store adapter (auth + tables).
            provisioner: Creates the profile row on session establishment.
        """
        self.store = store
        self.provisioner = provisioner

        self._lock = threading.Lock()  # Guards state; callbacks arrive on other threads
        self._state = SessionState.UNAUTHENTICATED
        self._session: Optional[AuthSession] = None
        self._listeners: List[SessionListener] = []

        # Account-deletion checkpoint (per principal)
        self._deletion_checkpoint: Optional[DeletionStep] = None
        self._deletion_principal_id: Optional[str] = None

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def principal(self) -> Optional[Principal]:
        session = self._session
        return session.principal if session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def deletion_checkpoint(self) -> Optional[DeletionStep]:
        """Last completed deletion step for the current principal, if any."""
        principal = self.principal
        if principal is None or principal.id != self._deletion_principal_id:
            return None
        return self._deletion_checkpoint

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _require_principal(self) -> Principal:
        principal = self.principal
        if principal is None:
            raise CredentialError("You must be signed in to do that")
        return principal

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _notify(self) -> None:
        session = self._session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Session listener {listener!r} failed: {e}")

    def _establish(self, session: AuthSession) -> None:
        """Enter AUTHENTICATED and provision the profile."""
        with self._lock:
            self._session = session
            if self._state != SessionState.DELETING:
                self._state = SessionState.AUTHENTICATED

        principal = session.principal
        if principal.id == self._deletion_principal_id and self._deletion_checkpoint is not None:
            # Re-provisioning here would undo step 1 of a pending deletion
            logger.info(f"Skipping provisioning for {principal.id}: account deletion pending")
        else:
            self.provisioner.ensure_profile(principal)
        self._notify()

    def _clear(self) -> None:
        """Enter UNAUTHENTICATED and drop any interrupted deletion."""
        with self._lock:
            was_authenticated = self._session is not None
            self._session = None
            self._state = SessionState.UNAUTHENTICATED
        self._forget_deletion()
        if was_authenticated:
            self._notify()

    def _forget_deletion(self) -> None:
        """
        Drop the deletion checkpoint.

        It only guards the session that started the deletion; a later
        sign-in provisions the profile again and a new deletion starts over.
        """
        with self._lock:
            if self._deletion_checkpoint is not None:
                logger.debug(
                    f"Discarding deletion checkpoint {self._deletion_checkpoint.name} "
                    f"for {self._deletion_principal_id}"
                )
            self._deletion_checkpoint = None
            self._deletion_principal_id = None

    def restore(self) -> Optional[AuthSession]:
        """
        Pick up an existing session at start-up (initial load).

        Returns:
            The restored session, or None when signed out or unreachable.
        """
        try:
            session = self.store.current_session()
        except StoreError as e:
            logger.warning(f"Could not restore session: {e}")
            return None

        if session is not None:
            logger.info(f"Restored session for {session.principal.email}")
            self._establish(session)
        return session

    def handle_session_change(self, event: str, session: Optional[AuthSession]) -> None:
        """
        React to a session change pushed by the auth service.

        Args:
            event: Auth event name (SIGNED_IN, TOKEN_REFRESHED, SIGNED_OUT, ...).
            session: The new session, or None.
        """
        logger.debug(f"Session change: {event}")
        if event == EVENT_SIGNED_OUT or session is None:
            self._clear()
            return
        if event == EVENT_SIGNED_IN:
            # New sign-in, not a refresh of the session that began a deletion
            self._forget_deletion()
        self._establish(session)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str) -> None:
        """
        Request account creation.

        Authentication is not completed here: it happens once the service
        confirms the account (email verification) and pushes a session change.

        Raises:
            ValidationError: Malformed email or too-short password.
            CredentialError: Rejected by the service (weak password, email taken).
            ServiceError: Transport or remote failure.
        """
        email = _validate_email(email)
        _validate_password(password)

        try:
            self.store.sign_up(email, password, config.EMAIL_REDIRECT_URL)
        except AuthRejectedError as e:
            raise CredentialError(e.message) from e
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e
        logger.info(f"Sign-up requested for {email}; awaiting confirmation")

    def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password, then provision the profile.

        Raises:
            ValidationError: Empty email or password.
            CredentialError: Invalid credentials (never says which part).
            ServiceError: Transport or remote failure.
        """
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")

        with self._lock:
            self._state = SessionState.AUTHENTICATING
        try:
            session = self.store.sign_in(email, password)
        except AuthRejectedError as e:
            self._fail_authentication()
            raise CredentialError("Invalid email or password") from e
        except StoreError as e:
            self._fail_authentication()
            raise ServiceError(e.message, e.code) from e

        logger.info(f"Signed in as {session.principal.email}")
        self._forget_deletion()
        self._establish(session)
        return session

    def _fail_authentication(self) -> None:
        with self._lock:
            self._state = (
                SessionState.AUTHENTICATED if self._session is not None
                else SessionState.UNAUTHENTICATED
            )

    def sign_out(self) -> None:
        """
        End the session. A no-op when already signed out.

        The local session is always cleared, even if the remote call fails.

        Raises:
            ServiceError: The remote sign-out failed.
        """
        if self._session is None:
            with self._lock:
                self._state = SessionState.UNAUTHENTICATED
            return

        error: Optional[StoreError] = None
        try:
            self.store.sign_out()
        except StoreError as e:
            error = e

        self._clear()
        if error is not None:
            raise ServiceError(error.message, error.code) from error
        logger.info("Signed out")

    def update_email(self, new_email: str) -> None:
        """
        Change the principal's email, then mirror it into the profile.

        Raises:
            ValidationError: Malformed email.
            CredentialError: Not signed in, or rejected by the auth service.
            ServiceError: Auth update failed.
            PartialUpdateError: Auth email changed but the profile mirror did
                not; not rolled back, reconciled on the next profile read.
        """
        new_email = _validate_email(new_email)
        principal = self._require_principal()

        try:
            updated = self.store.update_user(email=new_email)
        except AuthRejectedError as e:
            raise CredentialError(e.message) from e
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e

        with self._lock:
            if self._session is not None:
                self._session = AuthSession(principal=updated, issued_at=self._session.issued_at)

        try:
            self.provisioner.mirror_email(principal.id, new_email)
        except StoreError as e:
            logger.warning(f"Email changed for {principal.id} but profile mirror failed: {e}")
            raise PartialUpdateError(
                f"Your email was updated, but your profile could not be refreshed: {e.message}",
                e.code,
            ) from e
        logger.info(f"Email updated for {principal.id}")

    def update_password(self, new_password: str, confirm_password: Optional[str] = None) -> None:
        """
        Rotate the password.

        Local checks run before any remote call.

        Raises:
            ValidationError: Too short, or confirmation does not match.
            CredentialError: Not signed in, or rejected by the auth service.
            ServiceError: Transport or remote failure.
        """
        _validate_password(new_password)
        if confirm_password is not None and confirm_password != new_password:
            raise ValidationError("Passwords do not match")
        principal = self._require_principal()

        try:
            self.store.update_user(password=new_password)
        except AuthRejectedError as e:
            raise CredentialError(e.message) from e
        except StoreError as e:
            raise ServiceError(e.message, e.code) from e
        logger.info(f"Password updated for {principal.id}")

    def delete_account(self) -> None:
        """
        Delete the account: profile row, then the principal, then sign out.

        Best-effort sequence with a resumable checkpoint. If a step fails,
        the error is raised, the user stays signed in, and calling this again
        continues from the first step not yet completed.

        Raises:
            CredentialError: Not signed in.
            AccountDeletionError: A step failed; .checkpoint is the last step done.
        """
        principal = self._require_principal()

        with self._lock:
            if self._deletion_principal_id != principal.id:
                self._deletion_principal_id = principal.id
                self._deletion_checkpoint = None
            self._state = SessionState.DELETING
        checkpoint = self._deletion_checkpoint

        try:
            if checkpoint is None:
                self.provisioner.delete_profile(principal.id)
                checkpoint = self._advance(DeletionStep.PROFILE_DELETED)

            if checkpoint == DeletionStep.PROFILE_DELETED:
                self.store.rpc(config.RPC_DELETE_USER)
                checkpoint = self._advance(DeletionStep.PRINCIPAL_REMOVED)
        except StoreError as e:
            with self._lock:
                self._state = SessionState.AUTHENTICATED
            step = checkpoint.name if checkpoint else "none"
            logger.error(f"Account deletion for {principal.id} failed after step {step}: {e}")
            raise AccountDeletionError(
                f"Account deletion failed: {e.message}", checkpoint=checkpoint, code=e.code
            ) from e

        try:
            self.sign_out()
        except ServiceError as e:
            # The principal no longer exists; its tokens are dead either way
            logger.warning(f"Remote sign-out after account deletion failed: {e}")

        self._advance(DeletionStep.SIGNED_OUT)
        with self._lock:
            self._deletion_checkpoint = None
            self._deletion_principal_id = None
        logger.info(f"Account {principal.id} deleted")

    def _advance(self, step: DeletionStep) -> DeletionStep:
        with self._lock:
            self._deletion_checkpoint = step
        logger.info(f"Account deletion checkpoint: {step.name}")
        return step
