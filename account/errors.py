"""Error taxonomy for account and data-portability operations."""

from typing import Optional


class AccountError(Exception):
    """Base class; str(err) is safe to show to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.user_message = message


class CredentialError(AccountError):
    """Bad, weak, or duplicate credentials. User-correctable."""


class ValidationError(AccountError):
    """Local policy violation, caught before any remote call."""


class FormatError(AccountError):
    """Malformed import document, caught before any store write."""


class ServiceError(AccountError):
    """Transport or remote failure, surfaced verbatim."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class PartialUpdateError(ServiceError):
    """
    A multi-call operation succeeded in one store and failed in another.

    Raised by update_email when the auth email changed but the profile
    mirror could not be written. Nothing is rolled back.
    """


class AccountDeletionError(ServiceError):
    """
    A step of the account-deletion sequence failed.

    Attributes:
        checkpoint: Last DeletionStep that completed, or None if nothing did.
            Calling delete_account() again resumes after it.
    """

    def __init__(self, message: str, checkpoint=None, code: Optional[str] = None) -> None:
        super().__init__(message, code)
        self.checkpoint = checkpoint
