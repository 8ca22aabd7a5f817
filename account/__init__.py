"""
Account package - session lifecycle, profile provisioning and preferences.

The composition object lives in account.context (it also pulls in the
portability package, so it is not imported here).
"""

from account.errors import (
    AccountDeletionError,
    AccountError,
    CredentialError,
    FormatError,
    PartialUpdateError,
    ServiceError,
    ValidationError,
)
from account.session_manager import DeletionStep, SessionManager, SessionState

__all__ = [
    "AccountDeletionError",
    "AccountError",
    "CredentialError",
    "DeletionStep",
    "FormatError",
    "PartialUpdateError",
    "ServiceError",
    "SessionManager",
    "SessionState",
    "ValidationError",
]
