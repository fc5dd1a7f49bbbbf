"""
SecureDesk Exception Classes
============================

Every core operation either returns a value or raises one of these.
None of them is fatal to the process; all are recoverable at the call site.

Security:
    Messages never carry plaintext secrets or ciphertext.
"""

from __future__ import annotations

from typing import Iterable, Optional


class SecureDeskError(Exception):
    """Base exception for secure-record store operations."""
    pass


class ValidationError(SecureDeskError, ValueError):
    """
    Raised when caller-supplied fields are missing, empty or malformed.

    Attributes:
        fields: Names of the offending fields, in schema order
    """

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None) -> None:
        self.fields: tuple[str, ...] = tuple(fields or ())
        super().__init__(message)

    @classmethod
    def missing(cls, fields: Iterable[str]) -> "ValidationError":
        """Build the error raised for absent required fields."""
        names = tuple(fields)
        return cls(f"Missing required fields: {', '.join(names)}", names)


class NotAuthorizedError(SecureDeskError):
    """Raised when a record exists but is owned by another user."""
    pass


class NotFoundError(SecureDeskError):
    """Raised when no record exists with the requested id."""
    pass


class DecryptionError(SecureDeskError):
    """Raised when a ciphertext cannot be read under the current key."""
    pass


class DuplicateAccountError(SecureDeskError):
    """Raised when an account already exists for the given email."""
    pass


class AuthenticationFailure(SecureDeskError):
    """
    Raised when credentials do not match.

    Deliberately does not say whether the email or the password was wrong.
    """

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class BackendUnavailableError(SecureDeskError):
    """Raised when the persistence backend fails. Never retried internally."""
    pass


class ConfigurationError(SecureDeskError, RuntimeError):
    """Raised when required settings such as the field key are missing or malformed."""
    pass
