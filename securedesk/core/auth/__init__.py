"""
SecureDesk Authentication Module
================================

Provides account management with:
- Argon2id password hashing
- Unique, case-insensitive email accounts
- Non-enumerating authentication failures
"""

from securedesk.core.auth.argon2_auth import Argon2Hasher, HashResult
from securedesk.core.auth.user_directory import (
    USERS_COLLECTION,
    UserDirectory,
    UserIdentity,
    normalize_email,
)

__all__ = [
    "Argon2Hasher",
    "HashResult",
    "USERS_COLLECTION",
    "UserDirectory",
    "UserIdentity",
    "normalize_email",
]
