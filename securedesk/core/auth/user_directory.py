"""
User Directory
==============

Account creation and credential checks over the persistence backend.

Security Features:
- Passwords hashed with Argon2id; plaintext never stored
- Email addresses unique (case-insensitive)
- Authentication failures never reveal whether the email exists
- Unknown emails and empty passwords still pay the cost of a hash (timing parity)
- Hashes made with outdated parameters are upgraded on successful login
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Final, Optional

from securedesk.core.auth.argon2_auth import Argon2Hasher
from securedesk.core.exceptions import (
    AuthenticationFailure,
    DuplicateAccountError,
    ValidationError,
)
from securedesk.db.backend import PersistenceBackend, Record
from securedesk.utils.ids import IdentifierGenerator, UuidGenerator
from securedesk.utils.timeutil import utc_now_iso

USERS_COLLECTION: Final[str] = "users"
MAX_EMAIL_LENGTH: Final[int] = 254
MAX_NAME_LENGTH: Final[int] = 128

# Hashed in place of the real password when the account does not exist
_TIMING_DUMMY: Final[str] = "securedesk-timing-dummy"


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """Public view of an account. Never carries the password hash."""

    id: str
    name: str
    email: str


def normalize_email(email: Optional[str]) -> str:
    """Strip and lower-case an email address."""
    return (email or "").strip().lower()


class UserDirectory:
    """
    Account registry backed by the ``users`` collection.

    Usage:
        directory = UserDirectory(backend)
        user = await directory.create_user("alice@example.com", "s3cret", "Alice")
        user = await directory.authenticate("alice@example.com", "s3cret")
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        hasher: Optional[Argon2Hasher] = None,
        id_generator: Optional[IdentifierGenerator] = None,
        clock: Optional[Callable[[], str]] = None,
    ) -> None:
        self._backend = backend
        self._hasher = hasher or Argon2Hasher()
        self._ids = id_generator or UuidGenerator()
        self._clock = clock or utc_now_iso
        # Serializes the duplicate check and the insert within this process
        self._create_lock = asyncio.Lock()
        self._log = logging.getLogger("securedesk.auth")

    @staticmethod
    def _to_identity(row: Record) -> UserIdentity:
        return UserIdentity(id=row["id"], name=row.get("name") or "", email=row["email"])

    def _validate(self, email: str, password: Optional[str], name: Optional[str]) -> str:
        missing = [
            field_name for field_name, value in (
                ("email", email), ("password", password), ("name", (name or "").strip()),
            )
            if not value
        ]
        if missing:
            raise ValidationError.missing(missing)

        local, _, domain = email.partition("@")
        if not local or "." not in domain or len(email) > MAX_EMAIL_LENGTH:
            raise ValidationError("Invalid email address", ["email"])
        if len(name or "") > MAX_NAME_LENGTH:
            raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters", ["name"])
        return (name or "").strip()

    async def create_user(self, email: str, password: str, name: str) -> UserIdentity:
        """
        Register a new account.

        Raises:
            ValidationError: Missing fields or malformed email
            DuplicateAccountError: Email already registered
            BackendUnavailableError: Storage failure
        """
        email = normalize_email(email)
        name = self._validate(email, password, name)

        async with self._create_lock:
            if await self._backend.count_by_filter(USERS_COLLECTION, {"email": email}):
                raise DuplicateAccountError("An account with this email already exists")

            result = await asyncio.to_thread(self._hasher.hash, password)
            now = self._clock()
            row = {
                "id": self._ids.next(),
                "name": name,
                "email": email,
                "hashed_secret": result.encoded,
                "created_at": now,
                "updated_at": now,
            }
            await self._backend.insert(USERS_COLLECTION, row)

        self._log.info("Created account %s", row["id"])
        return self._to_identity(row)

    async def authenticate(self, email: str, password: str) -> UserIdentity:
        """
        Check an email/password pair.

        Raises:
            AuthenticationFailure: Unknown email or wrong password (same
                message for both)
        """
        email = normalize_email(email)
        rows = await self._backend.get_by_filter(USERS_COLLECTION, {"email": email}) if email else []

        if not rows:
            await asyncio.to_thread(self._hasher.hash, password or _TIMING_DUMMY)
            self._log.warning("Authentication failed")
            raise AuthenticationFailure()

        row = rows[0]
        stored = row.get("hashed_secret", "")
        # An empty password still runs a full verification
        matched = await asyncio.to_thread(self._hasher.verify, password or _TIMING_DUMMY, stored)
        if not password or not matched:
            self._log.warning("Authentication failed")
            raise AuthenticationFailure()

        if self._hasher.needs_rehash(stored):
            await self._rehash(row["id"], password)

        self._log.info("Authenticated account %s", row["id"])
        return self._to_identity(row)

    async def _rehash(self, user_id: str, password: str) -> None:
        """Replace a hash made with outdated parameters."""
        result = await asyncio.to_thread(self._hasher.hash, password)
        await self._backend.update_by_id(
            USERS_COLLECTION,
            user_id,
            {"hashed_secret": result.encoded, "updated_at": self._clock()},
        )
        self._log.info("Upgraded password hash for account %s", user_id)

    async def get_user(self, user_id: str) -> Optional[UserIdentity]:
        """Look up an account by id."""
        if not user_id:
            return None
        rows = await self._backend.get_by_filter(USERS_COLLECTION, {"id": user_id})
        return self._to_identity(rows[0]) if rows else None
