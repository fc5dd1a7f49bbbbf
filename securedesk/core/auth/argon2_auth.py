"""
Argon2id Password Hashing
=========================

One-way hashing of account passwords using Argon2id.

Security Properties:
- Memory-hard (resistant to GPU/ASIC attacks)
- Time-hard (configurable iterations)
- Salt automatically managed and embedded in the encoded hash
- Constant-time verification

Parameters (OWASP 2023 recommendations):
- memory_cost: 102400 KiB (100 MB)
- time_cost: 2 iterations
- parallelism: 4 threads

References:
- RFC 9106: Argon2 Memory-Hard Function
- OWASP Password Storage Cheat Sheet
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


# Argon2id parameters (OWASP 2023 recommended minimums)
ARGON2_MEMORY_COST: Final[int] = 102400  # 100 MB in KiB
ARGON2_TIME_COST: Final[int] = 2  # iterations
ARGON2_PARALLELISM: Final[int] = 4  # threads
ARGON2_HASH_LENGTH: Final[int] = 32  # 256 bits
ARGON2_SALT_LENGTH: Final[int] = 16  # 128 bits


@dataclass(frozen=True, slots=True)
class HashResult:
    """
    Immutable result of password hashing.

    Attributes:
        encoded: Full PHC-format string for storage, salt included
    """
    encoded: str

    def __repr__(self) -> str:
        """Safe representation without exposing hash."""
        return f"HashResult(encoded_len={len(self.encoded)})"


class Argon2Hasher:
    """
    Argon2id password hasher with secure defaults.

    Usage:
        hasher = Argon2Hasher()

        result = hasher.hash("user_password")
        store(result.encoded)

        is_valid = hasher.verify("user_password", stored_encoded)
        if is_valid and hasher.needs_rehash(stored_encoded):
            store(hasher.hash("user_password").encoded)
    """

    __slots__ = (
        "_memory_cost", "_time_cost", "_parallelism",
        "_hash_length", "_salt_length", "_hasher",
    )

    def __init__(
        self,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = ARGON2_SALT_LENGTH,
    ) -> None:
        """
        Initialize the Argon2id hasher.

        Args:
            memory_cost: Memory usage in KiB (default: 102400 = 100MB)
            time_cost: Number of iterations (default: 2)
            parallelism: Degree of parallelism (default: 4)
            hash_length: Output hash length in bytes (default: 32)
            salt_length: Salt length in bytes (default: 16)
        """
        # Validate parameters meet minimum security requirements
        if memory_cost < 65536:  # 64 MB minimum
            raise ValueError("memory_cost must be at least 65536 KiB (64 MB)")
        if time_cost < 2:
            raise ValueError("time_cost must be at least 2")
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if hash_length < 16:
            raise ValueError("hash_length must be at least 16 bytes")
        if salt_length < 8:
            raise ValueError("salt_length must be at least 8 bytes")

        self._memory_cost = memory_cost
        self._time_cost = time_cost
        self._parallelism = parallelism
        self._hash_length = hash_length
        self._salt_length = salt_length
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_length,
            salt_len=salt_length,
        )

    @property
    def parameters(self) -> dict[str, int]:
        """Get current hashing parameters."""
        return {
            "memory_cost": self._memory_cost,
            "time_cost": self._time_cost,
            "parallelism": self._parallelism,
            "hash_length": self._hash_length,
            "salt_length": self._salt_length,
        }

    def hash(self, password: str) -> HashResult:
        """
        Hash a password using Argon2id with a fresh random salt.

        Returns:
            HashResult with the encoded string
        """
        if not password:
            raise ValueError("Password cannot be empty")
        return HashResult(encoded=self._hasher.hash(password))

    def verify(self, password: str, encoded: str) -> bool:
        """
        Verify a password against an encoded hash.

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        if not password or not encoded:
            return False

        try:
            return self._hasher.verify(encoded, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, encoded: str) -> bool:
        """
        Check if a hash needs to be rehashed with current parameters.

        Returns True if the hash uses older/weaker parameters.
        """
        try:
            return self._hasher.check_needs_rehash(encoded)
        except InvalidHashError:
            return True
