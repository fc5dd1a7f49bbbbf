"""
Vault Bootstrap
===============

Wires configuration, logging, the persistence backend, the field codec and
every service into one object with an explicit lifecycle.

Usage:
    async with await Vault.open() as vault:
        user = await vault.users.create_user("a@example.com", "pw", "A")
        await vault.credentials.create({"title": "mail", "password": "x"}, user.id)
        counts = await vault.aggregation.snapshot_counts(user.id)
"""

from __future__ import annotations

import logging
from typing import Optional

from securedesk.core.auth import Argon2Hasher, UserDirectory
from securedesk.core.config import SecureDeskConfig
from securedesk.core.crypto import CryptoKeyProvider, EnvironmentKeyProvider, FieldCodec
from securedesk.core.logging import configure_logging
from securedesk.db import InMemoryBackend, PersistenceBackend, SqliteBackend
from securedesk.records import (
    BANK_DETAILS,
    CARDS,
    CREDENTIALS,
    DOCUMENTS,
    BankCard,
    BankDetail,
    Credential,
    Document,
    RecordStore,
)
from securedesk.services import AggregationService

logger = logging.getLogger("securedesk.vault")


def build_backend(config: SecureDeskConfig) -> PersistenceBackend:
    """Create the backend named by ``config.storage.backend``."""
    if config.storage.backend == "memory":
        return InMemoryBackend()
    return SqliteBackend(config.database_path)


class Vault:
    """
    The assembled application core.

    The backend is closed when the vault is closed, including backends
    passed in by the caller.
    """

    def __init__(
        self,
        config: SecureDeskConfig,
        backend: PersistenceBackend,
        codec: FieldCodec,
        hasher: Optional[Argon2Hasher] = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.codec = codec

        self.credentials: RecordStore[Credential] = RecordStore(CREDENTIALS, backend, codec)
        self.cards: RecordStore[BankCard] = RecordStore(CARDS, backend, codec)
        self.bank_details: RecordStore[BankDetail] = RecordStore(BANK_DETAILS, backend, codec)
        self.documents: RecordStore[Document] = RecordStore(DOCUMENTS, backend, codec)
        self.users = UserDirectory(backend, hasher=hasher)
        self.aggregation = AggregationService(backend, config.aggregation)
        self._closed = False

    @classmethod
    async def open(
        cls,
        config: Optional[SecureDeskConfig] = None,
        backend: Optional[PersistenceBackend] = None,
        key_provider: Optional[CryptoKeyProvider] = None,
        hasher: Optional[Argon2Hasher] = None,
        setup_logging: bool = True,
    ) -> Vault:
        """
        Build a vault.

        Args:
            config: Defaults to SecureDeskConfig.load()
            backend: Defaults to the backend named in the config
            key_provider: Defaults to the key in the environment variable
                named by ``config.crypto.key_env_var``
            hasher: Password hasher for the user directory
            setup_logging: Configure the ``securedesk`` logger from config
        """
        config = config or SecureDeskConfig.load()
        if setup_logging:
            configure_logging(config.logging, config.paths.log_dir)

        codec = FieldCodec(key_provider or EnvironmentKeyProvider(config.crypto.key_env_var))
        # Fails here, before any storage is opened, when no key is available
        key_id = codec.key_id

        if backend is None:
            if config.storage.backend == "sqlite":
                config.ensure_directories()
            backend = build_backend(config)

        logger.info(
            "Vault opened (backend=%s, key_id=%s, config=%s)",
            type(backend).__name__, key_id, config.config_hash,
        )
        return cls(config, backend, codec, hasher=hasher)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.backend.close()
        logger.info("Vault closed")

    async def __aenter__(self) -> Vault:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Vault({state}, backend={type(self.backend).__name__})"
