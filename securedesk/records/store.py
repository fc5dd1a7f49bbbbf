"""
Record Store
============

Generic, ownership-scoped CRUD for one record collection.

Sensitive fields are encrypted before anything reaches the backend and
decrypted only on the way out, in memory, per call. Every read, update and
delete is scoped by ``(id, user_id)``.

Concurrency:
    No locking. Two concurrent updates of the same record are
    last-write-wins at the backend; the data model carries no version
    token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, Mapping, Optional, TypeVar

from securedesk.core.crypto.field_codec import FieldCodec
from securedesk.core.exceptions import (
    DecryptionError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from securedesk.db.backend import PersistenceBackend, Record
from securedesk.records.schemas import BaseRecord, CollectionSchema
from securedesk.utils.ids import IdentifierGenerator, UuidGenerator
from securedesk.utils.timeutil import utc_now_iso

R = TypeVar("R", bound=BaseRecord)


@dataclass(frozen=True, slots=True)
class RecordReadError:
    """A stored record that could not be decrypted."""

    record_id: str
    error: DecryptionError


@dataclass(frozen=True)
class RecordBatch(Generic[R]):
    """
    Result of a collection read.

    Iterating, indexing and len() cover the records that decrypted
    cleanly. Records that failed are listed in ``errors`` instead of
    aborting the whole read.
    """

    records: tuple[R, ...]
    errors: tuple[RecordReadError, ...] = ()

    def __iter__(self) -> Iterator[R]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> R:
        return self.records[index]

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Re-raise the first decryption failure, for callers that want fail-fast."""
        if self.errors:
            raise self.errors[0].error


class RecordStore(Generic[R]):
    """
    CRUD for a single collection.

    Usage:
        store = RecordStore(CREDENTIALS, backend, codec)
        cred = await store.create({"title": "mail", "password": "abc"}, user_id)
        batch = await store.get_all_for_user(user_id)
        await store.update(cred.id, {"password": "longer-secret"}, user_id)
        await store.delete(cred.id, user_id)

    Cross-user access raises NotAuthorizedError rather than pretending the
    record does not exist.
    """

    def __init__(
        self,
        schema: CollectionSchema,
        backend: PersistenceBackend,
        codec: FieldCodec,
        id_generator: Optional[IdentifierGenerator] = None,
        clock: Optional[Callable[[], str]] = None,
    ) -> None:
        self._schema = schema
        self._backend = backend
        self._codec = codec
        self._ids = id_generator or UuidGenerator()
        self._clock = clock or utc_now_iso
        self._log = logging.getLogger(f"securedesk.records.{schema.name}")

    @property
    def schema(self) -> CollectionSchema:
        return self._schema

    @property
    def collection(self) -> str:
        return self._schema.name

    # -- field transforms ----------------------------------------------------

    def _seal(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Encrypt the sensitive members of a plaintext mapping."""
        sealed = dict(values)
        for name in self._schema.sensitive_fields:
            if name in sealed:
                sealed[name] = self._codec.encrypt(sealed[name], self._schema.context(name))
        return sealed

    def _open(self, stored: Mapping[str, Any]) -> R:
        """Decrypt a stored record into its record type."""
        plain = dict(stored)
        for name in self._schema.sensitive_fields:
            try:
                plain[name] = self._codec.decrypt(plain.get(name), self._schema.context(name))
            except DecryptionError as e:
                raise DecryptionError(
                    f"Cannot decrypt {self.collection}.{name} of record {stored.get('id')}"
                ) from e
        return self._schema.build(plain)  # type: ignore[return-value]

    @staticmethod
    def _require_user(user_id: Optional[str]) -> str:
        if not user_id:
            raise ValidationError.missing(["user_id"])
        return user_id

    async def _load_owned(self, record_id: str, user_id: str) -> Record:
        if not record_id:
            raise ValidationError.missing(["id"])

        rows = await self._backend.get_by_filter(self.collection, {"id": record_id})
        if not rows:
            raise NotFoundError(f"No {self.collection} record with id {record_id}")

        row = rows[0]
        if row.get("user_id") != user_id:
            self._log.warning("Cross-user access to %s record %s refused", self.collection, record_id)
            raise NotAuthorizedError(f"{self.collection} record {record_id} belongs to another user")
        return row

    # -- operations ------------------------------------------------------------

    async def create(self, fields: Mapping[str, Any], user_id: str) -> R:
        """
        Validate, encrypt and persist a new record.

        Returns:
            The decrypted view of the created record

        Raises:
            ValidationError: Missing required fields (all listed), unknown
                or protected fields, invalid values
            BackendUnavailableError: Storage failure
        """
        user_id = self._require_user(user_id)
        values = self._schema.validate_new(fields)

        now = self._clock()
        meta = {
            "id": self._ids.next(),
            "user_id": user_id,
            "created_at": now,
            "updated_at": now,
        }
        await self._backend.insert(self.collection, {**meta, **self._seal(values)})

        self._log.info("Created %s record %s", self.collection, meta["id"])
        return self._schema.build({**meta, **values})  # type: ignore[return-value]

    async def get_all_for_user(self, user_id: str) -> RecordBatch[R]:
        """
        Read and decrypt every record owned by user_id.

        A record that fails to decrypt is reported in ``errors`` and the
        rest are still returned. Order is not guaranteed.
        """
        user_id = self._require_user(user_id)
        rows = await self._backend.get_by_filter(self.collection, {"user_id": user_id})

        records: list[R] = []
        errors: list[RecordReadError] = []
        for row in rows:
            try:
                records.append(self._open(row))
            except DecryptionError as e:
                self._log.warning("Skipping unreadable %s record %s", self.collection, row.get("id"))
                errors.append(RecordReadError(record_id=str(row.get("id")), error=e))

        return RecordBatch(records=tuple(records), errors=tuple(errors))

    async def get(self, record_id: str, user_id: str) -> R:
        """
        Read one record.

        Raises:
            NotFoundError: No such record
            NotAuthorizedError: Record owned by another user
            DecryptionError: Record unreadable under the current key
        """
        user_id = self._require_user(user_id)
        return self._open(await self._load_owned(record_id, user_id))

    async def update(self, record_id: str, fields: Mapping[str, Any], user_id: str) -> R:
        """
        Patch a record owned by user_id.

        Sensitive fields in the patch are re-encrypted, derived fields
        recomputed and ``updated_at`` refreshed. ``user_id`` is never
        changed. An empty patch returns the record untouched.

        Raises:
            NotFoundError: No such record
            NotAuthorizedError: Record owned by another user
            ValidationError: Invalid patch (e.g. emptying a required field)
            DecryptionError: Stored record unreadable; nothing is written
        """
        user_id = self._require_user(user_id)
        existing = await self._load_owned(record_id, user_id)
        changes = self._schema.validate_patch(fields)
        # An unreadable record is never written to
        current = self._open(existing)
        if not changes:
            return current

        patch = {**self._seal(changes), "updated_at": self._clock()}
        if not await self._backend.update_by_id(self.collection, record_id, patch):
            raise NotFoundError(f"{self.collection} record {record_id} was removed")

        self._log.info("Updated %s record %s", self.collection, record_id)
        return self._open({**existing, **patch})

    async def delete(self, record_id: str, user_id: str) -> None:
        """
        Hard-delete a record owned by user_id.

        Raises:
            NotFoundError: No such record
            NotAuthorizedError: Record owned by another user
        """
        user_id = self._require_user(user_id)
        await self._load_owned(record_id, user_id)

        removed = await self._backend.delete_by_filter(
            self.collection, {"id": record_id, "user_id": user_id}
        )
        if not removed:
            raise NotFoundError(f"{self.collection} record {record_id} was removed")

        self._log.info("Deleted %s record %s", self.collection, record_id)

    async def count_for_user(self, user_id: str) -> int:
        """Number of records owned by user_id."""
        user_id = self._require_user(user_id)
        return await self._backend.count_by_filter(self.collection, {"user_id": user_id})

    def __repr__(self) -> str:
        return f"RecordStore(collection={self.collection!r})"
