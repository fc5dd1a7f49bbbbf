"""
Persistence Backend Interface
=============================

The record store, user directory and aggregation service talk to storage
only through this interface, so a local embedded database and a remote
document store are interchangeable.

Records are flat mappings of field name to value. Filters are equality
predicates expressed as ``{field: value}``; an empty filter matches every
record in the collection.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Final, Mapping

Record = dict[str, Any]
Filter = Mapping[str, Any]
SnapshotCallback = Callable[[list[Record]], None]
Unsubscribe = Callable[[], None]

_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


def validate_name(name: str, kind: str = "collection") -> str:
    """
    Reject collection and field names that are not plain identifiers.

    Raises:
        ValueError: If name is not a plain identifier
    """
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise ValueError(f"Invalid {kind} name: {name!r}")
    return name


def validate_filter(flt: Filter) -> Filter:
    """Reject filters whose keys are not plain identifiers."""
    for key in flt:
        validate_name(key, "field")
    return flt


def matches_filter(record: Mapping[str, Any], flt: Filter) -> bool:
    """Evaluate an equality filter against a record."""
    return all(record.get(key) == value for key, value in flt.items())


class PersistenceBackend(ABC):
    """
    Abstract async storage for record collections.

    Implementations raise BackendUnavailableError for storage or transport
    failures and never retry internally.
    """

    #: Whether subscribe() delivers change notifications
    supports_subscriptions: bool = False

    @abstractmethod
    async def insert(self, collection: str, record: Record) -> None:
        """Persist a new record. ``record["id"]`` must be unique in the collection."""

    @abstractmethod
    async def get_by_filter(self, collection: str, flt: Filter) -> list[Record]:
        """Return copies of all records matching the filter, in no guaranteed order."""

    @abstractmethod
    async def update_by_id(self, collection: str, record_id: str, patch: Record) -> bool:
        """Merge patch into the record. Returns False if no such record."""

    @abstractmethod
    async def delete_by_filter(self, collection: str, flt: Filter) -> int:
        """Delete matching records and return how many were removed."""

    async def count_by_filter(self, collection: str, flt: Filter) -> int:
        """Count matching records."""
        return len(await self.get_by_filter(collection, flt))

    def subscribe(
        self,
        collection: str,
        flt: Filter,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        """
        Register for live snapshots of the matching records.

        Only available when ``supports_subscriptions`` is True.
        """
        raise NotImplementedError(f"{type(self).__name__} has no change notification")

    async def close(self) -> None:
        """Release backend resources."""
        return None
