"""
Record Identifiers
==================

Opaque, globally unique record ids.
"""

from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable


@runtime_checkable
class IdentifierGenerator(Protocol):
    """Anything with a ``next()`` returning a fresh id string."""

    def next(self) -> str:
        ...


class UuidGenerator:
    """UUID4 ids. No ordering guarantee."""

    __slots__ = ()

    def next(self) -> str:
        return str(uuid.uuid4())
