"""
Database module - Data persistence and storage components.

Security Considerations:
- Sensitive fields reach the backend already encrypted
- No plaintext secrets in database
- Backends surface failures as BackendUnavailableError and never retry
"""

from securedesk.db.backend import (
    Filter,
    PersistenceBackend,
    Record,
    Unsubscribe,
    matches_filter,
)
from securedesk.db.memory import InMemoryBackend
from securedesk.db.sqlite import SqliteBackend

__all__ = [
    "Filter",
    "PersistenceBackend",
    "Record",
    "Unsubscribe",
    "matches_filter",
    "InMemoryBackend",
    "SqliteBackend",
]
