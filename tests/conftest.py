"""
Shared pytest fixtures for the SecureDesk test suite.

Every test gets its own key, backends live in memory or under tmp_path,
and the ``securedesk`` logger is restored after each test so a test that
configures logging cannot leak handlers into the next one.
"""

import logging

import pytest

from securedesk.core.auth import Argon2Hasher, UserDirectory
from securedesk.core.crypto import FieldCodec, StaticKeyProvider, generate_key
from securedesk.db import InMemoryBackend, SqliteBackend
from securedesk.records import BANK_DETAILS, CARDS, CREDENTIALS, DOCUMENTS, RecordStore


@pytest.fixture(autouse=True)
def _restore_securedesk_logger():
    logger = logging.getLogger("securedesk")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    for handler in list(logger.handlers):
        if handler not in saved[0]:
            logger.removeHandler(handler)
            handler.close()
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.fixture
def key():
    return generate_key()


@pytest.fixture
def key_provider(key):
    return StaticKeyProvider(key)


@pytest.fixture
def codec(key_provider):
    return FieldCodec(key_provider)


@pytest.fixture
def memory_backend():
    return InMemoryBackend()


@pytest.fixture
def sqlite_backend(tmp_path):
    return SqliteBackend(tmp_path / "securedesk.db")


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """Runs the test once against each backend."""
    if request.param == "memory":
        return InMemoryBackend()
    return SqliteBackend(tmp_path / "securedesk.db")


@pytest.fixture
def credentials(backend, codec):
    return RecordStore(CREDENTIALS, backend, codec)


@pytest.fixture
def cards(backend, codec):
    return RecordStore(CARDS, backend, codec)


@pytest.fixture
def bank_details(backend, codec):
    return RecordStore(BANK_DETAILS, backend, codec)


@pytest.fixture
def documents(backend, codec):
    return RecordStore(DOCUMENTS, backend, codec)


@pytest.fixture
def fast_hasher():
    """Lowest parameters the hasher accepts, to keep the suite quick."""
    return Argon2Hasher(memory_cost=65536, time_cost=2, parallelism=1)


@pytest.fixture
def users(memory_backend, fast_hasher):
    return UserDirectory(memory_backend, hasher=fast_hasher)
