"""Shared fixtures for secure storage tests."""
import pytest

from secure_storage import MemoryStorage, SecureStorage, StorageConfig

PASSPHRASE = "test-passphrase"


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class Passphrase:
    """Mutable passphrase source, to simulate fingerprint drift."""

    def __init__(self, value: str = PASSPHRASE):
        self.value = value

    def __call__(self) -> str:
        return self.value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def passphrase():
    return Passphrase()


@pytest.fixture
def session_store():
    return MemoryStorage("session")


@pytest.fixture
def persistent_store():
    return MemoryStorage("persistent")


@pytest.fixture
def storage(session_store, persistent_store, passphrase, clock):
    """SecureStorage with AEAD available and a fake clock."""
    return SecureStorage(
        session=session_store,
        persistent=persistent_store,
        passphrase=passphrase,
        clock=clock,
    )


@pytest.fixture
def legacy_storage(session_store, persistent_store, passphrase, clock):
    """SecureStorage with the AEAD provider forced unavailable."""
    return SecureStorage(
        session=session_store,
        persistent=persistent_store,
        config=StorageConfig(crypto_enabled=False),
        passphrase=passphrase,
        clock=clock,
    )
