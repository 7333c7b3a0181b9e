"""Secure Storage.

Encrypted, TTL-aware local persistence for sensitive session artifacts.
"""
from .version import __version__
from .backends import FileStorage, MemoryStorage, StorageBackend
from .exceptions import (
    AuthenticationFailed,
    DecryptError,
    EncryptionError,
    FormatError,
    ProviderUnavailable,
    SecureStorageError,
    SerializationError,
    StorageUnavailable,
)
from .helpers import SecureStorageHelpers
from .vault import (
    SecureStorage,
    StorageConfig,
    StorageOptions,
    migrate_legacy_entries,
)

__all__ = (
    "__version__",
    "SecureStorage",
    "SecureStorageHelpers",
    "StorageConfig",
    "StorageOptions",
    "StorageBackend",
    "MemoryStorage",
    "FileStorage",
    "migrate_legacy_entries",
    "SecureStorageError",
    "DecryptError",
    "ProviderUnavailable",
    "AuthenticationFailed",
    "EncryptionError",
    "FormatError",
    "SerializationError",
    "StorageUnavailable",
)
