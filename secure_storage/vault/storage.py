"""
SecureStorage — Encrypted, TTL-aware key/value storage over two backing stores.

Provides the public API of the secure storage engine:
- ``set(key, value, encrypt=, ttl=, persistent=)`` — wrap, optionally encrypt, persist
- ``get(key, default)`` — read (session → persistent), decode, enforce TTL
- ``set_sync`` / ``get_sync`` — synchronous path, legacy obfuscation only
- ``remove(key)`` / ``clear()`` / ``keys()`` / ``exists(key)``
- ``is_available()`` — probe backing store writability
- ``cleanup()`` — visit every managed key so expired entries are purged

No error escapes the public methods: writes return ``False`` and reads
return the caller's default, with diagnostics sent to the logger.

Security Note:
    Never log plaintext or ciphertext values. Only log key names,
    store names and outcomes.
"""
import logging
from typing import Any, Callable, Mapping, Optional, Set, Union

from pydantic import BaseModel, Field, ValidationError

from ..backends import MemoryStorage, FileStorage, StorageBackend
from ..exceptions import (
    AuthenticationFailed,
    DecryptError,
    FormatError,
    ProviderUnavailable,
    SecureStorageError,
    SerializationError,
)
from .config import StorageConfig
from .crypto import AuthenticatedCipher
from .envelope import Envelope, EnvelopeCodec, now_ms
from .fingerprint import FingerprintDeriver

logger = logging.getLogger("secure_storage.vault")

_MAX_KEY_LENGTH = 255
_PROBE_KEY = "__storage_test__"

# errors a backend may surface besides StorageUnavailable
_BACKEND_ERRORS = (SecureStorageError, OSError, TypeError, ValueError)


class StorageOptions(BaseModel):
    """Write options for ``SecureStorage.set``."""

    encrypt: bool = False
    ttl: Optional[int] = Field(default=None, gt=0)  # milliseconds
    persistent: bool = False

    model_config = {"extra": "forbid"}


class SecureStorage:
    """Encrypted key/value storage over a session and a persistent store.

    Entries live under ``config.prefix`` in both stores; ``clear()`` and
    ``keys()`` never see unprefixed keys.

    Args:
        session: Store cleared at session end. In-memory by default.
        persistent: Store surviving restarts. A FileStorage when
            ``config.persistent_path`` is set, in-memory otherwise.
        config: Engine configuration.
        passphrase: Callable returning the KDF passphrase.
        cipher: AEAD cipher; built from config and passphrase if omitted.
        clock: Callable returning milliseconds since the epoch.
    """

    def __init__(
        self,
        session: Optional[StorageBackend] = None,
        persistent: Optional[StorageBackend] = None,
        config: Optional[StorageConfig] = None,
        passphrase: Optional[Callable[[], str]] = None,
        cipher: Optional[AuthenticatedCipher] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or StorageConfig()
        if session is None:
            session = MemoryStorage("session")
        if persistent is None:
            if self.config.persistent_path is not None:
                persistent = FileStorage(self.config.persistent_path)
            else:
                persistent = MemoryStorage("persistent")
        self.session = session
        self.persistent = persistent
        self._passphrase = passphrase or FingerprintDeriver(
            fallback=self.config.fallback_passphrase,
        )
        self.cipher = cipher or AuthenticatedCipher(
            self._passphrase,
            iterations=self.config.kdf_iterations,
            enabled=self.config.crypto_enabled,
        )
        self._clock = clock
        self.codec = EnvelopeCodec(self.cipher, self._passphrase, clock)

    def __repr__(self) -> str:
        return (
            f'<SecureStorage [prefix:{self.config.prefix}] '
            f'session={self.session!r}, persistent={self.persistent!r}>'
        )

    # ------------------------------------------------------------------
    # Key helpers
    # ------------------------------------------------------------------

    def _validate_key(self, key: str) -> None:
        """Validate a logical key name.

        Raises:
            ValueError: If key is not a string, empty, or too long.
        """
        if not isinstance(key, str) or not key:
            raise ValueError("Storage key must be a non-empty string")
        if len(key) > _MAX_KEY_LENGTH:
            raise ValueError(f"Storage key cannot exceed {_MAX_KEY_LENGTH} characters")

    def _storage_key(self, key: str) -> str:
        return f"{self.config.prefix}{key}"

    def _stores(self) -> tuple[StorageBackend, StorageBackend]:
        return (self.session, self.persistent)

    def _store_for(self, persistent: bool) -> StorageBackend:
        return self.persistent if persistent else self.session

    def _read_raw(self, key: str) -> Optional[str]:
        """Return the raw entry, from the session store first, persistent second."""
        skey = self._storage_key(key)
        for store in self._stores():
            raw = store.get_item(skey)
            if raw:
                return raw
        return None

    def _options(
        self,
        options: Union[StorageOptions, Mapping[str, Any], None],
        overrides: dict,
    ) -> StorageOptions:
        if options is None:
            return StorageOptions(**overrides)
        if isinstance(options, StorageOptions):
            options = options.model_dump()
        elif not isinstance(options, Mapping):
            raise TypeError(
                f"options must be StorageOptions or a mapping, got {type(options).__name__}"
            )
        return StorageOptions.model_validate({**options, **overrides})

    def _write(self, key: str, serialized: str, persistent: bool) -> bool:
        store = self._store_for(persistent)
        try:
            store.set_item(self._storage_key(key), serialized)
        except _BACKEND_ERRORS as err:
            logger.error(
                "Failed to write key=%s to %s storage: %s", key, store.name, err,
            )
            return False
        logger.debug("Storage set: key=%s store=%s", key, store.name)
        return True

    def now(self) -> int:
        """Current time in milliseconds, from the configured clock."""
        return self._clock()

    def _expire(self, key: str, envelope: Envelope) -> bool:
        """Remove the entry when its TTL has elapsed; True if it was removed."""
        if envelope.is_expired(self.now()):
            logger.debug("Stored data expired, removing key=%s", key)
            self.remove(key)
            return True
        return False

    # ------------------------------------------------------------------
    # Async API (AEAD)
    # ------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        options: Union[StorageOptions, Mapping[str, Any], None] = None,
        **kwargs,
    ) -> bool:
        """Store a value, optionally encrypted and with a TTL.

        Args:
            key: Logical key (max 255 chars).
            value: JSON-serializable value (bytes and pydantic models allowed).
                Integers must fit in 64 bits; larger ones fail to serialize.
            options: StorageOptions or a mapping of the same fields;
                ``encrypt``, ``ttl`` (ms) and ``persistent`` may also be
                passed as keyword arguments.

        Returns:
            True if the value was written, False otherwise (prior state untouched).
        """
        try:
            self._validate_key(key)
            opts = self._options(options, kwargs)
        except (ValueError, TypeError, ValidationError) as err:
            logger.error("Invalid set request for key=%r: %s", key, err)
            return False

        envelope = self.codec.wrap(value, ttl=opts.ttl, encrypted=opts.encrypt)
        try:
            if not opts.encrypt:
                serialized = self.codec.encode_plain(envelope)
            elif self.cipher.is_available():
                serialized = await self._encrypt(key, envelope)
                if serialized is None:
                    return False
            else:
                logger.warning(
                    "Using legacy encryption for key=%s - AEAD provider not available", key,
                )
                serialized = self.codec.encode_legacy(envelope)
        except SerializationError as err:
            logger.error("Failed to serialize value for key=%s: %s", key, err)
            return False
        return self._write(key, serialized, opts.persistent)

    async def _encrypt(self, key: str, envelope: Envelope) -> Optional[str]:
        """Encrypt an envelope, applying the configured failure policy.

        Raises:
            SerializationError: If the envelope cannot be serialized.
        """
        try:
            serialized = await self.codec.encode_encrypted(envelope)
        except SerializationError:
            raise
        except SecureStorageError as err:
            if self.config.on_encrypt_failure == "plaintext":
                logger.error(
                    "Encryption failed for key=%s, storing unencrypted: %s", key, err,
                )
                return self.codec.encode_plain(
                    envelope.model_copy(update={"encrypted": False})
                )
            logger.error("Encryption failed for key=%s, write refused: %s", key, err)
            return None
        logger.debug("Data encrypted for key=%s", key)
        return serialized

    async def get(self, key: str, default: Any = None) -> Any:
        """Read, decode and return a value.

        Lookup order: session store → persistent store → default.
        Expired entries are removed and yield the default.
        """
        try:
            self._validate_key(key)
            raw = self._read_raw(key)
        except _BACKEND_ERRORS as err:
            logger.error("Failed to read key=%r: %s", key, err)
            return default
        if raw is None:
            return default
        try:
            envelope = await self.codec.unwrap(raw)
        except AuthenticationFailed:
            logger.error("Failed to decrypt key=%s: authentication failed", key)
            return default
        except ProviderUnavailable as err:
            logger.error("Cannot decrypt key=%s: %s", key, err)
            return default
        except FormatError as err:
            logger.warning("Invalid stored data format for key=%s: %s", key, err)
            return default
        except DecryptError as err:
            logger.error("Failed to decrypt key=%s: %s", key, err)
            return default
        if self._expire(key, envelope):
            return default
        return envelope.data

    async def cleanup(self) -> None:
        """Visit every managed key; reading purges expired entries."""
        for key in self.keys():
            await self.get(key)

    # ------------------------------------------------------------------
    # Sync API (legacy obfuscation only)
    # ------------------------------------------------------------------

    def set_sync(
        self,
        key: str,
        value: Any,
        options: Union[StorageOptions, Mapping[str, Any], None] = None,
        **kwargs,
    ) -> bool:
        """Synchronous ``set``. Encryption uses the legacy obfuscator."""
        try:
            self._validate_key(key)
            opts = self._options(options, kwargs)
        except (ValueError, TypeError, ValidationError) as err:
            logger.error("Invalid set request for key=%r: %s", key, err)
            return False

        envelope = self.codec.wrap(value, ttl=opts.ttl, encrypted=opts.encrypt)
        try:
            if opts.encrypt:
                logger.warning(
                    "Synchronous set with encryption uses legacy encryption: key=%s", key,
                )
                serialized = self.codec.encode_legacy(envelope)
            else:
                serialized = self.codec.encode_plain(envelope)
        except SerializationError as err:
            logger.error("Failed to serialize value for key=%s: %s", key, err)
            return False
        return self._write(key, serialized, opts.persistent)

    def get_sync(self, key: str, default: Any = None) -> Any:
        """Synchronous ``get``. v2 encrypted entries yield the default."""
        try:
            self._validate_key(key)
            raw = self._read_raw(key)
        except _BACKEND_ERRORS as err:
            logger.error("Failed to read key=%r: %s", key, err)
            return default
        if raw is None:
            return default
        try:
            envelope = self.codec.unwrap_sync(raw)
        except ProviderUnavailable:
            logger.warning(
                "Cannot synchronously decrypt v2 data for key=%s, use get()", key,
            )
            return default
        except FormatError as err:
            logger.warning("Invalid stored data format for key=%s: %s", key, err)
            return default
        if self._expire(key, envelope):
            return default
        return envelope.data

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def remove(self, key: str) -> bool:
        """Delete key from both stores. Removing an absent key is not an error."""
        skey = self._storage_key(key)
        ok = True
        for store in self._stores():
            try:
                store.remove_item(skey)
            except _BACKEND_ERRORS as err:
                logger.error(
                    "Failed to remove key=%s from %s storage: %s", key, store.name, err,
                )
                ok = False
        return ok

    def clear(self) -> bool:
        """Remove every prefixed entry from both stores, and nothing else."""
        prefix = self.config.prefix
        ok = True
        for store in self._stores():
            try:
                for skey in store.key_list():
                    if skey.startswith(prefix):
                        store.remove_item(skey)
            except _BACKEND_ERRORS as err:
                logger.error("Failed to clear %s storage: %s", store.name, err)
                ok = False
        return ok

    def keys(self) -> Set[str]:
        """Logical keys (prefix stripped) across both stores."""
        prefix = self.config.prefix
        found: Set[str] = set()
        for store in self._stores():
            try:
                found.update(
                    skey[len(prefix):] for skey in store.key_list()
                    if skey.startswith(prefix) and len(skey) > len(prefix)
                )
            except _BACKEND_ERRORS as err:
                logger.error("Failed to get keys from %s storage: %s", store.name, err)
        return found

    def exists(self, key: str) -> bool:
        """Whether a raw entry exists for key (no decoding, no TTL check)."""
        try:
            return self._read_raw(key) is not None
        except _BACKEND_ERRORS as err:
            logger.error("Failed to check key=%r: %s", key, err)
            return False

    def is_available(self) -> bool:
        """Probe both stores with a throwaway write/delete."""
        for store in self._stores():
            try:
                store.set_item(_PROBE_KEY, _PROBE_KEY)
                store.remove_item(_PROBE_KEY)
            except _BACKEND_ERRORS as err:
                logger.warning("%s storage not available: %s", store.name, err)
                return False
        return True
