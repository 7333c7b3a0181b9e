"""
Convenience presets over ``SecureStorage`` for common storage patterns.

Used by the HTTP client / auth layer:

    helpers = SecureStorageHelpers(storage)
    await helpers.set_secure("token", token)        # encrypted, 24h TTL
    token = await helpers.get_secure("token")
    helpers.sync.set_secure("token", token)         # legacy obfuscation
"""
from typing import Any, Optional

from .vault.storage import SecureStorage


class _SyncHelpers:
    """Synchronous presets; encryption falls back to legacy obfuscation."""

    def __init__(self, storage: SecureStorage):
        self._storage = storage

    def set_secure(self, key: str, value: Any) -> bool:
        return self._storage.set_sync(
            key, value, encrypt=True, ttl=self._storage.config.secure_ttl,
        )

    def set_secure_persistent(self, key: str, value: Any) -> bool:
        return self._storage.set_sync(key, value, encrypt=True, persistent=True)

    def get_secure(self, key: str, default: Any = None) -> Any:
        return self._storage.get_sync(key, default)


class SecureStorageHelpers:
    """Fixed option presets for the storage engine."""

    def __init__(self, storage: SecureStorage):
        self.storage = storage
        self.sync = _SyncHelpers(storage)

    async def set_temporary(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store unencrypted with a TTL (ms), one hour by default."""
        return await self.storage.set(
            key, value, ttl=ttl or self.storage.config.temporary_ttl,
        )

    async def set_secure(self, key: str, value: Any) -> bool:
        """Store encrypted with the secure TTL, 24 hours by default."""
        return await self.storage.set(
            key, value, encrypt=True, ttl=self.storage.config.secure_ttl,
        )

    async def set_persistent(self, key: str, value: Any) -> bool:
        return await self.storage.set(key, value, persistent=True)

    async def set_secure_persistent(self, key: str, value: Any) -> bool:
        return await self.storage.set(key, value, encrypt=True, persistent=True)

    async def get_secure(self, key: str, default: Any = None) -> Any:
        return await self.storage.get(key, default)
