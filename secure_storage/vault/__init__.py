"""Secure Storage Vault — Encrypted, TTL-aware key/value persistence.

Security Note (Threat Model):
    The encryption passphrase is derived from ambient host characteristics
    and is not a secret. It protects stored tokens against casual inspection
    of the backing stores, not against an attacker who can run code on the
    same host. Changing those characteristics (locale, display, hostname)
    makes previously encrypted entries unreadable. This is an accepted
    limitation: no separate secret is ever persisted.
"""

from .config import StorageConfig
from .crypto import AuthenticatedCipher, EncryptedBlob, derive_key, xor_decode, xor_encode
from .envelope import Envelope, EnvelopeCodec, StoredFormat
from .fingerprint import FingerprintDeriver, HostEnvironment, derive_passphrase
from .storage import SecureStorage, StorageOptions
from .migration import migrate_legacy_entries

__all__ = [
    "SecureStorage",
    "StorageOptions",
    "StorageConfig",
    "AuthenticatedCipher",
    "EncryptedBlob",
    "derive_key",
    "xor_encode",
    "xor_decode",
    "Envelope",
    "EnvelopeCodec",
    "StoredFormat",
    "FingerprintDeriver",
    "HostEnvironment",
    "derive_passphrase",
    "migrate_legacy_entries",
]
