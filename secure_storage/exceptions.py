"""
Secure Storage exceptions.

Every error raised by the internal layers (crypto, envelope codec, backends)
derives from ``SecureStorageError``. The public ``SecureStorage`` facade
absorbs all of them and turns them into ``False`` (writes) or the caller's
default value (reads).
"""


class SecureStorageError(Exception):
    """Base exception for all secure storage errors."""


class DecryptError(SecureStorageError):
    """Raised when a stored payload cannot be decrypted."""


class ProviderUnavailable(DecryptError):
    """Raised when no cryptographic provider exists in the current runtime."""


class AuthenticationFailed(DecryptError):
    """Raised when the AEAD tag does not verify.

    Most commonly caused by fingerprint drift between write and read,
    or by tampering with the stored blob.
    """


class EncryptionError(SecureStorageError):
    """Raised when AEAD encryption fails."""


class FormatError(SecureStorageError):
    """Raised when a stored value has an unparseable or unexpected shape."""


class SerializationError(SecureStorageError):
    """Raised when a value cannot be serialized into an envelope."""


class StorageUnavailable(SecureStorageError):
    """Raised when a backing store cannot be read or written."""
