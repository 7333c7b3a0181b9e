"""
Vault Crypto Core — Key derivation, authenticated encryption and legacy obfuscation.

Implements the two stored formats:
- v2: PBKDF2-SHA256(passphrase, salt 16B) → AES-256-GCM(nonce 12B) →
  {ciphertext, nonce, salt, version: "v2"}, each field base64 encoded.
- v1 (legacy): UTF-8 text XOR'd against the cycled passphrase, base64 encoded.
  No integrity protection; only used when AEAD is unavailable or when the
  caller needs a synchronous write.

Security Note:
    Never log plaintext, ciphertext, passphrases or derived keys.
    Salt and nonce are random on every encryption; derived keys are
    recomputed per operation and never cached.
"""
import os
import re
import base64
import asyncio
import binascii
import logging
from typing import Callable, Literal, Optional
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field
from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import (
    AuthenticationFailed,
    EncryptionError,
    FormatError,
    ProviderUnavailable,
)
from .config import PBKDF2_MIN_ITERATIONS

logger = logging.getLogger("secure_storage.vault")

NONCE_SIZE = 12  # 96-bit nonce
SALT_SIZE = 16
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16
BLOB_VERSION = "v2"

_BASE64_SHAPE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


# ---------------------------------------------------------------------------
# Provider probe
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def provider_supported() -> bool:
    """Check once whether the crypto backend provides PBKDF2 and AES-GCM."""
    try:
        PBKDF2HMAC(
            algorithm=hashes.SHA256(), length=KEY_LENGTH,
            salt=bytes(SALT_SIZE), iterations=1,
        ).derive(b"probe")
        AESGCM(bytes(KEY_LENGTH)).encrypt(bytes(NONCE_SIZE), b"probe", None)
    except UnsupportedAlgorithm as err:
        logger.warning("AEAD provider unavailable: %s", err)
        return False
    return True


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    passphrase: str,
    salt: bytes,
    iterations: int = PBKDF2_MIN_ITERATIONS,
) -> bytes:
    """Derive a 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Args:
        passphrase: Fingerprint passphrase.
        salt: 16 random bytes stored alongside the ciphertext.
        iterations: PBKDF2 iteration count (never below 100000).

    Returns:
        32-byte derived key.

    Raises:
        ValueError: If salt is not 16 bytes or iterations is too low.
        ProviderUnavailable: If the backend cannot run PBKDF2-SHA256.
    """
    if len(salt) != SALT_SIZE:
        raise ValueError(f"salt must be {SALT_SIZE} bytes, got {len(salt)}")
    if iterations < PBKDF2_MIN_ITERATIONS:
        raise ValueError(
            f"iterations must be >= {PBKDF2_MIN_ITERATIONS}, got {iterations}"
        )
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(passphrase.encode("utf-8"))
    except UnsupportedAlgorithm as err:
        raise ProviderUnavailable(f"PBKDF2 unavailable: {err}") from err


# ---------------------------------------------------------------------------
# Authenticated encryption (v2 format)
# ---------------------------------------------------------------------------

class EncryptedBlob(BaseModel):
    """Stored form of an AEAD-encrypted envelope."""

    ciphertext: str
    nonce: str = Field(validation_alias=AliasChoices("nonce", "iv"))
    salt: str
    version: Literal["v2"] = BLOB_VERSION

    def to_json_dict(self) -> dict:
        return {
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "salt": self.salt,
            "version": self.version,
        }


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise FormatError(f"blob field {field!r} is not valid base64") from err


def encrypt_blob(
    plaintext: bytes,
    passphrase: str,
    iterations: int = PBKDF2_MIN_ITERATIONS,
) -> EncryptedBlob:
    """Encrypt plaintext under a key derived from passphrase and a fresh salt.

    Blocking: runs the full PBKDF2 derivation.

    Raises:
        ProviderUnavailable: If the backend lacks PBKDF2 or AES-GCM.
        EncryptionError: If the AEAD operation fails.
    """
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(passphrase, salt, iterations)
    try:
        ct = AESGCM(key).encrypt(nonce, plaintext, None)
    except UnsupportedAlgorithm as err:
        raise ProviderUnavailable(f"AES-GCM unavailable: {err}") from err
    except (OverflowError, ValueError) as err:
        raise EncryptionError(str(err)) from err
    return EncryptedBlob(
        ciphertext=_b64encode(ct),
        nonce=_b64encode(nonce),
        salt=_b64encode(salt),
    )


def decrypt_blob(
    blob: EncryptedBlob,
    passphrase: str,
    iterations: int = PBKDF2_MIN_ITERATIONS,
) -> bytes:
    """Decrypt a v2 blob using its embedded salt and nonce.

    Raises:
        FormatError: If a field is not base64 or has the wrong length.
        AuthenticationFailed: If the GCM tag does not verify.
        ProviderUnavailable: If the backend lacks PBKDF2 or AES-GCM.
    """
    ct = _b64decode(blob.ciphertext, "ciphertext")
    nonce = _b64decode(blob.nonce, "nonce")
    salt = _b64decode(blob.salt, "salt")
    if len(nonce) != NONCE_SIZE:
        raise FormatError(f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
    if len(salt) != SALT_SIZE:
        raise FormatError(f"salt must be {SALT_SIZE} bytes, got {len(salt)}")
    if len(ct) < TAG_SIZE:
        raise FormatError(
            f"ciphertext too short: {len(ct)} bytes (minimum {TAG_SIZE})"
        )
    key = derive_key(passphrase, salt, iterations)
    try:
        return AESGCM(key).decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise AuthenticationFailed("ciphertext failed authentication") from err
    except UnsupportedAlgorithm as err:
        raise ProviderUnavailable(f"AES-GCM unavailable: {err}") from err


class AuthenticatedCipher:
    """Asynchronous AEAD cipher bound to a passphrase source.

    Key derivation and encryption run in a worker thread, so awaiting them
    suspends only the calling task. ``is_available()`` must be checked by
    the caller before using this path.
    """

    def __init__(
        self,
        passphrase: Callable[[], str],
        iterations: int = PBKDF2_MIN_ITERATIONS,
        enabled: bool = True,
    ):
        self._passphrase = passphrase
        self._iterations = iterations
        self._enabled = enabled

    def is_available(self) -> bool:
        return self._enabled and provider_supported()

    def _require(self) -> None:
        if not self._enabled:
            raise ProviderUnavailable("AEAD provider disabled by configuration")

    async def encrypt(self, plaintext: bytes) -> EncryptedBlob:
        self._require()
        return await asyncio.to_thread(
            encrypt_blob, plaintext, self._passphrase(), self._iterations,
        )

    async def decrypt(self, blob: EncryptedBlob) -> bytes:
        self._require()
        return await asyncio.to_thread(
            decrypt_blob, blob, self._passphrase(), self._iterations,
        )


# ---------------------------------------------------------------------------
# Legacy obfuscation (v1 format)
# ---------------------------------------------------------------------------

def _xor(data: bytes, key: bytes) -> bytes:
    klen = len(key)
    return bytes(b ^ key[i % klen] for i, b in enumerate(data))


def xor_encode(text: str, key: str) -> str:
    """Obfuscate text by XOR against the cycled key, then base64 encode.

    Raises:
        ValueError: If key is empty.
    """
    if not key:
        raise ValueError("legacy obfuscation key cannot be empty")
    return _b64encode(_xor(text.encode("utf-8"), key.encode("utf-8")))


def xor_decode(encoded: str, key: str) -> Optional[str]:
    """Reverse ``xor_encode``. Returns None for anything it cannot decode."""
    if not key:
        return None
    try:
        raw = base64.b64decode(encoded, validate=True)
        return _xor(raw, key.encode("utf-8")).decode("utf-8")
    except (binascii.Error, ValueError):
        return None


def looks_like_base64(value: str) -> bool:
    """Shape heuristic for legacy blobs: base64 alphabet, length multiple of 4."""
    return len(value) % 4 == 0 and _BASE64_SHAPE.match(value) is not None
