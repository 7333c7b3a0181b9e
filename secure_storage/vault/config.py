"""
Storage Configuration — Validated settings for the secure storage engine.

Reads optional overrides from environment variables:
    SECURE_STORAGE_PREFIX = <namespace prefix for managed keys>
    SECURE_STORAGE_KDF_ITERATIONS = <integer, >= 100000>
    SECURE_STORAGE_ON_ENCRYPT_FAILURE = fail | plaintext
    SECURE_STORAGE_DISABLE_CRYPTO = 1 | true | yes
    SECURE_STORAGE_PERSISTENT_PATH = <path to a JSON file>
    SECURE_STORAGE_FALLBACK_PASSPHRASE = <passphrase for headless hosts>
    SECURE_STORAGE_SECURE_TTL = <milliseconds>
    SECURE_STORAGE_TEMPORARY_TTL = <milliseconds>

Security Note:
    Never log passphrases or derived key material.
"""
import os
import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("secure_storage.vault")

DEFAULT_PREFIX = "securestore_"
PBKDF2_MIN_ITERATIONS = 100_000
FALLBACK_PASSPHRASE = "securestore-fallback-headless"

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _env_int(name: str) -> Optional[int]:
    """Read an integer environment variable.

    Raises:
        ValueError: If the value is set but is not a valid integer.
    """
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class StorageConfig(BaseModel):
    """Validated secure storage configuration."""

    prefix: str = Field(default=DEFAULT_PREFIX)
    kdf_iterations: int = Field(default=PBKDF2_MIN_ITERATIONS, ge=PBKDF2_MIN_ITERATIONS)
    on_encrypt_failure: Literal["fail", "plaintext"] = Field(default="fail")
    crypto_enabled: bool = Field(default=True)
    persistent_path: Optional[Path] = None
    fallback_passphrase: str = Field(default=FALLBACK_PASSPHRASE, min_length=1)
    secure_ttl: int = Field(default=DAY_MS, gt=0)
    temporary_ttl: int = Field(default=HOUR_MS, gt=0)

    model_config = {"frozen": True}

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """The namespace prefix must be non-empty and free of whitespace."""
        if not v or v != v.strip():
            raise ValueError(f"Invalid storage prefix: {v!r}")
        return v

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create StorageConfig from environment variables.

        Unset variables keep their defaults.

        Returns:
            Populated StorageConfig instance.
        """
        values: dict = {}
        prefix = os.environ.get("SECURE_STORAGE_PREFIX")
        if prefix is not None:
            values["prefix"] = prefix
        iterations = _env_int("SECURE_STORAGE_KDF_ITERATIONS")
        if iterations is not None:
            values["kdf_iterations"] = iterations
        policy = os.environ.get("SECURE_STORAGE_ON_ENCRYPT_FAILURE")
        if policy:
            values["on_encrypt_failure"] = policy.strip().lower()
        disabled = os.environ.get("SECURE_STORAGE_DISABLE_CRYPTO", "")
        if disabled.strip().lower() in _TRUTHY:
            values["crypto_enabled"] = False
        path = os.environ.get("SECURE_STORAGE_PERSISTENT_PATH")
        if path:
            values["persistent_path"] = Path(path).expanduser()
        fallback = os.environ.get("SECURE_STORAGE_FALLBACK_PASSPHRASE")
        if fallback:
            values["fallback_passphrase"] = fallback
        secure_ttl = _env_int("SECURE_STORAGE_SECURE_TTL")
        if secure_ttl is not None:
            values["secure_ttl"] = secure_ttl
        temporary_ttl = _env_int("SECURE_STORAGE_TEMPORARY_TTL")
        if temporary_ttl is not None:
            values["temporary_ttl"] = temporary_ttl
        config = cls(**values)
        logger.debug(
            "Loaded storage config from env: prefix=%s iterations=%d crypto=%s policy=%s",
            config.prefix, config.kdf_iterations,
            config.crypto_enabled, config.on_encrypt_failure,
        )
        return config
