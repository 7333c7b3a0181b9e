"""
Envelope Codec — Metadata wrapping and stored-format detection.

A stored value is an ``Envelope`` (data, timestamp, ttl, encrypted flag)
serialized with orjson, and then persisted in one of three shapes:

- v2: JSON ``EncryptedBlob`` holding the AEAD-encrypted envelope
- v1: base64 string of the XOR-obfuscated envelope (legacy)
- plain: the envelope JSON itself

On read the shape is detected in that order.
"""
import time
import base64
import logging
from enum import Enum
from typing import Any, Callable, Optional

import orjson
from pydantic import BaseModel, Field, ValidationError

from ..exceptions import FormatError, ProviderUnavailable, SerializationError
from .crypto import (
    BLOB_VERSION,
    AuthenticatedCipher,
    EncryptedBlob,
    looks_like_base64,
    xor_decode,
    xor_encode,
)

logger = logging.getLogger("secure_storage.vault")

_BYTES_WRAPPER_KEY = "__vault_bytes_b64__"


def now_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


class StoredFormat(str, Enum):
    """Shapes a raw stored string can take."""
    ENCRYPTED = "v2"
    LEGACY = "v1"
    PLAIN = "plain"


class Envelope(BaseModel):
    """Metadata-wrapped form of a stored value."""

    data: Any = None
    timestamp: int = Field(ge=0)
    ttl: Optional[int] = Field(default=None, ge=0)
    encrypted: bool = False

    model_config = {"frozen": True}

    def age(self, now: int) -> int:
        return now - self.timestamp

    def is_expired(self, now: int) -> bool:
        """An envelope without ttl (or ttl 0) never expires."""
        if not self.ttl:
            return False
        return self.age(now) > self.ttl


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def _default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return {_BYTES_WRAPPER_KEY: base64.b64encode(bytes(obj)).decode("ascii")}
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"Type is not serializable: {type(obj).__name__}")


def _restore(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and _BYTES_WRAPPER_KEY in value:
            encoded = value[_BYTES_WRAPPER_KEY]
            if not isinstance(encoded, str):
                raise ValueError("bytes wrapper must hold a base64 string")
            return base64.b64decode(encoded, validate=True)
        return {k: _restore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_restore(v) for v in value]
    return value


def serialize_envelope(envelope: Envelope) -> str:
    """Serialize an envelope to compact JSON text.

    ``ttl`` is omitted when absent.

    Raises:
        SerializationError: If the wrapped value cannot be serialized.
    """
    payload: dict = {"data": envelope.data, "timestamp": envelope.timestamp}
    if envelope.ttl is not None:
        payload["ttl"] = envelope.ttl
    payload["encrypted"] = envelope.encrypted
    try:
        return orjson.dumps(payload, default=_default).decode("utf-8")
    except TypeError as err:
        # orjson.JSONEncodeError subclasses TypeError
        raise SerializationError(str(err)) from err


def parse_envelope(text: str) -> Envelope:
    """Parse plain envelope JSON.

    Raises:
        FormatError: If text is not a JSON object with data and timestamp.
    """
    try:
        parsed = orjson.loads(text)
    except orjson.JSONDecodeError as err:
        raise FormatError("stored value is not valid JSON") from err
    if not isinstance(parsed, dict) or "data" not in parsed or "timestamp" not in parsed:
        raise FormatError("stored value is not an envelope")
    if isinstance(parsed["timestamp"], bool):
        raise FormatError("envelope timestamp must be an integer")
    try:
        envelope = Envelope.model_validate(parsed, strict=False)
    except ValidationError as err:
        raise FormatError(f"invalid envelope: {err.error_count()} error(s)") from err
    try:
        data = _restore(envelope.data)
    except (TypeError, ValueError) as err:
        # binascii.Error subclasses ValueError
        raise FormatError("invalid bytes wrapper in envelope data") from err
    return envelope.model_copy(update={"data": data})


def detect_format(raw: str) -> tuple[StoredFormat, Optional[EncryptedBlob]]:
    """Classify a raw stored string.

    Returns:
        Tuple of (format, blob); blob is only set for ``StoredFormat.ENCRYPTED``.

    Raises:
        FormatError: If it claims to be v2 but the blob fields are invalid.
    """
    try:
        parsed = orjson.loads(raw)
    except orjson.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict) and parsed.get("version") == BLOB_VERSION:
        try:
            return StoredFormat.ENCRYPTED, EncryptedBlob.model_validate(parsed)
        except ValidationError as err:
            raise FormatError("malformed v2 blob") from err
    if looks_like_base64(raw):
        return StoredFormat.LEGACY, None
    return StoredFormat.PLAIN, None


class EnvelopeCodec:
    """Wraps values into envelopes and turns stored strings back into them."""

    def __init__(
        self,
        cipher: AuthenticatedCipher,
        passphrase: Callable[[], str],
        clock: Callable[[], int] = now_ms,
    ):
        self.cipher = cipher
        self._passphrase = passphrase
        self._clock = clock

    def wrap(self, value: Any, ttl: Optional[int] = None, encrypted: bool = False) -> Envelope:
        return Envelope(
            data=value, timestamp=self._clock(), ttl=ttl, encrypted=encrypted,
        )

    # -- encoding ---------------------------------------------------------

    def encode_plain(self, envelope: Envelope) -> str:
        return serialize_envelope(envelope)

    def encode_legacy(self, envelope: Envelope) -> str:
        return xor_encode(serialize_envelope(envelope), self._passphrase())

    async def encode_encrypted(self, envelope: Envelope) -> str:
        """Encrypt the serialized envelope into a v2 blob (JSON text)."""
        serialized = serialize_envelope(envelope)
        blob = await self.cipher.encrypt(serialized.encode("utf-8"))
        return orjson.dumps(blob.to_json_dict()).decode("utf-8")

    # -- decoding ---------------------------------------------------------

    def _decode_unencrypted(self, raw: str, fmt: StoredFormat) -> Envelope:
        if fmt is StoredFormat.LEGACY:
            decoded = xor_decode(raw, self._passphrase())
            if decoded:
                try:
                    return parse_envelope(decoded)
                except FormatError:
                    # base64-shaped but not ours, e.g. a bare JSON number
                    logger.debug("Legacy decode did not yield an envelope")
        return parse_envelope(raw)

    def unwrap_sync(self, raw: str) -> Envelope:
        """Decode a stored string without touching the AEAD provider.

        Raises:
            ProviderUnavailable: If the value is a v2 blob.
            FormatError: If the value cannot be decoded.
        """
        fmt, _ = detect_format(raw)
        if fmt is StoredFormat.ENCRYPTED:
            raise ProviderUnavailable("v2 data cannot be decrypted synchronously")
        return self._decode_unencrypted(raw, fmt)

    async def unwrap(self, raw: str) -> Envelope:
        """Decode any stored string, decrypting v2 blobs.

        Raises:
            ProviderUnavailable: If the value is a v2 blob and AEAD is unavailable.
            AuthenticationFailed: If the v2 blob fails authentication.
            FormatError: If the value cannot be decoded.
        """
        fmt, blob = detect_format(raw)
        if fmt is StoredFormat.ENCRYPTED:
            if not self.cipher.is_available():
                raise ProviderUnavailable("cannot decrypt v2 data without AEAD provider")
            plaintext = await self.cipher.decrypt(blob)
            try:
                text = plaintext.decode("utf-8")
            except UnicodeDecodeError as err:
                raise FormatError("decrypted payload is not UTF-8") from err
            return parse_envelope(text)
        return self._decode_unencrypted(raw, fmt)
