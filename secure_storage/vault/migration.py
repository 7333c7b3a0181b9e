"""
Format Migration — Re-encryption of legacy (v1) entries into the v2 format.

Walks every managed key in both backing stores and re-seals entries stored
with the legacy XOR obfuscation under AES-GCM. The envelope is kept as is
(data, timestamp and ttl unchanged) and written back to the store it was
read from. The operation is idempotent: plain and v2 entries are skipped.

Security Note:
    Plaintext exists in memory only during re-encryption of each entry.
    Never log plaintext or ciphertext values.
"""
import logging

from ..exceptions import SecureStorageError
from .envelope import StoredFormat, detect_format
from .storage import SecureStorage

logger = logging.getLogger("secure_storage.vault")


async def migrate_legacy_entries(storage: SecureStorage) -> dict:
    """Re-encrypt every legacy-obfuscated entry of ``storage`` as v2.

    Args:
        storage: SecureStorage whose entries are migrated.

    Returns:
        Stats dict with keys: total, migrated, skipped, errors.
    """
    stats = {"total": 0, "migrated": 0, "skipped": 0, "errors": 0}
    if not storage.cipher.is_available():
        logger.warning("Legacy migration skipped: AEAD provider not available")
        return stats

    prefix = storage.config.prefix
    codec = storage.codec
    logger.info("Starting legacy migration (prefix=%s)", prefix)

    for store in (storage.session, storage.persistent):
        for skey in store.key_list():
            if not skey.startswith(prefix):
                continue
            key = skey[len(prefix):]
            stats["total"] += 1
            raw = store.get_item(skey)
            try:
                fmt, _ = detect_format(raw) if raw else (None, None)
                if fmt is not StoredFormat.LEGACY:
                    stats["skipped"] += 1
                    continue
                envelope = codec.unwrap_sync(raw)
                if envelope.is_expired(storage.now()):
                    logger.debug("Expired legacy entry removed: key=%s", key)
                    store.remove_item(skey)
                    stats["skipped"] += 1
                    continue
                sealed = await codec.encode_encrypted(
                    envelope.model_copy(update={"encrypted": True})
                )
                store.set_item(skey, sealed)
                stats["migrated"] += 1
            except SecureStorageError as err:
                logger.error(
                    "Error migrating key=%s in %s storage: %s", key, store.name, err,
                )
                stats["errors"] += 1

    logger.info("Legacy migration complete: %s", stats)
    return stats
