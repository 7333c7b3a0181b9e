"""
Backing stores for secure storage.

Two independent string key/value namespaces are expected by the engine:
a "session" store (cleared when the client session ends) and a
"persistent" store (survives restarts). Both are dict-like
``MutableMapping[str, str]`` objects with browser-storage style helpers.
"""
import os
import logging
import tempfile
from pathlib import Path
from typing import Optional, Union
from collections.abc import Iterator, MutableMapping

import orjson

from .exceptions import StorageUnavailable

logger = logging.getLogger("secure_storage.backends")


class StorageBackend(MutableMapping[str, str]):
    """Dict-like string store.

    Subclasses implement the mapping protocol; failures to read or write
    must raise ``StorageUnavailable``.
    """

    name: str = "storage"

    def __repr__(self) -> str:
        return f'<{type(self).__name__} [{self.name}] keys={len(self)}>'

    # --- browser-storage style helpers ---

    def get_item(self, key: str) -> Optional[str]:
        return self.get(key)

    def set_item(self, key: str, value: str) -> None:
        self[key] = value

    def remove_item(self, key: str) -> None:
        """Remove key if present; absent keys are not an error."""
        self.pop(key, None)

    def key_list(self) -> list[str]:
        """Snapshot of the current keys, safe to mutate the store while iterating."""
        return list(self)


class MemoryStorage(StorageBackend):
    """In-process store.

    Args:
        name: Label used in logs.
        quota: Optional maximum size in bytes (keys + values, UTF-8).
            Writes beyond the quota raise StorageUnavailable.
    """

    def __init__(self, name: str = "session", quota: Optional[int] = None) -> None:
        self.name = name
        self._quota = quota
        self._data: dict[str, str] = {}

    def _size(self) -> int:
        return sum(
            len(k.encode("utf-8")) + len(v.encode("utf-8"))
            for k, v in self._data.items()
        )

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"storage values must be str, got {type(value).__name__}")
        if self._quota is not None:
            current = self._size()
            if key in self._data:
                current -= len(key.encode("utf-8")) + len(self._data[key].encode("utf-8"))
            needed = len(key.encode("utf-8")) + len(value.encode("utf-8"))
            if current + needed > self._quota:
                raise StorageUnavailable(
                    f"{self.name} storage quota exceeded ({self._quota} bytes)"
                )
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class FileStorage(StorageBackend):
    """Persistent store backed by one JSON file.

    Reads are served from a cache that is reloaded whenever the file
    changes on disk (inode, mtime or size). Mutations always re-read the
    file before rewriting it atomically (temp file + rename), so several
    instances may share one path without dropping each other's keys.
    """

    def __init__(self, path: Union[str, Path], name: str = "persistent") -> None:
        self.name = name
        self.path = Path(path)
        self._data: Optional[dict[str, str]] = None
        self._signature: Optional[tuple[int, int, int]] = None

    def _stat(self) -> Optional[tuple[int, int, int]]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        except OSError as err:
            raise StorageUnavailable(f"cannot stat {self.path}: {err}") from err
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _load(self, fresh: bool = False) -> dict[str, str]:
        signature = self._stat()
        if not fresh and self._data is not None and signature == self._signature:
            return self._data
        data: dict[str, str] = {}
        try:
            content = self.path.read_bytes()
        except FileNotFoundError:
            content = b""
        except OSError as err:
            raise StorageUnavailable(f"cannot read {self.path}: {err}") from err
        if content:
            try:
                parsed = orjson.loads(content)
            except orjson.JSONDecodeError:
                logger.error("Storage file %s is corrupted, starting empty", self.path)
                parsed = {}
            if isinstance(parsed, dict):
                data = {k: v for k, v in parsed.items() if isinstance(v, str)}
            else:
                logger.error("Storage file %s has unexpected shape, starting empty", self.path)
        self._data = data
        self._signature = signature
        return data

    def _flush(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "wb") as fp:
                    fp.write(orjson.dumps(data))
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as err:
            raise StorageUnavailable(f"cannot write {self.path}: {err}") from err

    def __getitem__(self, key: str) -> str:
        return self._load()[key]

    def __setitem__(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"storage values must be str, got {type(value).__name__}")
        data = dict(self._load(fresh=True))
        data[key] = value
        self._flush(data)
        self._data, self._signature = data, self._stat()

    def __delitem__(self, key: str) -> None:
        data = dict(self._load(fresh=True))
        del data[key]
        self._flush(data)
        self._data, self._signature = data, self._stat()

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._load()))

    def __len__(self) -> int:
        return len(self._load())

    def __contains__(self, key: object) -> bool:
        return key in self._load()
