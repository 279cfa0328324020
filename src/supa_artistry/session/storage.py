"""Durable key-value storage — the client's localStorage.

Learn: The resolver only needs get/set/remove by string key, synchronous.
Two backends:
- MemoryStorage → a dict, gone when the process exits (tests, throwaway runs)
- JsonFileStorage → one JSON object on disk, survives restarts

Every file write is an atomic replace (write temp file → os.replace), so a
crash mid-write never leaves a half-written store behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol


class StorageUnavailable(Exception):
    """Raised when the store can't be read or written."""


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage. Nothing survives a restart."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Storage backed by a single JSON file.

    The file is re-read on every call, so two processes sharing a path see
    each other's writes (last writer wins).
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).expanduser()

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def _read(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageUnavailable(f"Corrupt storage file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailable(f"Corrupt storage file {self.path}: not an object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e
