import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Protocol

from common.jsonio import atomic_write_json, load_json

logger = logging.getLogger(__name__)


class StorageScope(str, Enum):
    APPLICATION = "application"
    PROFILE = "profile"
    WORKSPACE = "workspace"


class StorageTarget(str, Enum):
    USER = "user"
    MACHINE = "machine"


class KeyValueStorage(Protocol):
    def get(self, key: str, scope: StorageScope) -> str | None: ...

    def store(
        self,
        key: str,
        value: str,
        scope: StorageScope,
        target: StorageTarget = StorageTarget.USER,
    ) -> None: ...

    def remove(self, key: str, scope: StorageScope) -> None: ...


class MemoryStorage:
    def __init__(self):
        self._data: dict[tuple[StorageScope, str], str] = {}

    def get(self, key: str, scope: StorageScope) -> str | None:
        return self._data.get((scope, key))

    def store(
        self,
        key: str,
        value: str,
        scope: StorageScope,
        target: StorageTarget = StorageTarget.USER,
    ) -> None:
        self._data[(scope, key)] = value

    def remove(self, key: str, scope: StorageScope) -> None:
        self._data.pop((scope, key), None)


class JsonFileStorage:
    """One JSON object per scope, ``<data_dir>/<scope>.json``, rewritten whole."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()

    def _path(self, scope: StorageScope) -> Path:
        return self.data_dir / f"{scope.value}.json"

    def _read(self, scope: StorageScope) -> dict[str, str]:
        data = load_json(self._path(scope)) or {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def get(self, key: str, scope: StorageScope) -> str | None:
        with self._lock:
            return self._read(scope).get(key)

    def store(
        self,
        key: str,
        value: str,
        scope: StorageScope,
        target: StorageTarget = StorageTarget.USER,
    ) -> None:
        with self._lock:
            data = self._read(scope)
            data[key] = value
            atomic_write_json(self._path(scope), data)
        logger.debug(f"Stored {key} in {scope.value} scope ({target.value})")

    def remove(self, key: str, scope: StorageScope) -> None:
        with self._lock:
            data = self._read(scope)
            if key not in data:
                return
            del data[key]
            atomic_write_json(self._path(scope), data)
