"""Device-local persistence of the status, override and going-role maps.

Each map is stored whole under its own key as a JSON document. Reads never
fail: a missing, non-JSON or schema-invalid value loads as an empty map so a
render is never blocked on a parse error. Without a storage backend (server
side) loads return empty maps and saves do nothing.
"""
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from blocos.schemas.status import (
    GoingRoleMap,
    GoingRoleRecord,
    OverrideMap,
    OverrideRecord,
    StatusMap,
    StatusRecord,
)

logger = logging.getLogger(__name__)

STATUS_KEY = "blocos:status"
OVERRIDE_KEY = "blocos:override"
GOING_ROLE_KEY = "blocos:going-role"

_status_adapter = TypeAdapter(dict[str, StatusRecord])
_override_adapter = TypeAdapter(dict[str, OverrideRecord])
_going_role_adapter = TypeAdapter(dict[str, GoingRoleRecord])


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Process-local storage; contents vanish with the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class FileStorage:
    """One file per key under a directory, replaced atomically on write."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / (key.replace(":", "_") + ".json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.warning("Unreadable local store file %s", path)
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)


class LocalStore:
    """Load/save the three per-device maps through a key-value backend."""

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage

    def _load(self, key: str, adapter: TypeAdapter) -> dict:
        if self.storage is None:
            return {}
        raw = self.storage.get(key)
        if not raw:
            return {}
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            logger.debug("Discarding corrupt local value for %s", key)
            return {}

    def _save(self, key: str, adapter: TypeAdapter, value: dict) -> None:
        if self.storage is None:
            return
        self.storage.set(key, adapter.dump_json(value).decode("utf-8"))

    def load_status_map(self) -> StatusMap:
        return self._load(STATUS_KEY, _status_adapter)

    def save_status_map(self, value: StatusMap) -> None:
        self._save(STATUS_KEY, _status_adapter, value)

    def load_override_map(self) -> OverrideMap:
        return self._load(OVERRIDE_KEY, _override_adapter)

    def save_override_map(self, value: OverrideMap) -> None:
        self._save(OVERRIDE_KEY, _override_adapter, value)

    def load_going_role_map(self) -> GoingRoleMap:
        return self._load(GOING_ROLE_KEY, _going_role_adapter)

    def save_going_role_map(self, value: GoingRoleMap) -> None:
        self._save(GOING_ROLE_KEY, _going_role_adapter, value)


def local_store_from_settings(directory: Optional[str]) -> LocalStore:
    """Build a file-backed store, or a storage-less one when no directory is set."""
    if not directory:
        return LocalStore(None)
    return LocalStore(FileStorage(directory))
