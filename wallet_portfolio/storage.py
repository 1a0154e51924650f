"""
Durable key-value storage
String keys, string values (callers store JSON). FileKeyValueStore keeps
one file per key in a directory; MemoryKeyValueStore is process-local.
"""
import os
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from wallet_portfolio.errors import StorageError

_SUFFIX = ".json"


class KeyValueStore:
    """Interface for the durable store behind PortfolioCache."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class FileKeyValueStore(KeyValueStore):
    def __init__(self, directory: str):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + _SUFFIX)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"read failed for {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"write failed for {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"remove failed for {key}: {e}") from e

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return [
            unquote(p.name[: -len(_SUFFIX)])
            for p in self.directory.iterdir()
            if p.is_file() and p.name.endswith(_SUFFIX)
        ]
