from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from settings import get_settings


class PropertyStore:
    """Key/value store for persisted configuration strings.

    With a ``root_path`` every property lives in its own UTF-8 file named
    after the key, so a fresh store over the same directory sees prior writes.
    """

    def __init__(self, root_path: Optional[Path] = None) -> None:
        self._values: Dict[str, str] = {}
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_existing()

    def set(self, key: str, value: str) -> None:
        self._check_key(key)
        with self._lock:
            if self.root_path:
                (self.root_path / key).write_text(value, encoding="utf-8")
            self._values[key] = value

    def get(self, key: str) -> Optional[str]:
        self._check_key(key)
        with self._lock:
            return self._values.get(key)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._values)

    def _load_existing(self) -> None:
        assert self.root_path is not None
        for path in self.root_path.iterdir():
            if path.is_file():
                self._values[path.name] = path.read_text(encoding="utf-8")

    @staticmethod
    def _check_key(key: str) -> None:
        if not key or "/" in key or "\\" in key or key in {".", ".."}:
            raise ValueError(f"Invalid property key {key!r}.")


@lru_cache
def build_default_property_store(root_path: Optional[str] = None) -> PropertyStore:
    settings = get_settings()
    root = settings.property_store_root if root_path is None else root_path
    return PropertyStore(root_path=Path(root) if root else None)
