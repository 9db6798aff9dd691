"""
Filesystem storage for local development: objects are files under a root
directory, served by whatever static file server sits at base_url.
"""

import os
from pathlib import Path

from storage.base import AbstractStorage
from models.errors import StorageError


class LocalStorage(AbstractStorage):

    def __init__(self, root: str, base_url: str):
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)  # atomic overwrite
        except OSError as exc:
            raise StorageError(f"Write of {key} failed: {exc}") from exc
        return f"{self._base_url}/{key}"

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Delete of {key} failed: {exc}") from exc

    def ping(self) -> None:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Storage root {self._root} unusable: {exc}") from exc
