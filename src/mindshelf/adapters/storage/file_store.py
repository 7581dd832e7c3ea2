"""File-backed key-value substrate that survives restarts."""

import asyncio
import base64
import os
from pathlib import Path
from typing import Optional

from mindshelf.core.interfaces import KeyValueStore

SUFFIX = ".bin"


class FileKeyValueStore(KeyValueStore):
    """Store each key as one file in a directory.

    File names are the URL-safe base64 of the key so any key round-trips
    through ``keys()``. Writes go to a temporary file first and are moved
    into place, so a reader never sees a half-written value.
    """

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = Path(storage_dir)
        self._ensure_structure()

    def _ensure_structure(self) -> None:
        if not self.storage_dir.exists():
            self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        encoded = base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii").rstrip("=")
        return self.storage_dir / f"{encoded}{SUFFIX}"

    @staticmethod
    def _key_for(path: Path) -> str:
        encoded = path.name[: -len(SUFFIX)]
        padding = "=" * (-len(encoded) % 4)
        return base64.urlsafe_b64decode(encoded + padding).decode("utf-8")

    async def get(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read, self._path_for(key))

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._write, self._path_for(key), value)

    @staticmethod
    def _write(path: Path, value: bytes) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(value)
        os.replace(tmp_path, path)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._path_for(key).unlink, missing_ok=True)

    async def keys(self) -> list[str]:
        return [self._key_for(path) for path in sorted(self.storage_dir.glob(f"*{SUFFIX}"))]
