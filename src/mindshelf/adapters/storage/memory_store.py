"""In-memory key-value substrate."""

from typing import Optional

from mindshelf.core.interfaces import KeyValueStore


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed substrate with an optional total byte quota."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.quota_bytes:
                raise OSError(f"Storage quota exceeded ({used + len(value)} > {self.quota_bytes} bytes)")
        self._data[key] = bytes(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._data)
