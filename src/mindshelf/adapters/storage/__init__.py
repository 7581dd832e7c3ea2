"""Key-value substrates for the cache store."""

from mindshelf.adapters.storage.file_store import FileKeyValueStore
from mindshelf.adapters.storage.memory_store import MemoryKeyValueStore

__all__ = ["FileKeyValueStore", "MemoryKeyValueStore"]
