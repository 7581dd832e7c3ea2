"""Authoritative item store adapters."""

from mindshelf.adapters.store.memory_store import InMemoryItemStore
from mindshelf.adapters.store.rest_store import RestItemStore

__all__ = ["InMemoryItemStore", "RestItemStore"]
