"""Bounded, owner-scoped cache of item projections."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from mindshelf.core.entities import CacheInfo, CacheTier, Item, ItemKind
from mindshelf.core.errors import CacheCorrupt, CacheOverflow
from mindshelf.core.interfaces import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "items_cache:"
LARGE_ENTRY_BYTES = 100_000


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def project_item(item: Item) -> dict[str, Any]:
    """Reduce an item to the fields needed for list rendering and local filtering."""
    return {
        "id": item.id,
        "title": item.title,
        "thumbnail_url": item.thumbnail_url,
        "original_url": item.original_url,
        "created_at": _iso(item.created_at),
        "updated_at": _iso(item.updated_at),
        "user_notes": item.user_notes,
        "tags": item.tags,
        "kind": item.kind.value,
        "summary": item.summary,
        "source_name": item.source_name,
    }


def minimal_projection(item: Item) -> dict[str, Any]:
    """Last-resort projection: just enough to draw a card."""
    return {
        "id": item.id,
        "title": item.title,
        "thumbnail_url": item.thumbnail_url,
        "created_at": _iso(item.created_at),
    }


def restore_item(data: dict[str, Any], owner_id: str) -> Item:
    """Rebuild an item from its projection. Embeddings are never restored.

    Raises:
        KeyError, TypeError, ValueError: the projection is malformed.
    """
    created_at = _parse_datetime(data["created_at"])
    if created_at is None:
        raise ValueError(f"Cached item {data['id']} has no created_at")
    return Item(
        id=data["id"],
        owner_id=owner_id,
        created_at=created_at,
        title=data.get("title"),
        summary=data.get("summary"),
        tags=data.get("tags"),
        source_name=data.get("source_name"),
        user_notes=data.get("user_notes"),
        kind=ItemKind.parse(data.get("kind")),
        thumbnail_url=data.get("thumbnail_url"),
        original_url=data.get("original_url"),
        updated_at=_parse_datetime(data.get("updated_at")),
    )


class CacheStore:
    """Size- and time-bounded cache holding one generation per owner.

    Writes degrade along a fixed ladder instead of failing: the full
    projection, then the most recent ``reduced_items``, then a minimal
    projection of ``minimal_items`` after clearing the key.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        ttl_seconds: float = 300.0,
        max_items: int = 100,
        byte_budget: int = 500_000,
        reduced_items: int = 20,
        minimal_items: int = 10,
        schema_version: int = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kv = kv
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self.byte_budget = byte_budget
        self.reduced_items = reduced_items
        self.minimal_items = minimal_items
        self.schema_version = schema_version
        self.clock = clock

    @staticmethod
    def key_for(owner_id: str) -> str:
        if not owner_id:
            raise ValueError("Owner id cannot be empty")
        return f"{CACHE_KEY_PREFIX}{owner_id}"

    async def set(self, owner_id: str, items: list[Item]) -> CacheTier:
        """Replace the owner's cache with the first items in the given order.

        Returns the ladder rung the write ended on. Never raises.
        """
        key = self.key_for(owner_id)
        projected = [project_item(item) for item in items[:self.max_items]]

        try:
            size = await self._write(key, projected)
            logger.info("Cached %d items for owner %s (%.2f KB)", len(projected), owner_id, size / 1024)
            return CacheTier.FULL
        except CacheOverflow as e:
            logger.warning("%s; keeping the %d most recent items", e, self.reduced_items)
            try:
                await self._write(key, projected[:self.reduced_items])
                return CacheTier.REDUCED
            except (CacheOverflow, OSError) as reduced_error:
                logger.error("Reduced cache write failed: %s", reduced_error)
        except OSError as e:
            logger.error("Cache write failed: %s", e)

        return await self._write_minimal(key, items)

    async def _write_minimal(self, key: str, items: list[Item]) -> CacheTier:
        try:
            await self.kv.remove(key)
            await self._write(key, [minimal_projection(item) for item in items[:self.minimal_items]])
            logger.warning("Stored minimal cache under %s", key)
            return CacheTier.MINIMAL
        except (CacheOverflow, OSError) as e:
            logger.error("Failed to store even minimal cache under %s: %s", key, e)
            return CacheTier.FAILED

    async def _write(self, key: str, projected: list[dict[str, Any]]) -> int:
        entry = {
            "items": projected,
            "cached_at": self.clock(),
            "schema_version": self.schema_version,
        }
        payload = json.dumps(entry, ensure_ascii=False).encode("utf-8")
        if len(payload) > self.byte_budget:
            raise CacheOverflow(len(payload), self.byte_budget)
        await self.kv.set(key, payload)
        return len(payload)

    async def get(self, owner_id: str) -> Optional[list[Item]]:
        """Return cached items, or None when absent, expired or unreadable.

        Expired, outdated and corrupt entries are deleted by the read.
        """
        key = self.key_for(owner_id)
        try:
            raw = await self.kv.get(key)
        except OSError as e:
            logger.warning("Could not read cache for owner %s: %s", owner_id, e)
            return None
        if raw is None:
            return None

        try:
            entry = self._parse(raw)
            if entry.get("schema_version") != self.schema_version:
                logger.info(
                    "Cache schema %s does not match %s, discarding",
                    entry.get("schema_version"), self.schema_version,
                )
                await self._evict(owner_id)
                return None
            if self.clock() - entry["cached_at"] > self.ttl_seconds:
                logger.debug("Cache for owner %s expired", owner_id)
                await self._evict(owner_id)
                return None
            items = self._restore(entry, owner_id)
        except CacheCorrupt as e:
            logger.warning("Discarding corrupt cache for owner %s: %s", owner_id, e)
            await self._evict(owner_id)
            return None

        logger.debug("Retrieved %d items from cache for owner %s", len(items), owner_id)
        return items

    async def _evict(self, owner_id: str) -> None:
        try:
            await self.clear(owner_id)
        except OSError as e:
            logger.warning("Could not evict cache for owner %s: %s", owner_id, e)

    def _parse(self, raw: bytes) -> dict[str, Any]:
        try:
            entry = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorrupt(str(e)) from e
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("items"), list)
            or not isinstance(entry.get("cached_at"), (int, float))
        ):
            raise CacheCorrupt("Unexpected cache entry layout")
        return entry

    def _restore(self, entry: dict[str, Any], owner_id: str) -> list[Item]:
        try:
            return [restore_item(data, owner_id) for data in entry["items"]]
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorrupt(f"Unreadable cached item: {e}") from e

    async def clear(self, owner_id: str) -> None:
        """Remove the owner's cache entry."""
        await self.kv.remove(self.key_for(owner_id))
        logger.debug("Cache cleared for owner %s", owner_id)

    async def info(self, owner_id: str) -> CacheInfo:
        """Describe the owner's cache entry without evicting it."""
        raw = await self.kv.get(self.key_for(owner_id))
        if raw is None:
            return CacheInfo(exists=False)
        try:
            entry = self._parse(raw)
        except CacheCorrupt as e:
            logger.warning("Cache info unavailable for owner %s: %s", owner_id, e)
            return CacheInfo(exists=False, size_bytes=len(raw))
        return CacheInfo(
            exists=True,
            size_bytes=len(raw),
            item_count=len(entry["items"]),
            cached_at=datetime.fromtimestamp(entry["cached_at"], tz=timezone.utc),
        )

    async def usage(self) -> dict[str, Any]:
        """Report the size of every cache entry in the substrate."""
        breakdown: dict[str, int] = {}
        for key in await self.kv.keys():
            if not key.startswith(CACHE_KEY_PREFIX):
                continue
            raw = await self.kv.get(key)
            if raw is None:
                continue
            breakdown[key] = len(raw)
            if len(raw) > LARGE_ENTRY_BYTES:
                logger.warning("Large cache entry detected: %s (%.2f KB)", key, len(raw) / 1024)
        return {
            "total_size": sum(breakdown.values()),
            "key_count": len(breakdown),
            "breakdown": breakdown,
        }

    async def clear_all(self) -> int:
        """Remove every cache entry from the substrate. Returns the count removed."""
        removed = 0
        for key in await self.kv.keys():
            if key.startswith(CACHE_KEY_PREFIX):
                await self.kv.remove(key)
                removed += 1
        logger.info("Cleared %d cache entries", removed)
        return removed
