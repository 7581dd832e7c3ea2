"""PostgREST client for the authoritative item table and search function."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from mindshelf.core.entities import Item, ItemKind, ScoredItem
from mindshelf.core.errors import InvalidQuery, StoreUnavailable
from mindshelf.core.interfaces import ItemStore, SearchBackend

logger = logging.getLogger(__name__)

# Item attribute -> table column
COLUMNS = {
    "title": "title",
    "summary": "summary",
    "tags": "tags",
    "source_name": "channelName",
    "user_notes": "user_notes",
    "kind": "video_type",
    "thumbnail_url": "thumbnail_url",
    "original_url": "original_url",
    "created_at": "date_added",
    "updated_at": "updated_at",
    "title_embedding": "title_embedding",
    "content_embedding": "content_embedding",
}


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_vector(value: Any) -> Optional[list[float]]:
    # pgvector columns arrive as text like "[0.1,0.2]"
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return [float(x) for x in value]


def row_to_item(row: dict[str, Any]) -> Item:
    """Map a table row to an Item.

    Raises:
        ValueError: the row has no id, owner or date_added.
    """
    created_at = _parse_timestamp(row.get("date_added"))
    if created_at is None:
        raise ValueError(f"Row {row.get('id')} has no date_added")
    return Item(
        id=str(row.get("id") or row.get("ID") or ""),
        owner_id=row.get("user_id") or "",
        created_at=created_at,
        title=row.get("title"),
        summary=row.get("summary"),
        tags=row.get("tags"),
        source_name=row.get("channelName"),
        user_notes=row.get("user_notes"),
        kind=ItemKind.parse(row.get("video_type")),
        thumbnail_url=row.get("thumbnail_url"),
        original_url=row.get("original_url"),
        updated_at=_parse_timestamp(row.get("updated_at")),
        title_embedding=_parse_vector(row.get("title_embedding")),
        content_embedding=_parse_vector(row.get("content_embedding")),
    )


def fields_to_columns(fields: dict[str, Any]) -> dict[str, Any]:
    """Translate Item attribute names and values to table columns."""
    columns: dict[str, Any] = {}
    for name, value in fields.items():
        if name not in COLUMNS:
            raise ValueError(f"Unknown or immutable field: {name}")
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, ItemKind):
            value = value.value
        elif name == "tags" and isinstance(value, (list, tuple)):
            value = ", ".join(value)
        columns[COLUMNS[name]] = value
    return columns


def item_to_row(item: Item) -> dict[str, Any]:
    row = {"id": item.id, "user_id": item.owner_id}
    row.update(fields_to_columns({name: getattr(item, name) for name in COLUMNS}))
    return row


class RestItemStore(ItemStore, SearchBackend):
    """Item store and search backend over a PostgREST endpoint.

    Every request carries the owner filter; the server enforces the
    same scoping through row-level security.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        table: str = "content",
        search_function: str = "search_content",
    ) -> None:
        self.base_url = f"{base_url.rstrip('/')}/rest/v1"
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.table = table
        self.search_function = search_function

    def _get_headers(self, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        payload: Optional[dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, url, params=params, json=payload, headers=self._get_headers(prefer)
                )
        except httpx.TimeoutException as e:
            raise StoreUnavailable(f"{method} {path} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            message = f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            if response.status_code == 400 and path.startswith("rpc/"):
                raise InvalidQuery(message)
            raise StoreUnavailable(message)
        return response

    def _rows(self, response: httpx.Response) -> list[dict[str, Any]]:
        try:
            rows = response.json()
        except ValueError as e:
            raise StoreUnavailable(f"Store returned non-JSON response: {e}") from e
        if not isinstance(rows, list):
            raise StoreUnavailable(f"Store returned {type(rows).__name__}, expected a list")
        return rows

    def _items(self, rows: list[dict[str, Any]]) -> list[tuple[dict[str, Any], Item]]:
        """Map rows to items, skipping rows that cannot be parsed."""
        items = []
        for row in rows:
            try:
                items.append((row, row_to_item(row)))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping malformed row %s: %s", row.get("id"), e)
        return items

    async def fetch_page(self, owner_id: str, offset: int, limit: int) -> list[Item]:
        response = await self._request(
            "GET",
            self.table,
            params={
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "order": "date_added.desc",
                "offset": offset,
                "limit": limit,
            },
        )
        items = [item for _, item in self._items(self._rows(response))]
        logger.debug("Fetched %d rows at offset %d for owner %s", len(items), offset, owner_id)
        return items

    async def insert(self, item: Item) -> Item:
        response = await self._request(
            "POST", self.table, payload=item_to_row(item), prefer="return=representation"
        )
        rows = self._rows(response)
        return row_to_item(rows[0]) if rows else item

    async def update(self, owner_id: str, item_id: str, fields: dict[str, Any]) -> Item:
        response = await self._request(
            "PATCH",
            self.table,
            params={"id": f"eq.{item_id}", "user_id": f"eq.{owner_id}"},
            payload=fields_to_columns(fields),
            prefer="return=representation",
        )
        rows = self._rows(response)
        if not rows:
            raise KeyError(f"No item {item_id} for owner {owner_id}")
        return row_to_item(rows[0])

    async def delete(self, owner_id: str, item_id: str) -> None:
        await self._request(
            "DELETE",
            self.table,
            params={"id": f"eq.{item_id}", "user_id": f"eq.{owner_id}"},
        )

    async def search(
        self,
        owner_id: str,
        query_text: str,
        similarity_threshold: float = 0.1,
        max_results: int = 100,
    ) -> list[ScoredItem]:
        if not query_text.strip():
            return []
        response = await self._request(
            "POST",
            f"rpc/{self.search_function}",
            params={"user_id": f"eq.{owner_id}"},
            payload={
                "search_query": query_text.lower(),
                "owner_id": owner_id,
                "similarity_threshold": similarity_threshold,
                "max_results": max_results,
            },
        )
        results = []
        for row, item in self._items(self._rows(response)):
            if item.owner_id != owner_id:
                logger.warning("Dropping search row %s owned by another user", item.id)
                continue
            results.append(ScoredItem(item=item, score=float(row.get("relevance") or 0.0)))
        return results[:max_results]
