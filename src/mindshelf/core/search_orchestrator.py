"""Turns a stream of keystrokes into the current search view.

Keystrokes are debounced with a cancellable timer. Each dispatched query
gets a strictly increasing session id; a result is applied only while its
session is still the latest one, so a slow response can never overwrite a
newer query's view. In-flight requests are never aborted, just ignored.
"""

import asyncio
import itertools
import logging
from typing import Callable, Optional

from mindshelf.core.entities import Item, ResultSource, ScoredItem, SearchSession, SearchView
from mindshelf.core.errors import MindshelfError, StoreUnavailable
from mindshelf.core.interfaces import SearchBackend
from mindshelf.core.pagination import PaginationController

logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """Routes queries to the in-memory collection or the search backend."""

    def __init__(
        self,
        collection: PaginationController,
        backend: SearchBackend,
        debounce_seconds: float = 0.15,
        short_query_cutoff: int = 3,
        request_timeout: float = 10.0,
        max_retries: int = 1,
        similarity_threshold: float = 0.1,
        max_results: int = 100,
        on_view: Optional[Callable[[SearchView], None]] = None,
    ) -> None:
        self.collection = collection
        self.backend = backend
        self.debounce_seconds = debounce_seconds
        self.short_query_cutoff = short_query_cutoff
        self.request_timeout = request_timeout
        self.max_retries = max(0, max_retries)
        self.similarity_threshold = similarity_threshold
        self.max_results = max_results
        self.on_view = on_view

        self._sessions = itertools.count(1)
        self._latest_session_id = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: set[asyncio.Task] = set()
        self._text = ""
        self._view: Optional[SearchView] = None

    @property
    def text(self) -> str:
        return self._text

    @property
    def view(self) -> Optional[SearchView]:
        return self._view

    @property
    def latest_session_id(self) -> int:
        return self._latest_session_id

    def on_keystroke(self, text: str) -> None:
        """Record the typed text and (re)arm the debounce timer."""
        self._text = text
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire, text)

    def _fire(self, text: str) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.dispatch(text))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def classify(self, text: str) -> ResultSource:
        query = text.strip()
        if not query:
            return ResultSource.ALL
        if len(query) <= self.short_query_cutoff:
            return ResultSource.LOCAL
        return ResultSource.REMOTE

    async def dispatch(self, text: str) -> Optional[SearchView]:
        """Run one query now, bypassing the debounce.

        Returns the view that was applied, or None when a newer session
        superseded this one before its result arrived.
        """
        self._text = text
        session = SearchSession(session_id=next(self._sessions), query=text)
        self._latest_session_id = session.session_id
        query = text.strip()

        source = self.classify(text)
        if source == ResultSource.ALL:
            return self._apply(SearchView(session.session_id, text, list(self.collection.items), source))
        if source == ResultSource.LOCAL:
            return self._apply(SearchView(session.session_id, text, self.local_filter(query), source))
        return await self._remote(session, query)

    async def _remote(self, session: SearchSession, query: str) -> Optional[SearchView]:
        try:
            results = await self._search_with_retry(session, query)
        except MindshelfError as e:
            logger.warning("Remote search for %r failed, filtering locally: %s", query, e)
            if not self._is_latest(session):
                return None
            return self._apply(SearchView(
                session.session_id,
                session.query,
                self.local_filter(query),
                ResultSource.FALLBACK,
                error=str(e),
            ))

        if not self._is_latest(session):
            logger.debug("Discarding result of superseded session %d", session.session_id)
            return None
        return self._apply(SearchView(
            session.session_id,
            session.query,
            [r.item for r in results],
            ResultSource.REMOTE,
            scores={r.item.id: r.score for r in results},
        ))

    async def _search_with_retry(self, session: SearchSession, query: str) -> list[ScoredItem]:
        """Call the backend, retrying transient failures up to max_retries times."""
        owner_id = self.collection.owner_id
        last_error: Optional[StoreUnavailable] = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                if not self._is_latest(session):
                    break
                logger.info("Retrying search for %r (attempt %d): %s", query, attempt + 1, last_error)
            try:
                return await asyncio.wait_for(
                    self.backend.search(owner_id, query, self.similarity_threshold, self.max_results),
                    timeout=self.request_timeout,
                )
            except asyncio.TimeoutError:
                last_error = StoreUnavailable(f"Search timed out after {self.request_timeout}s")
            except StoreUnavailable as e:
                last_error = e

        raise last_error

    def local_filter(self, query: str) -> list[Item]:
        """Case-insensitive substring scan over title, notes and tags."""
        needle = query.strip().lower()
        if not needle:
            return list(self.collection.items)
        return [
            item for item in self.collection.items
            if any(needle in value.lower() for value in (item.title, item.user_notes, item.tags) if value)
        ]

    def _is_latest(self, session: SearchSession) -> bool:
        return session.session_id == self._latest_session_id

    def _apply(self, view: SearchView) -> SearchView:
        self._view = view
        if self.on_view is not None:
            self.on_view(view)
        return view

    async def wait_idle(self) -> None:
        """Wait until no debounce timer is armed and no dispatch is running."""
        while self._timer is not None or self._inflight:
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce_seconds / 2)

    def rebuild_local(self) -> Optional[SearchView]:
        """Recompute the current browse or local-filter view from the collection.

        Keeps the view's session id. Does nothing when the view is a remote
        result or when a newer query has started since it was applied.
        """
        view = self._view
        if view is None or view.session_id != self._latest_session_id:
            return None
        if view.source == ResultSource.ALL:
            items = list(self.collection.items)
        elif view.source == ResultSource.LOCAL:
            items = self.local_filter(view.query)
        else:
            return None
        return self._apply(SearchView(view.session_id, view.query, items, view.source))

    def forget(self, item_id: str) -> None:
        """Remove a deleted item from the current view."""
        if self._view is None:
            return
        self._view.items = [item for item in self._view.items if item.id != item_id]
        self._view.scores.pop(item_id, None)

    def reset(self) -> None:
        """Forget the current query and invalidate every outstanding session."""
        self._cancel_timer()
        self._latest_session_id = next(self._sessions)
        self._text = ""
        self._view = None
