"""Paginated, client-reconciled synchronisation of one remote collection.

:class:`PaginatedCollectionSync` keeps an ordered in-memory view of the
documents matching a fixed query. Pages are pulled forward with a cursor,
and local writes are persisted remotely before being reconciled into the
view by document id.

Key Features:
    - Cursor-based forward pagination with at most one fetch in flight
    - De-duplication by id: incoming values replace known entries in place
    - Local-first create/update with optional typed re-sorting
    - Optimistic, fire-and-forget deletes
    - Decode failures isolated per record and reported in aggregate
    - A ``last_error`` slot (and optional ``on_error`` callback) for display
    - Owned listen subscriptions released by :meth:`close`

State Machine:
    ``IDLE`` until a fetch starts, ``FETCHING`` while one is outstanding and
    ``EXHAUSTED`` once a page comes back empty or makes no cursor progress.
    :meth:`refresh` and :meth:`reset` return the session to ``IDLE``.

Example:

    >>> import asyncio
    >>> from pydantic import BaseModel
    >>> from f9_collection_sync import (
    ...     InMemoryDocumentStore,
    ...     PaginatedCollectionSync,
    ...     Pagination,
    ... )
    >>>
    >>> class Item(BaseModel):
    ...     id: str | None = None
    ...     seq: int
    >>>
    >>> async def main():
    ...     store = InMemoryDocumentStore(
    ...         {"items": {k: {"seq": i} for i, k in enumerate("abcde")}},
    ...     )
    ...     async with PaginatedCollectionSync(
    ...         store,
    ...         "items",
    ...         Item,
    ...         pagination=Pagination(order_by="seq", limit=2),
    ...     ) as items:
    ...         await items.fetch_next_page()
    ...         await items.fetch_next_page()
    ...         return [item.id for item in items]
    >>>
    >>> asyncio.run(main())
    ['a', 'b', 'c', 'd']

See Also:
    - DocumentContext: Stateless operations the session delegates to
    - DocumentSync: Single document counterpart

"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from .context import DocumentContext
from .interfaces import CollectionSyncError, InvalidArgumentError, PageDecodeError
from .query import paginated_predicates, strip_limits
from .reconcile import apply_sort, dedupe, index_of, merge_page, remove, upsert
from .validation import validate_pagination, validate_query

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from .async_interfaces import AsyncDocumentStore
    from .interfaces import RawRecord
    from .query import Pagination, QueryPredicate, SortOrder

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorHandler = Callable[[CollectionSyncError], Any]


class SyncState(str, Enum):
    """Pagination state of a session."""

    IDLE = "idle"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"


class DecodingFailureStrategy(str, Enum):
    """How a page containing undecodable records is handled."""

    IGNORE = "ignore"
    RAISE = "raise"


class PaginatedCollectionSync(Generic[T]):
    """Ordered local view of a remote collection under a fixed query.

    The session is the only writer of its view, cursor and exhausted flag.
    Every mutating coroutine is a suspend point: the view may have changed
    shape by the time it returns.
    """

    def __init__(
        self,
        store: AsyncDocumentStore,
        collection: str,
        document_type: Any,
        *,
        predicates: Sequence[QueryPredicate] = (),
        pagination: Pagination[T] | None = None,
        sort: SortOrder[T] | None = None,
        decoding_failure_strategy: DecodingFailureStrategy = (
            DecodingFailureStrategy.IGNORE
        ),
        on_error: ErrorHandler | None = None,
        id_field: str = "id",
    ) -> None:
        """Create a session; no remote call is made until a fetch.

        Args:
            store: Document store backing the collection.
            collection: Collection path to synchronise.
            document_type: Type documents are decoded into.
            predicates: Filter clauses of the base query.
            pagination: Ordering and page size; without it every fetch
                runs the base query as a single page.
            sort: Default local ordering applied after create/update.
                Falls back to ``pagination.sort``.
            decoding_failure_strategy: ``IGNORE`` drops undecodable records
                and reports them; ``RAISE`` aborts the fetch.
            on_error: Called with every error stored in ``last_error``.
            id_field: Attribute or key carrying the document id.

        Raises:
            InvalidArgumentError: If the query or pagination is malformed.

        """
        base = tuple(predicates)
        validate_query(base)
        if pagination is not None:
            validate_pagination(base, pagination)
        self._predicates = paginated_predicates(base, pagination)
        validate_query(self._predicates)

        self._context: DocumentContext[T] = DocumentContext(
            store,
            collection,
            document_type,
            id_field=id_field,
        )
        self._pagination = pagination
        self._sort = sort if sort is not None else getattr(pagination, "sort", None)
        self._strategy = DecodingFailureStrategy(decoding_failure_strategy)
        self._on_error = on_error

        self._view: list[T] = []
        self._cursor: RawRecord | None = None
        self._exhausted = False
        self._inflight = 0
        self._subscriptions: list[asyncio.Task[None]] = []
        self._pending: set[asyncio.Task[None]] = set()
        self.last_error: CollectionSyncError | None = None

    async def __aenter__(self) -> PaginatedCollectionSync[T]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __len__(self) -> int:
        return len(self._view)

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._view))

    @property
    def documents(self) -> tuple[T, ...]:
        """Read-only snapshot of the current view."""
        return tuple(self._view)

    @property
    def state(self) -> SyncState:
        if self._exhausted:
            return SyncState.EXHAUSTED
        if self._inflight:
            return SyncState.FETCHING
        return SyncState.IDLE

    @property
    def cursor(self) -> RawRecord | None:
        """Last raw record of the previous page, if any."""
        return self._cursor

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def predicates(self) -> tuple[QueryPredicate, ...]:
        """Effective query clauses of one page fetch."""
        return self._predicates

    @property
    def collection(self) -> str:
        return self._context.collection

    @property
    def context(self) -> DocumentContext[T]:
        return self._context

    async def fetch_next_page(self) -> list[T]:
        """Fetch the page after the cursor and merge it into the view.

        Returns the current view unchanged, without querying, when the
        session is exhausted or another fetch is already in flight.

        Raises:
            CollectionSyncError: If the query fails, or if a page contains
                undecodable records under the ``RAISE`` strategy.

        """
        if self._exhausted or self._inflight:
            logger.debug(
                "Skipping fetch on %s (state=%s)",
                self.collection,
                self.state.value,
            )
            return list(self._view)
        return await self._fetch_page()

    async def refresh(self) -> list[T]:
        """Clear view, cursor and exhausted flag, then fetch the first page.

        An outstanding fetch is not cancelled; whichever completes last
        determines the view.
        """
        self.reset()
        return await self._fetch_page()

    def reset(self) -> None:
        """Clear the view, cursor and exhausted flag without fetching."""
        self._view.clear()
        self._cursor = None
        self._exhausted = False

    async def _fetch_page(self) -> list[T]:
        previous = self._cursor
        self._inflight += 1
        try:
            with self._reporting():
                page = await self._context.fetch_page(
                    self._predicates,
                    start_after=previous,
                )
        finally:
            self._inflight -= 1

        if page.failures:
            error = PageDecodeError(page.failures, collection=self.collection)
            self._report(error)
            if self._strategy is DecodingFailureStrategy.RAISE:
                raise error

        merge_page(self._view, page.documents, self._context.identify)
        last = page.last_record
        if last is None or (previous is not None and last.id == previous.id):
            self._exhausted = True
            logger.debug("Collection %s exhausted", self.collection)
        else:
            self._cursor = last
        logger.debug(
            "Fetched %d record(s) from %s, view holds %d",
            len(page.records),
            self.collection,
            len(self._view),
        )
        return list(self._view)

    async def create(
        self,
        document: T,
        *,
        sort: SortOrder[T] | None = None,
        if_non_existent: bool = False,
    ) -> T:
        """Persist a document, then insert the stored version into the view.

        Args:
            document: Document to create; an id is assigned when missing.
            sort: Re-sort the whole view afterwards; defaults to the
                session's sort.
            if_non_existent: Return the existing remote document instead of
                overwriting it when the id is already taken.

        """
        with self._reporting():
            stored = await self._context.create(
                document,
                if_non_existent=if_non_existent,
            )
        upsert(self._view, stored, self._context.identify)
        self._view[:] = dedupe(self._view, self._context.identify)
        apply_sort(self._view, sort or self._sort)
        return stored

    async def update(
        self,
        old_document: T,
        new_document: T,
        *,
        sort: SortOrder[T] | None = None,
    ) -> T:
        """Merge-write new_document under old_document's id.

        The entry with that id is replaced in place, or appended when the
        view does not hold it.

        The view holds new_document as given, under the target id. The
        merged remote document is not re-read. Fields left unset on
        new_document therefore show the model defaults locally while the
        remote keeps their old values until the next fetch or listen
        snapshot.
        """
        identify = self._context.identify
        with self._reporting():
            target = identify(old_document)
            if target is None:
                raise InvalidArgumentError.empty_document_id(self.collection)
            stored = await self._context.update(new_document, document_id=target)
        index = index_of(self._view, target, identify)
        if index is None:
            self._view.append(stored)
        else:
            self._view[index] = stored
        apply_sort(self._view, sort or self._sort)
        return stored

    def delete(self, document: T) -> None:
        """Remove a document from the view and delete it remotely.

        The local removal is immediate. The remote delete runs as a
        background task on the running loop; a failure is reported through
        ``last_error`` and does not restore the entry. Use :meth:`flush` to
        wait for outstanding deletes.
        """
        with self._reporting():
            document_id = self._context.identify(document)
            if document_id is None:
                raise InvalidArgumentError.empty_document_id(self.collection)
        remove(self._view, document_id, self._context.identify)
        task = asyncio.get_running_loop().create_task(self._delete_remote(document_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _delete_remote(self, document_id: str) -> None:
        try:
            await self._context.delete_by_id(document_id)
        except CollectionSyncError as exc:
            logger.warning(
                "Background delete of %s/%s failed: %s",
                self.collection,
                document_id,
                exc,
            )
            self._report(exc)

    async def increase(self, document: T, field: str, by: int = 1) -> None:
        """Atomically add ``by`` to a counter field of document."""
        with self._reporting():
            await self._context.increase(
                field,
                by,
                document_id=self._require_id(document),
            )

    async def decrease(self, document: T, field: str, by: int = 1) -> None:
        """Atomically subtract ``by`` from a counter field of document."""
        with self._reporting():
            await self._context.decrease(
                field,
                by,
                document_id=self._require_id(document),
            )

    def listen(
        self,
        predicates: Sequence[QueryPredicate] | None = None,
    ) -> asyncio.Task[None]:
        """Start a subscription that replaces the view on every snapshot.

        Args:
            predicates: Query to listen to; defaults to the session query
                without its page limit.

        Returns:
            The background task, owned by the session and cancelled by
            :meth:`close`.

        """
        if predicates is None:
            predicates = strip_limits(self._predicates)
        else:
            validate_query(predicates)
        task = asyncio.get_running_loop().create_task(self._consume(predicates))
        self._subscriptions.append(task)
        return task

    async def _consume(self, predicates: Sequence[QueryPredicate]) -> None:
        pages = self._context.listen_pages(predicates)
        try:
            async for page in pages:
                if page.failures:
                    self._report(
                        PageDecodeError(page.failures, collection=self.collection),
                    )
                self._view[:] = dedupe(page.documents, self._context.identify)
        except CollectionSyncError as exc:
            logger.warning("Listener on %s stopped: %s", self.collection, exc)
            self._report(exc)
        finally:
            await pages.aclose()

    async def flush(self) -> None:
        """Wait until every background delete has completed."""
        while self._pending:
            await asyncio.gather(*tuple(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Cancel owned subscriptions and wait for pending deletes."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for task in subscriptions:
            task.cancel()
        if subscriptions:
            await asyncio.gather(*subscriptions, return_exceptions=True)
        await self.flush()

    def _require_id(self, document: T) -> str:
        document_id = self._context.identify(document)
        if document_id is None:
            raise InvalidArgumentError.empty_document_id(self.collection)
        return document_id

    def _report(self, error: CollectionSyncError) -> None:
        self.last_error = error
        if self._on_error is not None:
            self._on_error(error)

    @contextmanager
    def _reporting(self) -> Iterator[None]:
        try:
            yield
        except CollectionSyncError as exc:
            self._report(exc)
            raise
