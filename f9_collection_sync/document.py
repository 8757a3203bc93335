"""Synchronisation of a single document addressed by collection and id."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from .context import DocumentContext
from .interfaces import CollectionSyncError, NotFoundError
from .path_utils import validate_document_id

if TYPE_CHECKING:
    from .async_interfaces import AsyncDocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentSync(Generic[T]):
    """Holds the latest known value of one remote document.

    ``value`` is None until a fetch succeeds, and again after a fetch finds
    the document missing or after :meth:`delete`.
    """

    def __init__(
        self,
        store: AsyncDocumentStore,
        collection: str,
        document_id: str,
        document_type: Any,
        *,
        id_field: str = "id",
        on_error: Callable[[CollectionSyncError], Any] | None = None,
    ) -> None:
        self._context: DocumentContext[T] = DocumentContext(
            store,
            collection,
            document_type,
            id_field=id_field,
        )
        self.document_id = validate_document_id(document_id, self._context.collection)
        self._on_error = on_error
        self._pending: set[asyncio.Task[None]] = set()
        self.value: T | None = None
        self.last_error: CollectionSyncError | None = None

    @property
    def collection(self) -> str:
        return self._context.collection

    async def fetch(self) -> T | None:
        """Read the document into ``value``.

        A missing document clears ``value`` and is recorded in
        ``last_error`` rather than raised.

        Raises:
            CollectionSyncError: For any failure other than not-found.

        """
        try:
            self.value = await self._context.read(self.document_id)
        except NotFoundError as exc:
            logger.debug("%s/%s not found", self.collection, self.document_id)
            self.value = None
            self._report(exc)
        except CollectionSyncError as exc:
            self._report(exc)
            raise
        return self.value

    async def update(self, document: T) -> T:
        """Merge-write document under this id and keep it as the value.

        The merged remote document is not re-read, so unset fields keep
        their model defaults in ``value``.
        """
        try:
            self.value = await self._context.update(
                document,
                document_id=self.document_id,
            )
        except CollectionSyncError as exc:
            self._report(exc)
            raise
        return self.value

    def delete(self) -> None:
        """Clear the value now and delete the remote document in the background."""
        self.value = None
        task = asyncio.get_running_loop().create_task(self._delete_remote())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _delete_remote(self) -> None:
        try:
            await self._context.delete_by_id(self.document_id)
        except CollectionSyncError as exc:
            logger.warning(
                "Background delete of %s/%s failed: %s",
                self.collection,
                self.document_id,
                exc,
            )
            self._report(exc)

    async def flush(self) -> None:
        """Wait until pending background deletes have completed."""
        while self._pending:
            await asyncio.gather(*tuple(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.flush()

    def _report(self, error: CollectionSyncError) -> None:
        self.last_error = error
        if self._on_error is not None:
            self._on_error(error)
