"""Stateless typed operations on one collection of a document store.

:class:`DocumentContext` binds a store, a collection path and a document
type, and offers the one-shot operations (read, query, create, update,
delete, counters, batches, listen) that the stateful sessions build on.

Example:

    >>> import asyncio
    >>> from pydantic import BaseModel
    >>> from f9_collection_sync import DocumentContext, InMemoryDocumentStore
    >>>
    >>> class Post(BaseModel):
    ...     id: str | None = None
    ...     title: str
    ...     likes: int = 0
    >>>
    >>> async def main():
    ...     posts = DocumentContext(InMemoryDocumentStore(), "posts", Post)
    ...     post = await posts.create(Post(title="Hello"))
    ...     await posts.increase("likes", document_id=post.id)
    ...     return (await posts.read(post.id)).likes
    >>>
    >>> asyncio.run(main())
    1

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .codec import DocumentCodec
from .interfaces import (
    DecodeError,
    InvalidArgumentError,
    NotFoundError,
    RawRecord,
    SetOperation,
)
from .path_utils import normalise_collection_path, validate_document_id
from .query import normalise_predicates

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Sequence

    from .async_interfaces import AsyncDocumentStore
    from .interfaces import BatchWrite
    from .query import QueryPredicate

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """Result of one query execution.

    ``records`` always holds every raw record the store returned, including
    those listed in ``failures`` because they could not be decoded.
    """

    documents: list[T]
    records: list[RawRecord]
    failures: list[DecodeError] = field(default_factory=list)

    @property
    def last_record(self) -> RawRecord | None:
        """The last raw record of the page, used as the next cursor."""
        return self.records[-1] if self.records else None


class DocumentContext(Generic[T]):
    """Typed one-shot operations against a single collection."""

    def __init__(
        self,
        store: AsyncDocumentStore,
        collection: str,
        document_type: Any,
        *,
        id_field: str = "id",
        codec: DocumentCodec[T] | None = None,
    ) -> None:
        """Bind a store, collection path and document type.

        Args:
            store: Backend used for every operation.
            collection: Collection path the documents live in.
            document_type: Type documents are decoded into.
            id_field: Attribute or key carrying the document id.
            codec: Custom codec; built from document_type when omitted.

        """
        self.store = store
        self.collection = normalise_collection_path(collection)
        self.codec: DocumentCodec[T] = codec or DocumentCodec(
            document_type,
            id_field=id_field,
        )

    def identify(self, document: Any) -> str | None:
        """Return a document's id, or None if it has not been assigned one."""
        return self.codec.identify(document)

    def decode_page(self, records: Sequence[RawRecord]) -> Page[T]:
        """Decode records, collecting failures instead of raising."""
        documents: list[T] = []
        failures: list[DecodeError] = []
        for record in records:
            try:
                documents.append(self.codec.decode(record, collection=self.collection))
            except DecodeError as exc:
                logger.warning(
                    "Dropping undecodable document %s/%s: %s",
                    self.collection,
                    record.id,
                    exc.cause,
                )
                failures.append(exc)
        return Page(documents=documents, records=list(records), failures=failures)

    async def read(self, document_id: str) -> T:
        """Read and decode one document.

        Raises:
            NotFoundError: If the document does not exist.
            DecodeError: If the stored fields do not fit the document type.

        """
        document_id = validate_document_id(document_id, self.collection)
        record = await self.store.get_document(self.collection, document_id)
        return self.codec.decode(record, collection=self.collection)

    async def query(self, predicates: Sequence[QueryPredicate] = ()) -> list[T]:
        """Run a query and return the documents that decode."""
        page = await self.fetch_page(predicates)
        return page.documents

    async def fetch_page(
        self,
        predicates: Sequence[QueryPredicate] = (),
        *,
        start_after: RawRecord | None = None,
    ) -> Page[T]:
        """Run a query, optionally continuing after a cursor record."""
        records = await self.store.run_query(
            self.collection,
            normalise_predicates(predicates),
            start_after=start_after,
        )
        return self.decode_page(records)

    async def create(self, document: T, *, if_non_existent: bool = False) -> T:
        """Persist a new document and return the stored version.

        Documents without an id are written under a freshly assigned id that
        is merged into the returned copy. With ``if_non_existent`` and an id,
        an existing remote document is returned unchanged instead of being
        overwritten; only a not-found read falls through to the write.
        """
        document_id = self.identify(document)
        if document_id is None:
            document_id = self.store.new_document_id(self.collection)
            document = self.codec.with_id(document, document_id)
        else:
            document_id = validate_document_id(document_id, self.collection)
            if if_non_existent:
                try:
                    return await self.read(document_id)
                except NotFoundError:
                    logger.debug(
                        "%s/%s does not exist yet, creating it",
                        self.collection,
                        document_id,
                    )

        await self.store.set_document(
            self.collection,
            document_id,
            self.codec.encode(document),
        )
        return document

    async def update(self, document: T, *, document_id: str | None = None) -> T:
        """Merge-write the fields set on document.

        Args:
            document: Document carrying the new field values.
            document_id: Target id; defaults to the document's own id.

        Raises:
            InvalidArgumentError: If no id is available.

        """
        target = document_id or self.identify(document)
        if target is None:
            raise InvalidArgumentError.empty_document_id(self.collection)
        target = validate_document_id(target, self.collection)
        await self.store.set_document(
            self.collection,
            target,
            self.codec.encode(document, exclude_unset=True),
            merge=True,
        )
        if self.identify(document) != target:
            document = self.codec.with_id(document, target)
        return document

    async def delete(self, document: T) -> None:
        """Delete a document by its id."""
        document_id = self.identify(document)
        if document_id is None:
            raise InvalidArgumentError.empty_document_id(self.collection)
        await self.delete_by_id(document_id)

    async def delete_by_id(self, document_id: str) -> None:
        document_id = validate_document_id(document_id, self.collection)
        await self.store.delete_document(self.collection, document_id)

    async def increase(self, field: str, by: int = 1, *, document_id: str) -> None:
        """Atomically add ``by`` to a counter field; ``by <= 0`` does nothing."""
        if by <= 0:
            return
        document_id = validate_document_id(document_id, self.collection)
        await self.store.increment_field(self.collection, document_id, field, by)

    async def decrease(self, field: str, by: int = 1, *, document_id: str) -> None:
        """Atomically subtract ``by`` from a counter field; ``by <= 0`` does nothing."""
        if by <= 0:
            return
        document_id = validate_document_id(document_id, self.collection)
        await self.store.increment_field(self.collection, document_id, field, -by)

    async def batch_set(self, writes: Sequence[BatchWrite]) -> list[T]:
        """Write several documents atomically and return the stored versions.

        Merge writes are placed under a freshly assigned id; plain writes
        replace the document stored under the document's own id.
        """
        operations: list[SetOperation] = []
        stored: list[T] = []
        for write in writes:
            collection = normalise_collection_path(write.collection)
            document = write.document
            if write.merge:
                document = self.codec.with_id(
                    document,
                    self.store.new_document_id(collection),
                )
            document_id = self.identify(document)
            if document_id is None:
                raise InvalidArgumentError.empty_document_id(collection)
            operations.append(
                SetOperation(
                    collection=collection,
                    document_id=validate_document_id(document_id, collection),
                    fields=self.codec.encode(document),
                    merge=write.merge,
                ),
            )
            stored.append(document)
        await self.store.commit_batch(operations)
        return stored

    async def listen_pages(
        self,
        predicates: Sequence[QueryPredicate] = (),
    ) -> AsyncGenerator[Page[T], None]:
        """Yield a decoded page for every full snapshot of the query."""
        snapshots = self.store.subscribe_query(
            self.collection,
            normalise_predicates(predicates),
        )
        try:
            async for records in snapshots:
                yield self.decode_page(records)
        finally:
            await snapshots.aclose()

    async def listen(
        self,
        predicates: Sequence[QueryPredicate] = (),
    ) -> AsyncGenerator[list[T], None]:
        """Yield the decoded documents of every full snapshot of the query."""
        pages = self.listen_pages(predicates)
        try:
            async for page in pages:
                yield page.documents
        finally:
            await pages.aclose()
