"""Asynchronous document store interface.

Every synchronisation facade in this package talks to its backend through
:class:`AsyncDocumentStore`. Implementations adapt a vendor client (or an
in-process structure) to a small set of coroutine operations and translate
backend failures into the :class:`~f9_collection_sync.interfaces.CollectionSyncError`
taxonomy.

Key Features:
    - Fully async method signatures
    - Push-based subscriptions exposed as async generators of full snapshots
    - Cursor-based query continuation via ``start_after``
    - Atomic server-side counters and batched writes

Example:

    >>> import asyncio
    >>> from f9_collection_sync import InMemoryDocumentStore, QueryPredicate
    >>>
    >>> async def main():
    ...     store = InMemoryDocumentStore()
    ...     await store.set_document("posts", "p1", {"title": "Hello"})
    ...     record = await store.get_document("posts", "p1")
    ...     records = await store.run_query(
    ...         "posts",
    ...         [QueryPredicate.equals("title", "Hello")],
    ...     )
    ...
    >>> asyncio.run(main())

See Also:
    - InMemoryDocumentStore: In-process implementation
    - FirestoreDocumentStore: Google Cloud Firestore implementation

"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Mapping, Sequence

    from .interfaces import RawRecord, SetOperation
    from .query import QueryPredicate


class AsyncDocumentStore(ABC):
    """Asynchronous interface for document-database backends.

    Collections are addressed by slash-separated paths with an odd number of
    segments (``"users"``, ``"users/u1/posts"``); documents by their id
    within a collection.
    """

    @abstractmethod
    def new_document_id(self, collection: str) -> str:
        """Return a fresh server-style identifier for a new document."""

    @abstractmethod
    async def get_document(self, collection: str, document_id: str) -> RawRecord:
        """Read a single document.

        Raises:
            NotFoundError: If the document does not exist.

        """

    @abstractmethod
    async def run_query(
        self,
        collection: str,
        predicates: Sequence[QueryPredicate],
        *,
        start_after: RawRecord | None = None,
    ) -> list[RawRecord]:
        """Execute a query and return matching records in query order.

        Args:
            collection: Collection path to query.
            predicates: Filter, order and limit clauses, applied in the
                normalised order (filters before order and limits).
            start_after: Resume the query strictly after this record. Only
                meaningful for records produced by the same query.

        """

    @abstractmethod
    async def set_document(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        """Write a document.

        Args:
            collection: Collection path of the document.
            document_id: Target document id.
            fields: Field values to store.
            merge: When True, only the supplied fields are overwritten and
                absent fields are left untouched.

        """

    @abstractmethod
    async def delete_document(self, collection: str, document_id: str) -> None:
        """Remove a document. Deleting a missing document is not an error."""

    @abstractmethod
    def subscribe_query(
        self,
        collection: str,
        predicates: Sequence[QueryPredicate],
    ) -> AsyncGenerator[list[RawRecord], None]:
        """Stream full query snapshots until the iterator is closed.

        Each emission is the complete current result set of the query, not
        a diff against the previous one.
        """

    @abstractmethod
    async def increment_field(
        self,
        collection: str,
        document_id: str,
        field: str,
        delta: int,
    ) -> None:
        """Atomically add a signed delta to a numeric field."""

    @abstractmethod
    async def commit_batch(self, operations: Sequence[SetOperation]) -> None:
        """Apply several writes atomically."""

    async def close(self) -> None:  # noqa: B027
        """Release client resources held by the store."""
