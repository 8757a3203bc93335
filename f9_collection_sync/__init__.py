"""Collection synchronisation library for document-database backends.

This package keeps local, ordered, typed views of remote document
collections in sync with a document store, behind one async interface
shared by every backend (in-process memory, Google Cloud Firestore).

Core Components:
    - AsyncDocumentStore: Abstract interface all stores must implement
    - InMemoryDocumentStore: In-process store for tests and offline use
    - FirestoreDocumentStore: Google Cloud Firestore adapter
    - DocumentContext: Stateless typed operations on one collection
    - PaginatedCollectionSync: Paginated, reconciled collection view
    - DocumentSync: Latest value of a single document

Quick Start:

    >>> import asyncio
    >>> from pydantic import BaseModel
    >>> from f9_collection_sync import (
    ...     DocumentContext,
    ...     InMemoryDocumentStore,
    ...     PaginatedCollectionSync,
    ...     Pagination,
    ... )
    >>>
    >>> class Task(BaseModel):
    ...     id: str | None = None
    ...     title: str
    ...     rank: int
    >>>
    >>> async def main():
    ...     tasks = PaginatedCollectionSync(
    ...         InMemoryDocumentStore(),
    ...         "tasks",
    ...         Task,
    ...         pagination=Pagination(order_by="rank", limit=20),
    ...     )
    ...     await tasks.create(Task(title="Write docs", rank=1))
    ...     await tasks.refresh()
    ...     return [task.title for task in tasks]
    >>>
    >>> asyncio.run(main())
    ['Write docs']

Exception Handling:

    >>> from f9_collection_sync import NotFoundError
    >>> try:
    ...     asyncio.run(DocumentContext(InMemoryDocumentStore(), "tasks", Task).read("x"))
    ... except NotFoundError:
    ...     print("Document not found")
    Document not found

Supported Operations:
    - fetch_next_page() - Pull the next page after the cursor
    - refresh() - Reset the view and fetch the first page again
    - create() - Persist and insert a document
    - update() - Merge-write and replace a document in place
    - delete() - Optimistically remove a document
    - increase()/decrease() - Atomic counter updates
    - listen() - Replace the view with live query snapshots

"""

from .async_interfaces import AsyncDocumentStore
from .codec import DocumentCodec
from .context import DocumentContext, Page
from .document import DocumentSync
from .factory import StoreFactory, register_store_factory, resolve_store
from .firestore_backend import FirestoreBackendError, FirestoreDocumentStore
from .interfaces import (
    AlreadyExistsError,
    BatchWrite,
    CollectionSyncError,
    DecodeError,
    InvalidArgumentError,
    NotFoundError,
    PageDecodeError,
    RawRecord,
    SetOperation,
    TransportError,
)
from .memory import InMemoryDocumentStore
from .query import Pagination, PredicateKind, QueryPredicate, SortOrder
from .session import DecodingFailureStrategy, PaginatedCollectionSync, SyncState

__all__ = [
    "AlreadyExistsError",
    "AsyncDocumentStore",
    "BatchWrite",
    "CollectionSyncError",
    "DecodeError",
    "DecodingFailureStrategy",
    "DocumentCodec",
    "DocumentContext",
    "DocumentSync",
    "FirestoreBackendError",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "InvalidArgumentError",
    "NotFoundError",
    "Page",
    "PageDecodeError",
    "Pagination",
    "PaginatedCollectionSync",
    "PredicateKind",
    "QueryPredicate",
    "RawRecord",
    "SetOperation",
    "SortOrder",
    "StoreFactory",
    "SyncState",
    "TransportError",
    "register_store_factory",
    "resolve_store",
]
