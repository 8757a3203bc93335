"""Google Cloud Firestore backed document store implementation."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .async_interfaces import AsyncDocumentStore
from .interfaces import CollectionSyncError, NotFoundError, RawRecord
from .path_utils import normalise_collection_path, validate_document_id
from .query import PredicateKind, normalise_predicates
from .translation import translate_exceptions, translate_method
from .validation import validate_query

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Sequence

    from .interfaces import SetOperation
    from .query import QueryPredicate

logger = logging.getLogger(__name__)


class FirestoreBackendError(CollectionSyncError):
    """Error raised when the Firestore adapter cannot serve a request."""

    @classmethod
    def listen_unavailable(cls, collection: str) -> FirestoreBackendError:
        """Return an error indicating no listen client is configured."""
        return cls(
            "Snapshot listeners need a synchronous Firestore client",
            collection=collection,
        )


def build_query(
    reference: Any,
    predicates: Sequence[QueryPredicate],
    *,
    start_after: RawRecord | None = None,
) -> Any:
    """Apply predicates to a Firestore collection reference.

    Works for both the async and the synchronous client, whose query
    builders share the same chaining API.
    """
    query = reference
    for predicate in normalise_predicates(predicates):
        kind = predicate.kind
        if kind.is_filter:
            value = list(predicate.value) if kind.takes_sequence else predicate.value
            query = query.where(
                filter=FieldFilter(predicate.field, kind.value, value),
            )
        elif kind is PredicateKind.ORDER_BY:
            direction = (
                firestore.Query.DESCENDING
                if predicate.descending
                else firestore.Query.ASCENDING
            )
            query = query.order_by(predicate.field, direction=direction)
        elif kind is PredicateKind.LIMIT:
            query = query.limit(predicate.value)
        else:
            query = query.limit_to_last(predicate.value)

    if start_after is not None:
        cursor = start_after.handle if start_after.handle is not None else start_after.data
        query = query.start_after(cursor)
    return query


class FirestoreDocumentStore(AsyncDocumentStore):
    """Document store backed by Google Cloud Firestore.

    Reads and writes go through ``firestore.AsyncClient``. Snapshot
    listeners are only offered by the synchronous client, so subscriptions
    use a separate ``firestore.Client`` whose callbacks are bridged onto
    the running event loop.
    """

    def __init__(
        self,
        connection_info: Mapping[str, Any] | None = None,
        *,
        client: Any | None = None,
        listen_client: Any | None = None,
    ) -> None:
        """Initialise the store using Firestore connection parameters.

        Args:
            connection_info: Optional ``project`` and ``database`` names and
                a ``listen`` flag (default True) controlling whether a
                synchronous client is created for subscriptions.
            client: Pre-built async client, mainly for tests.
            listen_client: Pre-built synchronous client used for listeners.

        """
        connection_info = {} if connection_info is None else connection_info
        if not isinstance(connection_info, Mapping):
            message = "connection_info must be a mapping"
            raise TypeError(message)

        client_kwargs: dict[str, Any] = {}
        if connection_info.get("project"):
            client_kwargs["project"] = str(connection_info["project"])
        if connection_info.get("database"):
            client_kwargs["database"] = str(connection_info["database"])
        listen = bool(connection_info.get("listen", True))

        if client is not None:
            self._client = client
        else:
            self._client = firestore.AsyncClient(**client_kwargs)
            if listen_client is None and listen:
                listen_client = firestore.Client(**client_kwargs)
        self._listen_client = listen_client

    def new_document_id(self, collection: str) -> str:
        """Return the id Firestore generates for a new document reference."""
        path = normalise_collection_path(collection)
        return self._client.collection(path).document().id

    @translate_method
    async def get_document(self, collection: str, document_id: str) -> RawRecord:
        """Read a document snapshot."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        snapshot = await self._client.collection(path).document(document_id).get()
        if not snapshot.exists:
            raise NotFoundError(path, document_id)
        return _to_record(snapshot)

    @translate_method
    async def run_query(
        self,
        collection: str,
        predicates: Sequence[QueryPredicate],
        *,
        start_after: RawRecord | None = None,
    ) -> list[RawRecord]:
        """Run a query and return its snapshots as raw records."""
        path = normalise_collection_path(collection)
        validate_query(predicates)
        query = build_query(
            self._client.collection(path),
            predicates,
            start_after=start_after,
        )
        snapshots = await query.get()
        logger.debug("Firestore query on %s returned %d record(s)", path, len(snapshots))
        return [_to_record(snapshot) for snapshot in snapshots]

    @translate_method
    async def set_document(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        """Write fields to a document reference."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        reference = self._client.collection(path).document(document_id)
        await reference.set(dict(fields), merge=merge)

    @translate_method
    async def delete_document(self, collection: str, document_id: str) -> None:
        """Delete a document reference."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        await self._client.collection(path).document(document_id).delete()

    async def subscribe_query(
        self,
        collection: str,
        predicates: Sequence[QueryPredicate],
    ) -> AsyncGenerator[list[RawRecord], None]:
        """Yield full snapshots delivered by a Firestore watch."""
        path = normalise_collection_path(collection)
        validate_query(predicates)
        if self._listen_client is None:
            raise FirestoreBackendError.listen_unavailable(path)

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[list[RawRecord]] = asyncio.Queue(maxsize=1)

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            records = [_to_record(snapshot) for snapshot in snapshots]
            if not loop.is_closed():
                loop.call_soon_threadsafe(_put_latest, queue, records)

        with translate_exceptions(collection=path):
            query = build_query(self._listen_client.collection(path), predicates)
            watch = query.on_snapshot(on_snapshot)
        logger.debug("Started Firestore listener on %s", path)
        try:
            while True:
                yield await queue.get()
        finally:
            watch.unsubscribe()
            logger.debug("Stopped Firestore listener on %s", path)

    @translate_method
    async def increment_field(
        self,
        collection: str,
        document_id: str,
        field: str,
        delta: int,
    ) -> None:
        """Apply a server-side increment transform."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        reference = self._client.collection(path).document(document_id)
        await reference.update({field: firestore.Increment(delta)})

    async def commit_batch(self, operations: Sequence[SetOperation]) -> None:
        """Commit all set operations in one write batch."""
        batch = self._client.batch()
        for operation in operations:
            path = normalise_collection_path(operation.collection)
            document_id = validate_document_id(operation.document_id, path)
            reference = self._client.collection(path).document(document_id)
            batch.set(reference, dict(operation.fields), merge=operation.merge)
        with translate_exceptions():
            await batch.commit()

    async def close(self) -> None:
        """Close the underlying clients."""
        for client in (self._client, self._listen_client):
            close = getattr(client, "close", None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result


def _to_record(snapshot: Any) -> RawRecord:
    return RawRecord(id=snapshot.id, data=snapshot.to_dict() or {}, handle=snapshot)


def _put_latest(queue: asyncio.Queue[list[RawRecord]], records: list[RawRecord]) -> None:
    """Queue a full snapshot, replacing one the consumer has not read yet."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(records)
