"""In-process implementation of the asynchronous document store.

:class:`InMemoryDocumentStore` keeps collections in dictionaries and
implements the same query semantics the managed backends offer, which makes
it a drop-in store for tests, prototypes and offline tooling.

Key Features:
    - Equality, membership, array and range filters on dotted field paths
    - Ordering with an implicit document-id tiebreak
    - ``limit``/``limit_to_last`` and ``start_after`` cursors
    - Deep merge writes, atomic increments and batched commits
    - Push subscriptions that emit full snapshots whenever results change

Query Semantics:
    Values of different types never compare equal, and range filters only
    match values of the same type family (numbers, strings, ...). Documents
    lacking an ordered field are excluded from the ordered query, and
    documents lacking a filtered field never match the filter.

Example:

    >>> import asyncio
    >>> from f9_collection_sync import InMemoryDocumentStore, QueryPredicate
    >>>
    >>> async def main():
    ...     store = InMemoryDocumentStore(
    ...         {"items": {"a": {"seq": 1}, "b": {"seq": 2}}},
    ...     )
    ...     page = await store.run_query(
    ...         "items",
    ...         [QueryPredicate.order_by("seq"), QueryPredicate.limit(1)],
    ...     )
    ...     return [record.id for record in page]
    >>>
    >>> asyncio.run(main())
    ['a']

See Also:
    - AsyncDocumentStore: Abstract interface
    - FirestoreDocumentStore: Managed backend implementation

"""

from __future__ import annotations

import asyncio
import copy
import functools
import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .async_interfaces import AsyncDocumentStore
from .interfaces import InvalidArgumentError, NotFoundError, RawRecord
from .path_utils import normalise_collection_path, validate_document_id
from .query import PredicateKind, normalise_predicates
from .validation import validate_query

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Mapping, Sequence

    from .interfaces import SetOperation
    from .query import QueryPredicate

logger = logging.getLogger(__name__)

AUTO_ID_ALPHABET = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20

_MISSING = object()


@dataclass
class _Subscription:
    """Registered listener for a query."""

    collection: str
    predicates: tuple[QueryPredicate, ...]
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1))
    last_emitted: list[RawRecord] | None = None


class InMemoryDocumentStore(AsyncDocumentStore):
    """Document store held entirely in process memory."""

    def __init__(
        self,
        initial: Mapping[str, Mapping[str, Mapping[str, Any]]] | None = None,
    ) -> None:
        """Initialise the store, optionally seeding collections.

        Args:
            initial: Mapping of collection path to ``{document_id: fields}``.

        """
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[_Subscription] = []
        for collection, documents in (initial or {}).items():
            path = normalise_collection_path(collection)
            bucket = self._collections.setdefault(path, {})
            for document_id, fields in documents.items():
                bucket[validate_document_id(document_id, path)] = copy.deepcopy(
                    dict(fields),
                )

    def new_document_id(self, collection: str) -> str:
        """Return a random 20 character identifier."""
        return "".join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))

    async def get_document(self, collection: str, document_id: str) -> RawRecord:
        """Return the stored document or raise NotFoundError."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        fields = self._collections.get(path, {}).get(document_id)
        if fields is None:
            raise NotFoundError(path, document_id)
        return _record(document_id, fields)

    async def run_query(
        self,
        collection: str,
        predicates: Sequence[QueryPredicate],
        *,
        start_after: RawRecord | None = None,
    ) -> list[RawRecord]:
        """Evaluate the query against the stored documents."""
        path = normalise_collection_path(collection)
        validate_query(predicates)
        records = self._evaluate(path, normalise_predicates(predicates), start_after)
        logger.debug("Query on %s returned %d record(s)", path, len(records))
        return records

    async def set_document(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        """Store fields under document_id, replacing or deep-merging."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        self._apply_set(path, document_id, fields, merge=merge)
        self._notify(path)

    async def delete_document(self, collection: str, document_id: str) -> None:
        """Remove a document if present."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        removed = self._collections.get(path, {}).pop(document_id, None)
        if removed is not None:
            self._notify(path)

    async def subscribe_query(
        self,
        collection: str,
        predicates: Sequence[QueryPredicate],
    ) -> AsyncGenerator[list[RawRecord], None]:
        """Yield the query's full result set now and after every change."""
        path = normalise_collection_path(collection)
        validate_query(predicates)
        subscription = _Subscription(path, normalise_predicates(predicates))
        self._subscriptions.append(subscription)
        self._publish(subscription)
        try:
            while True:
                yield await subscription.queue.get()
        finally:
            self._subscriptions.remove(subscription)

    async def increment_field(
        self,
        collection: str,
        document_id: str,
        field: str,
        delta: int,
    ) -> None:
        """Add delta to a numeric field; non-numeric values count as zero."""
        path = normalise_collection_path(collection)
        document_id = validate_document_id(document_id, path)
        fields = self._collections.get(path, {}).get(document_id)
        if fields is None:
            raise NotFoundError(path, document_id)
        current = _lookup(fields, field)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            current = 0
        _assign(fields, field, current + delta)
        self._notify(path)

    async def commit_batch(self, operations: Sequence[SetOperation]) -> None:
        """Validate every operation, then apply them all."""
        prepared = [
            (
                normalise_collection_path(operation.collection),
                operation.document_id,
                operation,
            )
            for operation in operations
        ]
        for path, document_id, _ in prepared:
            validate_document_id(document_id, path)
        touched: set[str] = set()
        for path, document_id, operation in prepared:
            self._apply_set(path, document_id, operation.fields, merge=operation.merge)
            touched.add(path)
        for path in touched:
            self._notify(path)

    def _apply_set(
        self,
        path: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool,
    ) -> None:
        """Write fields into the collection bucket."""
        bucket = self._collections.setdefault(path, {})
        incoming = copy.deepcopy(dict(fields))
        if merge and document_id in bucket:
            _deep_merge(bucket[document_id], incoming)
        else:
            bucket[document_id] = incoming

    def _evaluate(
        self,
        path: str,
        predicates: tuple[QueryPredicate, ...],
        start_after: RawRecord | None,
    ) -> list[RawRecord]:
        """Filter, order, offset and limit the documents of a collection."""
        documents = self._collections.get(path, {})
        filters = [p for p in predicates if p.kind.is_filter]
        orderings = [p for p in predicates if p.kind is PredicateKind.ORDER_BY]
        limits = [
            p
            for p in predicates
            if p.kind in (PredicateKind.LIMIT, PredicateKind.LIMIT_TO_LAST)
        ]

        matched = [
            _record(document_id, fields)
            for document_id, fields in documents.items()
            if all(_matches(fields, predicate) for predicate in filters)
            and all(_lookup(fields, p.field) is not _MISSING for p in orderings)
        ]
        compare = functools.partial(_compare_records, orderings)
        matched.sort(key=functools.cmp_to_key(compare))

        if start_after is not None:
            matched = [record for record in matched if compare(record, start_after) > 0]

        for limit in limits:
            if limit.kind is PredicateKind.LIMIT:
                matched = matched[: limit.value]
            else:
                matched = matched[-limit.value :]
        return matched

    def _notify(self, path: str) -> None:
        """Push fresh snapshots to listeners on path whose results changed."""
        for subscription in list(self._subscriptions):
            if subscription.collection == path:
                self._publish(subscription)

    def _publish(self, subscription: _Subscription) -> None:
        snapshot = self._evaluate(
            subscription.collection,
            subscription.predicates,
            None,
        )
        if snapshot == subscription.last_emitted:
            return
        subscription.last_emitted = snapshot
        # Each snapshot is complete, so an unread older one is dropped
        if subscription.queue.full():
            subscription.queue.get_nowait()
        subscription.queue.put_nowait(snapshot)


def _record(document_id: str, fields: Mapping[str, Any]) -> RawRecord:
    return RawRecord(id=document_id, data=copy.deepcopy(dict(fields)))


def _lookup(fields: Mapping[str, Any], field_path: str | None) -> Any:
    """Resolve a dotted field path, returning _MISSING when absent."""
    if field_path is None:
        return _MISSING
    current: Any = fields
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _assign(fields: dict[str, Any], field_path: str, value: Any) -> None:
    """Set a dotted field path, creating intermediate maps."""
    parts = field_path.split(".")
    current = fields
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value


def _deep_merge(target: dict[str, Any], incoming: Mapping[str, Any]) -> None:
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value


# Cross-type ordering: null < bool < number < timestamp < string < bytes
# < array < map.
def _value_key(value: Any) -> tuple:
    if value is None:
        return (0,)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    if isinstance(value, str):
        return (4, value)
    if isinstance(value, (bytes, bytearray)):
        return (5, bytes(value))
    if isinstance(value, (list, tuple)):
        return (6, tuple(_value_key(item) for item in value))
    if isinstance(value, dict):
        return (7, tuple(sorted((k, _value_key(v)) for k, v in value.items())))
    message = f"Unsupported field value type: {type(value).__name__}"
    raise InvalidArgumentError(message)


def _matches(fields: Mapping[str, Any], predicate: QueryPredicate) -> bool:
    value = _lookup(fields, predicate.field)
    if value is _MISSING:
        return False
    kind = predicate.kind
    if kind is PredicateKind.EQUALS:
        return _value_key(value) == _value_key(predicate.value)
    if kind is PredicateKind.IN:
        return any(_value_key(value) == _value_key(v) for v in predicate.value)
    if kind is PredicateKind.NOT_IN:
        return value is not None and all(
            _value_key(value) != _value_key(v) for v in predicate.value
        )
    if kind is PredicateKind.ARRAY_CONTAINS:
        return isinstance(value, list) and any(
            _value_key(item) == _value_key(predicate.value) for item in value
        )
    if kind is PredicateKind.ARRAY_CONTAINS_ANY:
        wanted = {_value_key(v) for v in predicate.value}
        return isinstance(value, list) and any(
            _value_key(item) in wanted for item in value
        )

    left, right = _value_key(value), _value_key(predicate.value)
    if left[0] != right[0]:
        return False
    if kind is PredicateKind.LESS_THAN:
        return left < right
    if kind is PredicateKind.GREATER_THAN:
        return left > right
    if kind is PredicateKind.LESS_OR_EQUAL:
        return left <= right
    if kind is PredicateKind.GREATER_OR_EQUAL:
        return left >= right
    raise InvalidArgumentError.malformed_predicate(f"unsupported filter {kind.name}")


def _compare_records(
    orderings: Sequence[QueryPredicate],
    left: RawRecord,
    right: RawRecord,
) -> int:
    """Compare two records by the query orderings, then by id."""
    for ordering in orderings:
        a = _value_key(_lookup(left.data, ordering.field))
        b = _value_key(_lookup(right.data, ordering.field))
        if a != b:
            result = -1 if a < b else 1
            return -result if ordering.descending else result
    if left.id == right.id:
        return 0
    result = -1 if left.id < right.id else 1
    tiebreak_descending = bool(orderings) and orderings[-1].descending
    return -result if tiebreak_descending else result
