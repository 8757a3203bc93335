"""Query predicates, pagination settings and local sort orders.

A query is described as an ordered sequence of :class:`QueryPredicate`
clauses. Stores always apply them in normalised order, filters first, then
orderings, then limits, so the same sequence always produces an equivalent
remote query regardless of how the caller listed the clauses.

Example:

    >>> from f9_collection_sync.query import (
    ...     Pagination,
    ...     QueryPredicate,
    ...     normalise_predicates,
    ... )
    >>> predicates = [
    ...     QueryPredicate.order_by("created_at", descending=True),
    ...     QueryPredicate.equals("published", True),
    ... ]
    >>> pagination = Pagination(order_by="created_at", limit=20)
    >>> normalise_predicates(predicates)[0].kind
    <PredicateKind.EQUALS: '=='>

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

T = TypeVar("T")


class PredicateKind(str, Enum):
    """Kind of a query clause; filter values double as backend operators."""

    EQUALS = "=="
    IN = "in"
    NOT_IN = "not-in"
    ARRAY_CONTAINS = "array_contains"
    ARRAY_CONTAINS_ANY = "array_contains_any"
    LESS_THAN = "<"
    GREATER_THAN = ">"
    LESS_OR_EQUAL = "<="
    GREATER_OR_EQUAL = ">="
    ORDER_BY = "order_by"
    LIMIT = "limit"
    LIMIT_TO_LAST = "limit_to_last"

    @property
    def is_filter(self) -> bool:
        """Whether the clause narrows the result set by field value."""
        return self not in _NON_FILTER_KINDS

    @property
    def takes_sequence(self) -> bool:
        """Whether the clause compares against a list of values."""
        return self in _SEQUENCE_KINDS


_NON_FILTER_KINDS = frozenset(
    {PredicateKind.ORDER_BY, PredicateKind.LIMIT, PredicateKind.LIMIT_TO_LAST},
)
_SEQUENCE_KINDS = frozenset(
    {PredicateKind.IN, PredicateKind.NOT_IN, PredicateKind.ARRAY_CONTAINS_ANY},
)


@dataclass(frozen=True)
class QueryPredicate:
    """One filter, order or limit clause of a query.

    ``field`` is unused for limit clauses. ``value`` holds the comparison
    value for filters (a tuple for list-valued kinds), the descending flag
    for ``ORDER_BY`` and the count for limit clauses.
    """

    kind: PredicateKind
    field: str | None = None
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> QueryPredicate:
        """Match documents whose field equals value."""
        return cls(PredicateKind.EQUALS, field, value)

    @classmethod
    def is_in(cls, field: str, values: Iterable[Any]) -> QueryPredicate:
        """Match documents whose field equals any of values."""
        return cls(PredicateKind.IN, field, tuple(values))

    @classmethod
    def not_in(cls, field: str, values: Iterable[Any]) -> QueryPredicate:
        """Match documents whose field equals none of values."""
        return cls(PredicateKind.NOT_IN, field, tuple(values))

    @classmethod
    def array_contains(cls, field: str, value: Any) -> QueryPredicate:
        """Match documents whose array field contains value."""
        return cls(PredicateKind.ARRAY_CONTAINS, field, value)

    @classmethod
    def array_contains_any(cls, field: str, values: Iterable[Any]) -> QueryPredicate:
        """Match documents whose array field contains any of values."""
        return cls(PredicateKind.ARRAY_CONTAINS_ANY, field, tuple(values))

    @classmethod
    def less_than(cls, field: str, value: Any) -> QueryPredicate:
        return cls(PredicateKind.LESS_THAN, field, value)

    @classmethod
    def greater_than(cls, field: str, value: Any) -> QueryPredicate:
        return cls(PredicateKind.GREATER_THAN, field, value)

    @classmethod
    def less_or_equal(cls, field: str, value: Any) -> QueryPredicate:
        return cls(PredicateKind.LESS_OR_EQUAL, field, value)

    @classmethod
    def greater_or_equal(cls, field: str, value: Any) -> QueryPredicate:
        return cls(PredicateKind.GREATER_OR_EQUAL, field, value)

    @classmethod
    def order_by(cls, field: str, *, descending: bool = False) -> QueryPredicate:
        """Order results by field."""
        return cls(PredicateKind.ORDER_BY, field, descending)

    @classmethod
    def limit(cls, count: int) -> QueryPredicate:
        """Return at most count results from the start of the ordering."""
        return cls(PredicateKind.LIMIT, None, count)

    @classmethod
    def limit_to_last(cls, count: int) -> QueryPredicate:
        """Return at most count results from the end of the ordering."""
        return cls(PredicateKind.LIMIT_TO_LAST, None, count)

    @property
    def descending(self) -> bool:
        """Direction flag of an ``ORDER_BY`` clause."""
        return self.kind is PredicateKind.ORDER_BY and bool(self.value)


def normalise_predicates(
    predicates: Iterable[QueryPredicate],
) -> tuple[QueryPredicate, ...]:
    """Return predicates reordered as filters, then orderings, then limits.

    The relative order within each group is preserved.
    """
    filters: list[QueryPredicate] = []
    orderings: list[QueryPredicate] = []
    limits: list[QueryPredicate] = []
    for predicate in predicates:
        if predicate.kind.is_filter:
            filters.append(predicate)
        elif predicate.kind is PredicateKind.ORDER_BY:
            orderings.append(predicate)
        else:
            limits.append(predicate)
    return (*filters, *orderings, *limits)


def strip_limits(predicates: Iterable[QueryPredicate]) -> tuple[QueryPredicate, ...]:
    """Return the clauses that identify a cursor's query (everything but limits)."""
    return tuple(
        predicate
        for predicate in predicates
        if predicate.kind not in (PredicateKind.LIMIT, PredicateKind.LIMIT_TO_LAST)
    )


@dataclass(frozen=True)
class SortOrder(Generic[T]):
    """Typed local ordering applied to a collection view.

    Args:
        key: Extracts a comparable value from a decoded document.
        descending: Reverse the ordering when True.

    """

    key: Callable[[T], Any]
    descending: bool = False

    def sorted(self, documents: Iterable[T]) -> list[T]:
        """Return documents in this order; ties keep their current order."""
        return sorted(documents, key=self.key, reverse=self.descending)


@dataclass(frozen=True)
class Pagination(Generic[T]):
    """Order and page size of a paginated query.

    ``sort`` optionally mirrors ``order_by`` locally so that documents
    created or updated through a session can be placed where the remote
    ordering would put them.
    """

    order_by: str
    limit: int
    descending: bool = False
    sort: SortOrder[T] | None = None

    def predicates(self) -> tuple[QueryPredicate, ...]:
        """Return the ordering and limit clauses for one page."""
        return (
            QueryPredicate.order_by(self.order_by, descending=self.descending),
            QueryPredicate.limit(self.limit),
        )


def paginated_predicates(
    base: Sequence[QueryPredicate],
    pagination: Pagination | None,
) -> tuple[QueryPredicate, ...]:
    """Combine base predicates with a pagination's ordering and limit."""
    if pagination is None:
        return normalise_predicates(base)
    return normalise_predicates((*base, *pagination.predicates()))
