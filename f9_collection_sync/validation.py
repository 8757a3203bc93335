"""Validation helpers for query predicates and pagination settings.

Stores call :func:`validate_query` before building a remote query so that a
malformed clause surfaces as :class:`InvalidArgumentError` instead of an
opaque backend failure.

Example:
    >>> from f9_collection_sync.query import QueryPredicate
    >>> validate_predicate(QueryPredicate.limit(10))
    >>> validate_predicate(QueryPredicate.is_in("tag", []))  # Raises

"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from .interfaces import InvalidArgumentError
from .query import PredicateKind, QueryPredicate

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .query import Pagination


def validate_predicate(predicate: QueryPredicate) -> None:
    """Validate a single clause.

    Raises:
        InvalidArgumentError: If the kind is unknown, a field is missing, a
            list-valued clause has no values or a limit is not positive.

    """
    if not isinstance(predicate, QueryPredicate) or not isinstance(
        predicate.kind,
        PredicateKind,
    ):
        raise InvalidArgumentError.malformed_predicate("unknown clause")

    kind = predicate.kind
    if kind in (PredicateKind.LIMIT, PredicateKind.LIMIT_TO_LAST):
        validate_limit(predicate.value)
        return

    if not predicate.field or not str(predicate.field).strip():
        raise InvalidArgumentError.malformed_predicate(f"{kind.name} needs a field")

    if kind.takes_sequence:
        values = predicate.value
        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise InvalidArgumentError.malformed_predicate(
                f"{kind.name} needs a list of values",
            )
        if len(values) == 0:
            raise InvalidArgumentError.malformed_predicate(
                f"{kind.name} needs at least one value",
            )


def validate_limit(count: object) -> None:
    """Validate that a limit is a positive integer."""
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidArgumentError.malformed_predicate(
            f"limit must be a positive integer, got {count!r}",
        )


def validate_query(predicates: Iterable[QueryPredicate]) -> None:
    """Validate every clause of a query together.

    Besides per-clause checks, a query may carry at most one limit clause
    and ``LIMIT_TO_LAST`` requires at least one ordering.
    """
    predicates = list(predicates)
    for predicate in predicates:
        validate_predicate(predicate)

    limits = [
        predicate
        for predicate in predicates
        if predicate.kind in (PredicateKind.LIMIT, PredicateKind.LIMIT_TO_LAST)
    ]
    if len(limits) > 1:
        raise InvalidArgumentError.malformed_predicate("more than one limit clause")

    has_order = any(p.kind is PredicateKind.ORDER_BY for p in predicates)
    if limits and limits[0].kind is PredicateKind.LIMIT_TO_LAST and not has_order:
        raise InvalidArgumentError.malformed_predicate(
            "limit_to_last requires an order_by clause",
        )


def validate_pagination(
    base: Iterable[QueryPredicate],
    pagination: Pagination,
) -> None:
    """Validate that a pagination can be layered over base predicates.

    Pagination owns the page limit, so the base query must not carry one.
    """
    if not pagination.order_by or not pagination.order_by.strip():
        raise InvalidArgumentError.malformed_predicate("pagination needs order_by")
    validate_limit(pagination.limit)
    for predicate in base:
        if predicate.kind in (PredicateKind.LIMIT, PredicateKind.LIMIT_TO_LAST):
            raise InvalidArgumentError.malformed_predicate(
                "paginated queries cannot carry their own limit",
            )
