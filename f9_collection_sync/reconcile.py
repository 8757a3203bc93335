"""Client-side reconciliation of collection views after remote operations.

These helpers keep a local ordered view consistent with the remote
collection by document id. They operate on plain lists and take an
``identify`` callable (usually :meth:`DocumentCodec.identify`), so they are
shared by every session type.

Key utilities:
- Page merging with in-place replacement of known ids
- Single-document upsert and removal
- Id de-duplication
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .query import SortOrder

T = TypeVar("T")

Identify = Callable[[Any], "str | None"]


def index_of(view: list[T], document_id: str | None, identify: Identify) -> int | None:
    """Return the position of the document with document_id, if present."""
    if document_id is None:
        return None
    for index, existing in enumerate(view):
        if identify(existing) == document_id:
            return index
    return None


def upsert(view: list[T], document: T, identify: Identify) -> int:
    """Replace the entry sharing document's id in place, or append it.

    Returns:
        The index the document now occupies.

    """
    index = index_of(view, identify(document), identify)
    if index is None:
        view.append(document)
        return len(view) - 1
    view[index] = document
    return index


def merge_page(view: list[T], incoming: Iterable[T], identify: Identify) -> None:
    """Merge a fetched page into view.

    Known ids are replaced in place (the incoming value wins and keeps the
    original position); new ids are appended in arrival order.
    """
    positions = {
        document_id: index
        for index, existing in enumerate(view)
        if (document_id := identify(existing)) is not None
    }
    for document in incoming:
        document_id = identify(document)
        index = positions.get(document_id) if document_id is not None else None
        if index is None:
            view.append(document)
            if document_id is not None:
                positions[document_id] = len(view) - 1
        else:
            view[index] = document


def remove(view: list[T], document_id: str | None, identify: Identify) -> T | None:
    """Remove and return the entry with document_id, if present."""
    index = index_of(view, document_id, identify)
    if index is None:
        return None
    return view.pop(index)


def dedupe(view: list[T], identify: Identify) -> list[T]:
    """Return view with later duplicates folded into the first position.

    The last value seen for an id wins, at the position the id first
    appeared. Documents without an id are kept as-is.
    """
    result: list[T] = []
    positions: dict[str, int] = {}
    for document in view:
        document_id = identify(document)
        if document_id is None:
            result.append(document)
        elif document_id in positions:
            result[positions[document_id]] = document
        else:
            positions[document_id] = len(result)
            result.append(document)
    return result


def apply_sort(view: list[T], sort: SortOrder | None) -> None:
    """Re-sort view in place when a sort order is supplied."""
    if sort is not None:
        view[:] = sort.sorted(view)
