"""Collection path and document id validation utilities.

Collections are addressed by slash-separated paths whose segments alternate
between collection and document ids, so a valid collection path always has
an odd number of segments (``"users"``, ``"users/u1/posts"``).

Key utilities:
- Collection path normalisation
- Document id validation
"""

from __future__ import annotations

from typing import Any

from .interfaces import InvalidArgumentError

RESERVED_DOCUMENT_IDS = frozenset({".", ".."})


def split_segments(path: str) -> tuple[str, ...]:
    """Split a slash-separated path, ignoring leading and trailing slashes.

    Example:

        >>> split_segments("/users/u1/posts/")
        ('users', 'u1', 'posts')

    """
    return tuple(path.replace("\\", "/").strip("/").split("/"))


def normalise_collection_path(path: str) -> str:
    """Return the canonical form of a collection path.

    Raises:
        InvalidArgumentError: If the path is empty, has empty segments or
            refers to a document rather than a collection.

    """
    if not path or path.strip() == "":
        raise InvalidArgumentError.empty_collection_path()
    segments = split_segments(path)
    if any(segment.strip() == "" for segment in segments):
        raise InvalidArgumentError.not_a_collection_path(path)
    if len(segments) % 2 == 0:
        raise InvalidArgumentError.not_a_collection_path(path)
    return "/".join(segments)


def validate_document_id(document_id: Any, collection: str | None = None) -> str:
    """Validate a document id and return it as a string.

    Raises:
        InvalidArgumentError: If the id is empty, contains a slash or is a
            reserved name.

    """
    if document_id is None or str(document_id).strip() == "":
        raise InvalidArgumentError.empty_document_id(collection)
    document_id = str(document_id)
    if "/" in document_id or document_id in RESERVED_DOCUMENT_IDS:
        raise InvalidArgumentError.invalid_document_id(document_id, collection)
    return document_id
