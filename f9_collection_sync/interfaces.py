"""Core error types and data structures shared by stores and sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class CollectionSyncError(RuntimeError):
    """Base exception for document store and synchronisation operations."""

    def __init__(
        self,
        message: str,
        *,
        collection: str | None = None,
        document_id: str | None = None,
    ) -> None:
        """Initialise the base error with optional collection/document context."""
        target = _format_target(collection, document_id)
        detail = message if target is None else ": ".join((message, target))
        super().__init__(detail)
        self.message = message
        self.collection = collection
        self.document_id = document_id


class NotFoundError(CollectionSyncError):
    """Raised when a document or query target is absent."""

    def __init__(self, collection: str, document_id: str | None = None) -> None:
        """Create a not-found error for the provided document."""
        super().__init__(
            "Document not found",
            collection=collection,
            document_id=document_id,
        )


class AlreadyExistsError(CollectionSyncError):
    """Raised when a precondition about prior existence is violated."""

    def __init__(
        self,
        collection: str | None = None,
        document_id: str | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        """Create an already-exists error with an optional reason."""
        super().__init__(
            reason or "Document already exists",
            collection=collection,
            document_id=document_id,
        )


class InvalidArgumentError(CollectionSyncError):
    """Raised when a predicate, identifier or path is malformed."""

    @classmethod
    def empty_document_id(cls, collection: str | None = None) -> InvalidArgumentError:
        """Return an error indicating a document id is required."""
        return cls("Document id cannot be empty", collection=collection)

    @classmethod
    def invalid_document_id(
        cls,
        document_id: str,
        collection: str | None = None,
    ) -> InvalidArgumentError:
        """Return an error describing an id that cannot address a document."""
        return cls(
            "Document id is not valid",
            collection=collection,
            document_id=document_id,
        )

    @classmethod
    def empty_collection_path(cls) -> InvalidArgumentError:
        """Return an error when a collection path is empty."""
        return cls("Collection path cannot be empty")

    @classmethod
    def not_a_collection_path(cls, path: str) -> InvalidArgumentError:
        """Return an error when a path addresses a document, not a collection."""
        return cls("Path does not refer to a collection", collection=path)

    @classmethod
    def malformed_predicate(cls, reason: str) -> InvalidArgumentError:
        """Return an error describing a malformed query predicate."""
        return cls(f"Malformed query predicate ({reason})")


class TransportError(CollectionSyncError):
    """Wraps any underlying network or backend failure.

    The original exception is available as ``cause`` and ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        collection: str | None = None,
        document_id: str | None = None,
    ) -> None:
        """Create a transport error preserving the backend cause."""
        super().__init__(message, collection=collection, document_id=document_id)
        self.cause = cause


class DecodeError(CollectionSyncError):
    """Raised when a raw record cannot be parsed into the document type."""

    def __init__(
        self,
        record: RawRecord,
        cause: BaseException,
        *,
        collection: str | None = None,
    ) -> None:
        """Create a decode error carrying the raw record and underlying cause."""
        super().__init__(
            "Failed to decode document",
            collection=collection,
            document_id=record.id,
        )
        self.record = record
        self.cause = cause


class PageDecodeError(CollectionSyncError):
    """Aggregate of the per-record decode failures of one fetch."""

    def __init__(
        self,
        failures: list[DecodeError],
        *,
        collection: str | None = None,
    ) -> None:
        """Create an aggregate error from individual decode failures."""
        super().__init__(
            f"{len(failures)} document(s) failed to decode",
            collection=collection,
        )
        self.failures = list(failures)


@dataclass(frozen=True)
class RawRecord:
    """Snapshot of a stored document as returned by a document store.

    ``handle`` is the backend's own snapshot object (if any) and is what
    stores use to resume a query after this record.
    """

    id: str
    data: dict[str, Any]
    handle: Any = field(default=None, compare=False, repr=False)

    def as_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {"id": self.id, "data": dict(self.data)}


@dataclass(frozen=True)
class BatchWrite:
    """A single document write executed as part of an atomic batch.

    With ``merge`` the document is written under a freshly assigned id and
    merged; otherwise it replaces the document stored under its own id.
    """

    document: Any
    collection: str
    merge: bool = False


@dataclass(frozen=True)
class SetOperation:
    """Store-level write of raw fields used by batched commits."""

    collection: str
    document_id: str
    fields: dict[str, Any]
    merge: bool = False


def _format_target(collection: str | None, document_id: str | None) -> str | None:
    if collection is None and document_id is None:
        return None
    if document_id is None:
        return str(collection)
    if collection is None:
        return str(document_id)
    return f"{collection}/{document_id}"
