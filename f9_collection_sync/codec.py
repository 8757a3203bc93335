"""Typed document encoding and decoding built on pydantic.

:class:`DocumentCodec` turns :class:`RawRecord` snapshots into the caller's
document type and back into plain field mappings. Any type pydantic can
validate works: ``BaseModel`` subclasses, dataclasses, ``TypedDict`` or a
plain ``dict[str, Any]``.

The document id is carried in the ``id_field`` attribute (``"id"`` by
default) of decoded documents; it is filled from the record id on decode
and stripped from the stored fields on encode.

Example:

    >>> from pydantic import BaseModel
    >>> class Post(BaseModel):
    ...     id: str | None = None
    ...     title: str
    >>> codec = DocumentCodec(Post)
    >>> post = codec.decode(RawRecord(id="p1", data={"title": "Hi"}))
    >>> post.id, codec.encode(post)
    ('p1', {'title': 'Hi'})

"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from .interfaces import DecodeError, InvalidArgumentError, RawRecord

T = TypeVar("T")


class DocumentCodec(Generic[T]):
    """Convert between raw records and typed documents."""

    def __init__(self, document_type: Any, *, id_field: str = "id") -> None:
        """Initialise the codec for a document type.

        Args:
            document_type: Any type accepted by ``pydantic.TypeAdapter``.
            id_field: Name of the attribute or key holding the document id.

        """
        self.document_type = document_type
        self.id_field = id_field
        self._adapter: TypeAdapter[T] = TypeAdapter(document_type)

    def decode(self, record: RawRecord, *, collection: str | None = None) -> T:
        """Decode a raw record, merging its id into the document.

        Raises:
            DecodeError: If the record does not validate against the type.

        """
        payload = dict(record.data)
        payload[self.id_field] = record.id
        try:
            return self._adapter.validate_python(payload)
        except ValidationError as exc:
            raise DecodeError(record, exc, collection=collection) from exc

    def encode(self, document: T, *, exclude_unset: bool = False) -> dict[str, Any]:
        """Return the fields to store for a document, without its id.

        Args:
            document: Document to encode.
            exclude_unset: Drop fields that were never explicitly set, used
                for merge writes that must leave absent fields untouched.

        """
        try:
            fields = self._adapter.dump_python(
                document,
                mode="python",
                exclude_unset=exclude_unset,
            )
        except (TypeError, ValueError) as exc:
            message = f"Cannot encode {type(document).__name__} document"
            raise InvalidArgumentError(message) from exc
        if not isinstance(fields, dict):
            message = "Documents must encode to a mapping of fields"
            raise InvalidArgumentError(message)
        fields.pop(self.id_field, None)
        return fields

    def identify(self, document: Any) -> str | None:
        """Return the document's id, or None when it has none yet."""
        if isinstance(document, Mapping):
            value = document.get(self.id_field)
        else:
            value = getattr(document, self.id_field, None)
        if value is None or value == "":
            return None
        return str(value)

    def with_id(self, document: T, document_id: str) -> T:
        """Return a copy of document carrying document_id."""
        if isinstance(document, BaseModel):
            return document.model_copy(update={self.id_field: document_id})
        if isinstance(document, Mapping):
            return {**document, self.id_field: document_id}  # type: ignore[return-value]
        if dataclasses.is_dataclass(document) and not isinstance(document, type):
            return dataclasses.replace(document, **{self.id_field: document_id})
        payload = self._adapter.dump_python(document, mode="python")
        payload[self.id_field] = document_id
        return self._adapter.validate_python(payload)
