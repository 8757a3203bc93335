"""Tests for the pydantic-backed document codec."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest
from pydantic import BaseModel

from f9_collection_sync.codec import DocumentCodec
from f9_collection_sync.interfaces import DecodeError, InvalidArgumentError, RawRecord

# ruff: noqa: S101


class Post(BaseModel):
    id: str | None = None
    title: str
    likes: int = 0


@dataclass
class Note:
    text: str
    id: str | None = None


class TestDecode:
    """Decoding raw records into typed documents."""

    def test_model_receives_record_id(self) -> None:
        """The record id is merged into the decoded document."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        post = codec.decode(RawRecord(id="p1", data={"title": "Hello", "likes": 3}))
        assert post == Post(id="p1", title="Hello", likes=3)

    def test_stored_id_field_is_overridden(self) -> None:
        """A stale id inside the fields never wins over the record id."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        post = codec.decode(RawRecord(id="p1", data={"id": "old", "title": "x"}))
        assert post.id == "p1"

    def test_custom_id_field(self) -> None:
        """Mappings can carry the id under another key."""
        codec: DocumentCodec[dict[str, Any]] = DocumentCodec(
            dict[str, Any],
            id_field="key",
        )
        document = codec.decode(RawRecord(id="k1", data={"value": 1}))
        assert document == {"key": "k1", "value": 1}
        assert codec.identify(document) == "k1"

    def test_validation_failure(self) -> None:
        """Invalid records raise DecodeError carrying record and cause."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        record = RawRecord(id="bad", data={"likes": "many"})

        with pytest.raises(DecodeError) as exc_info:
            codec.decode(record, collection="posts")

        error = exc_info.value
        assert error.record == record
        assert error.collection == "posts"
        assert error.document_id == "bad"
        assert error.cause is not None


class TestEncode:
    """Encoding documents into stored fields."""

    def test_id_is_not_stored(self) -> None:
        """The id lives outside the stored fields."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        assert codec.encode(Post(id="p1", title="Hi")) == {"title": "Hi", "likes": 0}

    def test_exclude_unset(self) -> None:
        """Merge encoding only carries fields that were explicitly set."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        assert codec.encode(Post(title="Hi"), exclude_unset=True) == {"title": "Hi"}

    def test_non_mapping_document(self) -> None:
        """Scalar document types cannot be stored."""
        codec: DocumentCodec[int] = DocumentCodec(int)
        with pytest.raises(InvalidArgumentError):
            codec.encode(5)


class TestIdentity:
    """Reading and assigning document ids."""

    def test_identify_missing_or_empty(self) -> None:
        """Missing and empty ids both count as unassigned."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        assert codec.identify(Post(title="x")) is None
        assert codec.identify(Post(id="", title="x")) is None
        assert codec.identify({"title": "x"}) is None

    def test_with_id_model(self) -> None:
        """Models are copied, not mutated."""
        codec: DocumentCodec[Post] = DocumentCodec(Post)
        original = Post(title="x")
        copy = codec.with_id(original, "new")
        assert copy.id == "new"
        assert original.id is None

    def test_with_id_dataclass_and_mapping(self) -> None:
        """Dataclasses and mappings receive the id too."""
        notes: DocumentCodec[Note] = DocumentCodec(Note)
        assert notes.with_id(Note(text="a"), "n1") == Note(text="a", id="n1")

        mappings: DocumentCodec[dict[str, Any]] = DocumentCodec(dict[str, Any])
        assert mappings.with_id({"text": "a"}, "m1") == {"text": "a", "id": "m1"}
