"""Tests for collection path and document id validation utilities."""

import pytest

from f9_collection_sync.interfaces import InvalidArgumentError
from f9_collection_sync.path_utils import (
    normalise_collection_path,
    split_segments,
    validate_document_id,
)

# ruff: noqa: S101  # pytest assertions are ok in tests


class TestSplitSegments:
    """Tests for split_segments function."""

    def test_strips_outer_slashes(self) -> None:
        """Leading and trailing slashes should be ignored."""
        assert split_segments("/users/u1/posts/") == ("users", "u1", "posts")

    def test_backslashes_are_separators(self) -> None:
        """Windows-style separators should split like forward slashes."""
        assert split_segments("users\\u1\\posts") == ("users", "u1", "posts")


class TestNormaliseCollectionPath:
    """Tests for normalise_collection_path function."""

    def test_top_level_collection(self) -> None:
        """A single segment is a valid collection path."""
        assert normalise_collection_path("posts") == "posts"

    def test_subcollection(self) -> None:
        """Three segments address a subcollection of a document."""
        assert normalise_collection_path("/users/u1/posts/") == "users/u1/posts"

    @pytest.mark.parametrize("path", ["", "   "])
    def test_empty_path(self, path: str) -> None:
        """Empty paths should raise InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError, match="empty"):
            normalise_collection_path(path)

    def test_document_path_rejected(self) -> None:
        """An even number of segments refers to a document."""
        with pytest.raises(InvalidArgumentError):
            normalise_collection_path("users/u1")

    def test_empty_segment_rejected(self) -> None:
        """Doubled separators leave an empty segment."""
        with pytest.raises(InvalidArgumentError):
            normalise_collection_path("users//posts")


class TestValidateDocumentId:
    """Tests for validate_document_id function."""

    def test_valid_id_is_returned(self) -> None:
        """Valid ids pass through unchanged."""
        assert validate_document_id("abc123") == "abc123"

    @pytest.mark.parametrize("document_id", [None, "", "  "])
    def test_empty_id(self, document_id: object) -> None:
        """Missing ids should raise InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError):
            validate_document_id(document_id, "posts")

    @pytest.mark.parametrize("document_id", ["a/b", ".", ".."])
    def test_invalid_id(self, document_id: str) -> None:
        """Slashes and reserved names are not valid ids."""
        with pytest.raises(InvalidArgumentError) as exc_info:
            validate_document_id(document_id, "posts")
        assert exc_info.value.collection == "posts"
