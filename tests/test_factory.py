"""Tests for the URI-based store factory."""

from typing import Any
from unittest.mock import patch

import pytest

from f9_collection_sync import AsyncDocumentStore, InMemoryDocumentStore
from f9_collection_sync.factory import (
    StoreFactory,
    register_store_factory,
    resolve_store,
)

# ruff: noqa: S101  # pytest assertions are ok in tests


class TestStoreFactory:
    """Test the StoreFactory class."""

    def test_factory_initialization(self) -> None:
        """Test factory initializes with built-in schemes."""
        factory = StoreFactory()
        assert "memory" in factory._factories
        assert "firestore" in factory._factories

    def test_parse_uri_with_query_params(self) -> None:
        """Test parsing URIs with query parameters."""
        factory = StoreFactory()
        scheme, path, params = factory.parse_uri(
            "firestore://demo-project?database=orders&listen=false",
        )
        assert scheme == "firestore"
        assert path == "demo-project"
        assert params == {"database": "orders", "listen": "false"}

    def test_parse_uri_missing_scheme(self) -> None:
        """Test that URIs without scheme raise ValueError."""
        factory = StoreFactory()
        with pytest.raises(ValueError, match="missing scheme"):
            factory.parse_uri("just-a-name")

    def test_parse_uri_missing_path(self) -> None:
        """Test that URIs without a path raise ValueError."""
        factory = StoreFactory()
        with pytest.raises(ValueError, match="missing path"):
            factory.parse_uri("memory://")

    def test_unsupported_scheme(self) -> None:
        """Test that unknown schemes list the supported ones."""
        factory = StoreFactory()
        with pytest.raises(ValueError, match="Supported schemes: firestore, memory"):
            factory.resolve("mongodb://cluster")

    def test_memory_stores_are_shared_by_name(self) -> None:
        """Resolving the same name returns the same store."""
        factory = StoreFactory()
        first = factory.resolve("memory://fixtures")
        assert isinstance(first, InMemoryDocumentStore)
        assert factory.resolve("memory://fixtures") is first
        assert factory.resolve("memory://other") is not first

    def test_firestore_connection_info(self) -> None:
        """Test that URI parameters become connection_info entries."""
        factory = StoreFactory()
        with patch(
            "f9_collection_sync.firestore_backend.FirestoreDocumentStore",
        ) as store_cls:
            factory.resolve("firestore://demo?database=orders&listen=off")
        store_cls.assert_called_once_with(
            {"project": "demo", "database": "orders", "listen": False},
        )

    def test_firestore_invalid_flag(self) -> None:
        """Test that unparseable booleans are rejected."""
        factory = StoreFactory()
        with pytest.raises(ValueError, match="Invalid boolean"):
            factory.resolve("firestore://demo?listen=maybe")

    def test_firestore_project_with_slash(self) -> None:
        """Test that a project id cannot contain a path."""
        factory = StoreFactory()
        with pytest.raises(ValueError, match="Invalid Firestore project"):
            factory.resolve("firestore://demo/extra")

    def test_register_custom_factory(self) -> None:
        """Test registering a custom scheme."""
        factory = StoreFactory()
        created: dict[str, Any] = {}

        def custom(path: str, params: dict[str, Any]) -> AsyncDocumentStore:
            created.update(path=path, params=params)
            return InMemoryDocumentStore()

        factory.register("custom", custom)
        store = factory.resolve("custom://name?x=1")
        assert isinstance(store, InMemoryDocumentStore)
        assert created == {"path": "name", "params": {"x": "1"}}

    def test_register_requires_callable(self) -> None:
        """Test that non-callables are rejected."""
        factory = StoreFactory()
        with pytest.raises(TypeError):
            factory.register("bad", "not callable")  # type: ignore[arg-type]


class TestModuleFunctions:
    """Test the module-level convenience functions."""

    def test_resolve_store(self) -> None:
        store = resolve_store("memory://module-level")
        assert resolve_store("memory://module-level") is store

    def test_register_store_factory(self) -> None:
        sentinel = InMemoryDocumentStore()
        register_store_factory("sentinel", lambda path, params: sentinel)
        assert resolve_store("sentinel://anything") is sentinel
