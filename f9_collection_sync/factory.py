"""Store factory for URI-based document store resolution and instantiation.

This module provides a factory pattern for creating AsyncDocumentStore
instances from URI strings. It supports multiple URI schemes and allows
registration of custom store factories.

Supported URI Schemes:
    - memory://name - InMemoryDocumentStore, shared by name within a factory
    - firestore://project - FirestoreDocumentStore for a Google Cloud project

Example:
    >>> from f9_collection_sync.factory import resolve_store
    >>> # In-process store; the same name resolves to the same instance
    >>> store = resolve_store("memory://fixtures")
    >>> # Firestore with a named database and no listen client
    >>> store = resolve_store("firestore://my-project?database=orders&listen=false")

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import parse_qs, urlparse

if TYPE_CHECKING:
    from typing import TypeAlias

    from .async_interfaces import AsyncDocumentStore

    # Type alias for store factory functions
    StoreFactoryFunc: TypeAlias = Callable[[str, dict[str, Any]], AsyncDocumentStore]

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class StoreFactory:
    """Factory for creating document stores from URI strings."""

    def __init__(self) -> None:
        """Initialize the factory with built-in URI scheme handlers."""
        self._factories: dict[str, Callable[[str, dict[str, Any]], Any]] = {
            "memory": self._create_memory_store,
            "firestore": self._create_firestore_store,
        }
        self._memory_stores: dict[str, AsyncDocumentStore] = {}

    def parse_uri(self, uri: str) -> tuple[str, str, dict[str, str]]:
        """Parse a URI into scheme, path, and query parameters.

        Args:
            uri: URI string to parse

        Returns:
            Tuple of (scheme, path, params) where params is a dict of query parameters

        Raises:
            ValueError: If URI format is invalid

        """
        parsed = urlparse(uri)

        if not parsed.scheme:
            msg = f"Invalid URI: missing scheme in '{uri}'"
            raise ValueError(msg)

        path = f"{parsed.netloc}{parsed.path}".strip("/")
        if not path:
            msg = f"Invalid URI: missing path in '{uri}'"
            raise ValueError(msg)

        params: dict[str, str] = {}
        if parsed.query:
            # Keep the first value of repeated parameters
            params = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        return parsed.scheme, path, params

    def resolve(self, uri: str) -> AsyncDocumentStore:
        """Create a store instance from a URI string.

        Args:
            uri: URI string specifying the store configuration

        Returns:
            AsyncDocumentStore instance

        Raises:
            ValueError: If URI scheme is unsupported or a parameter is invalid

        """
        scheme, path, params = self.parse_uri(uri)

        if scheme not in self._factories:
            supported = ", ".join(sorted(self._factories.keys()))
            msg = (
                f"Unsupported URI scheme: '{scheme}'. "
                f"Supported schemes: {supported}"
            )
            raise ValueError(msg)

        factory_func = self._factories[scheme]
        return factory_func(path, params)

    def register(
        self,
        scheme: str,
        factory_func: Callable[[str, dict[str, Any]], Any],
    ) -> None:
        """Register a custom store factory for a URI scheme.

        Args:
            scheme: URI scheme to register (e.g., "mongodb")
            factory_func: Callable that takes (path, params) and returns a store

        """
        if not callable(factory_func):
            msg = "factory_func must be callable"
            raise TypeError(msg)
        self._factories[scheme] = factory_func

    def _create_memory_store(
        self,
        path: str,
        params: dict[str, Any],
    ) -> AsyncDocumentStore:
        """Return the in-process store registered under a name.

        URI format: memory://name

        Args:
            path: Store name; resolving the same name again returns the same store
            params: Query parameters (unused)

        """
        from .memory import InMemoryDocumentStore

        store = self._memory_stores.get(path)
        if store is None:
            store = InMemoryDocumentStore()
            self._memory_stores[path] = store
        return store

    def _create_firestore_store(
        self,
        path: str,
        params: dict[str, Any],
    ) -> AsyncDocumentStore:
        """Create a FirestoreDocumentStore from URI components.

        URI format: firestore://project?database=name&listen=true

        Args:
            path: Google Cloud project id
            params: Query parameters (database, listen)

        """
        from .firestore_backend import FirestoreDocumentStore

        if "/" in path:
            msg = f"Invalid Firestore project id: '{path}'"
            raise ValueError(msg)

        connection_info: dict[str, Any] = {"project": path}
        if "database" in params:
            connection_info["database"] = params["database"]
        if "listen" in params:
            connection_info["listen"] = _parse_flag("listen", params["listen"])

        return FirestoreDocumentStore(connection_info)


def _parse_flag(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    msg = f"Invalid boolean for '{name}': '{value}'"
    raise ValueError(msg)


# Global default factory instance
_default_factory = StoreFactory()


def resolve_store(uri: str) -> AsyncDocumentStore:
    """Convenience function to resolve a store from a URI using the default factory.

    Args:
        uri: URI string specifying the store configuration

    Returns:
        AsyncDocumentStore instance

    Raises:
        ValueError: If URI scheme is unsupported

    Example:
        >>> store = resolve_store("memory://tests")
        >>> store = resolve_store("firestore://my-project?database=(default)")

    """
    return _default_factory.resolve(uri)


def register_store_factory(
    scheme: str,
    factory_func: Callable[[str, dict[str, Any]], Any],
) -> None:
    """Register a custom store factory for a URI scheme.

    Args:
        scheme: URI scheme to register (e.g., "mongodb")
        factory_func: Callable that takes (path, params) and returns a store

    Example:
        >>> def my_factory(path: str, params: dict) -> AsyncDocumentStore:
        ...     return MyDocumentStore(database=path, **params)
        >>> register_store_factory("mydb", my_factory)

    """
    _default_factory.register(scheme, factory_func)
