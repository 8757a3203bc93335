"""Exception translation from the Google client stack to the sync taxonomy.

Backend adapters wrap every vendor call with :func:`translate_exceptions`
(or decorate coroutine methods with :func:`translate_method`) so callers
only ever see :class:`~f9_collection_sync.interfaces.CollectionSyncError`
subclasses. The original vendor exception stays available as ``__cause__``.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

from google.api_core import exceptions as core_exceptions

from .interfaces import (
    AlreadyExistsError,
    CollectionSyncError,
    InvalidArgumentError,
    NotFoundError,
    TransportError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

T = TypeVar("T")


def translate_backend_exception(
    exc: BaseException,
    *,
    collection: str | None = None,
    document_id: str | None = None,
) -> CollectionSyncError:
    """Convert a vendor exception into the matching sync error.

    Maps:
    - NotFound → NotFoundError
    - AlreadyExists / Conflict → AlreadyExistsError
    - InvalidArgument / FailedPrecondition → InvalidArgumentError
    - any other GoogleAPIError or exception → TransportError
    """
    if isinstance(exc, CollectionSyncError):
        return exc

    if isinstance(exc, core_exceptions.NotFound):
        return NotFoundError(collection or "", document_id)

    if isinstance(exc, (core_exceptions.AlreadyExists, core_exceptions.Conflict)):
        return AlreadyExistsError(collection, document_id, reason=str(exc) or None)

    if isinstance(
        exc,
        (core_exceptions.InvalidArgument, core_exceptions.FailedPrecondition),
    ):
        return InvalidArgumentError(
            str(exc) or "Backend rejected the request",
            collection=collection,
            document_id=document_id,
        )

    return TransportError(
        str(exc) or type(exc).__name__,
        cause=exc,
        collection=collection,
        document_id=document_id,
    )


@contextmanager
def translate_exceptions(
    *,
    collection: str | None = None,
    document_id: str | None = None,
) -> Iterator[None]:
    """Context manager translating vendor failures raised inside the block.

    Example:
        ```python
        with translate_exceptions(collection="posts", document_id="p1"):
            await reference.delete()
        ```

    Raises:
        CollectionSyncError: Any vendor error wrapped as the matching subclass.

    """
    try:
        yield
    except CollectionSyncError:
        raise
    except core_exceptions.GoogleAPIError as exc:
        raise translate_backend_exception(
            exc,
            collection=collection,
            document_id=document_id,
        ) from exc
    except (OSError, ConnectionError, TimeoutError) as exc:
        raise translate_backend_exception(
            exc,
            collection=collection,
            document_id=document_id,
        ) from exc


def translate_method(
    method: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Decorator translating exceptions raised by a coroutine method.

    The first positional argument after ``self`` is taken to be the
    collection path and is attached to the translated error.
    """

    @functools.wraps(method)
    async def wrapper(self: object, *args: object, **kwargs: object) -> T:
        collection = args[0] if args and isinstance(args[0], str) else None
        document_id = args[1] if len(args) > 1 and isinstance(args[1], str) else None
        with translate_exceptions(collection=collection, document_id=document_id):
            return await method(self, *args, **kwargs)

    return wrapper
